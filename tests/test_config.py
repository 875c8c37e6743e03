import pytest

from api_inventory.config import (
    DEFAULTS,
    ConfigError,
    deep_merge,
    discover_files,
    expand_inputs,
    find_config,
    load_config,
)


class TestLoadConfig:
    def test_defaults(self):
        config = load_config()
        assert config.framework == "auto"
        assert config.sources.include == DEFAULTS["sources"]["include"]
        assert "node_modules/**" in config.sources.exclude

    def test_user_values_merge_and_lists_replace(self, tmp_path):
        f = tmp_path / "api-inventory.yaml"
        f.write_text("framework: builder\nsources:\n  include:\n    - 'app/**/*.js'\n")
        config = load_config(f)
        assert config.framework == "builder"
        assert config.sources.include == ["app/**/*.js"]
        # untouched nested keys keep their defaults
        assert config.sources.exclude == DEFAULTS["sources"]["exclude"]

    def test_empty_file_is_defaults(self, tmp_path):
        f = tmp_path / "api-inventory.yaml"
        f.write_text("")
        assert load_config(f).framework == "auto"

    def test_invalid_yaml(self, tmp_path):
        f = tmp_path / "api-inventory.yaml"
        f.write_text("sources: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(f)

    def test_not_a_mapping(self, tmp_path):
        f = tmp_path / "api-inventory.yaml"
        f.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(f)

    def test_unknown_framework(self, tmp_path):
        f = tmp_path / "api-inventory.yaml"
        f.write_text("framework: flask\n")
        with pytest.raises(ConfigError):
            load_config(f)

    def test_wrong_type(self, tmp_path):
        f = tmp_path / "api-inventory.yaml"
        f.write_text("workers: many\n")
        with pytest.raises(ConfigError):
            load_config(f)

    def test_find_config(self, tmp_path):
        assert find_config(tmp_path) is None
        (tmp_path / "api-inventory.yml").write_text("{}")
        assert find_config(tmp_path) == tmp_path / "api-inventory.yml"


class TestDeepMerge:
    def test_does_not_mutate_base(self):
        base = {"a": {"b": [1]}}
        merged = deep_merge(base, {"a": {"c": 2}})
        assert merged == {"a": {"b": [1], "c": 2}}
        assert base == {"a": {"b": [1]}}


class TestDiscoverFiles:
    def test_default_globs(self, write_files, tmp_path):
        write_files(
            {
                "src/routes.ts": "",
                "src/users/users.controller.ts": "",
                "src/users/users.controller.spec.ts": "",
                "src/api/v1.routes.ts": "",
                "src/types/routes.d.ts": "",
                "src/util.ts": "",
                "node_modules/lib/src/x.routes.ts": "",
            }
        )
        found = [p.relative_to(tmp_path).as_posix() for p in discover_files(load_config(), tmp_path)]
        assert found == ["src/api/v1.routes.ts", "src/routes.ts", "src/users/users.controller.ts"]

    def test_declaration_files_always_excluded(self, write_files, tmp_path):
        write_files({"api.d.ts": "", "api.ts": ""})
        config = load_config()
        config.sources.include = ["*.ts"]
        found = [p.name for p in discover_files(config, tmp_path)]
        assert found == ["api.ts"]


class TestExpandInputs:
    def test_directories_expand_to_sources(self, write_files, tmp_path):
        write_files({"a.ts": "", "b.js": "", "c.d.ts": "", "readme.md": "", "node_modules/x.js": ""})
        found = [p.name for p in expand_inputs([tmp_path])]
        assert found == ["a.ts", "b.js"]

    def test_files_kept_as_given(self, tmp_path):
        f = tmp_path / "x.ts"
        assert expand_inputs([f]) == [f]
