from api_inventory.parser.syntax import (
    SyntaxTreeProvider,
    UnparsableFileError,
    annotated_parameters,
    flatten_chain,
    literal_value,
    parse_code,
    string_value,
    walk,
)

import pytest


def _first(source, node_type):
    return next(n for n in walk(source.root) if n.type == node_type)


def _outermost_call(source):
    return _first(source, "call_expression")


class TestParseCode:
    def test_ts_and_tsx(self):
        assert not parse_code("const a: number = 1;", "a.ts").root.has_error
        assert not parse_code("const el = <div>hi</div>;", "a.tsx").root.has_error

    def test_plain_javascript(self):
        assert not parse_code("module.exports = { a: 1 };", "a.js").root.has_error


class TestValues:
    def test_string_and_template(self):
        source = parse_code("f('a', `b`, `c${x}`);")
        args = [n for n in walk(source.root) if n.type in ("string", "template_string")]
        assert [string_value(a) for a in args] == ["a", "b", None]

    def test_literal_values(self):
        source = parse_code("f(1, -2, 2.5, true, false, 'x');")
        call = _outermost_call(source)
        values = [literal_value(a) for a in call.child_by_field_name("arguments").named_children]
        assert values == [1, -2, 2.5, True, False, "x"]


class TestFlattenChain:
    def test_member_call_chain(self):
        source = parse_code("app.basePath('/api').get('/x', h).post('/y');")
        root, links = flatten_chain(_outermost_call(source))
        assert root.text == b"app"
        assert [link.name for link in links] == ["basePath", "get", "post"]
        assert len(links[1].args) == 2

    def test_property_access_links(self):
        source = parse_code("z.coerce.number();")
        root, links = flatten_chain(_outermost_call(source))
        assert root.text == b"z"
        assert [(link.name, link.args is None) for link in links] == [("coerce", True), ("number", False)]

    def test_bare_call_has_no_root(self):
        source = parse_code("object({ a: string() });")
        root, links = flatten_chain(_outermost_call(source))
        assert root is None
        assert [link.name for link in links] == ["object"]


class TestAnnotatedParameters:
    def test_finds_typed_parameters(self):
        source = parse_code("export function register(app: Hono, r: express.Router, n: number) {}")
        assert annotated_parameters(source.root, {"Hono"}) == {"app"}
        assert annotated_parameters(source.root, {"Router"}) == {"r"}


class TestSyntaxTreeProvider:
    def test_parse_is_cached(self, tmp_path):
        f = tmp_path / "a.ts"
        f.write_text("export const a = 1;")
        provider = SyntaxTreeProvider()
        assert provider.parse(f) is provider.parse(f)

    def test_missing_file_raises(self, tmp_path):
        provider = SyntaxTreeProvider()
        with pytest.raises(UnparsableFileError):
            provider.parse(tmp_path / "missing.ts")

    def test_invalid_utf8_raises(self, tmp_path):
        f = tmp_path / "bad.ts"
        f.write_bytes(b"const a = '\xff\xfe';")
        provider = SyntaxTreeProvider()
        with pytest.raises(UnparsableFileError) as exc:
            provider.parse(f)
        assert "UTF-8" in exc.value.reason

    def test_try_parse_returns_none(self, tmp_path):
        assert SyntaxTreeProvider().try_parse(tmp_path / "missing.ts") is None

    def test_prime_parses_concurrently(self, tmp_path):
        files = []
        for i in range(5):
            f = tmp_path / f"f{i}.ts"
            f.write_text(f"export const v{i} = {i};")
            files.append(f)
        provider = SyntaxTreeProvider()
        provider.prime(files, workers=3)
        assert all(provider.try_parse(f) is not None for f in files)
