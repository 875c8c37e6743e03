"""Scan configuration (`api-inventory.yaml`) and source file discovery."""

import copy
import fnmatch
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from api_inventory.parser.aggregate import FRAMEWORKS
from api_inventory.parser.syntax import is_declaration_file, is_source_file

logger = structlog.get_logger(__name__)

CONFIG_FILENAMES = ("api-inventory.yaml", "api-inventory.yml")

DEFAULTS = {
    "framework": "auto",
    "workers": 4,
    "sources": {
        "include": [
            "src/**/routes.ts",
            "src/**/*.routes.ts",
            "src/**/*.controller.ts",
        ],
        "exclude": [
            "**/*.spec.ts",
            "**/*.test.ts",
            "node_modules/**",
            "dist/**",
            "build/**",
        ],
    },
}

# never scanned, whatever the config says
ALWAYS_EXCLUDE = ("**/*.d.ts",)


class ConfigError(Exception):
    """The config file exists but cannot be used."""


class Sources(BaseModel):
    include: list[str]
    exclude: list[str]


class ScanConfig(BaseModel):
    framework: str = "auto"
    workers: int = 4
    sources: Sources


def deep_merge(base: dict, override: dict) -> dict:
    """Merge `override` into a copy of `base`; nested dicts merge, lists replace."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def find_config(directory: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None = None) -> ScanConfig:
    """Load a config file over the defaults; no path means defaults only."""
    data: dict = {}
    if path is not None:
        try:
            raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config {path} must be a mapping, got {type(raw).__name__}")
        data = raw

    try:
        config = ScanConfig.model_validate(deep_merge(DEFAULTS, data))
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e

    if config.framework not in FRAMEWORKS:
        raise ConfigError(f"Unknown framework {config.framework!r} in {path}")
    logger.debug("config loaded", path=str(path) if path else None, framework=config.framework)
    return config


def _matches(relative: str, patterns: list[str] | tuple[str, ...]) -> bool:
    for pattern in patterns:
        if fnmatch.fnmatch(relative, pattern):
            return True
        # `src/**/x.ts` should also match `src/x.ts`
        if "**/" in pattern and fnmatch.fnmatch(relative, pattern.replace("**/", "")):
            return True
    return False


def discover_files(config: ScanConfig, base_dir: Path) -> list[Path]:
    """Files under `base_dir` matching the include globs and none of the excludes."""
    base_dir = Path(base_dir)
    found = []
    for path in sorted(base_dir.rglob("*")):
        if not path.is_file():
            continue
        relative = path.relative_to(base_dir).as_posix()
        if _matches(relative, ALWAYS_EXCLUDE) or is_declaration_file(path):
            continue
        if _matches(relative, config.sources.include) and not _matches(relative, config.sources.exclude):
            found.append(path)
    return found


def expand_inputs(inputs: list[Path]) -> list[Path]:
    """Expand directories to the source files they contain, keeping file order."""
    files: list[Path] = []
    for item in inputs:
        if item.is_dir():
            for path in sorted(item.rglob("*")):
                if path.is_file() and is_source_file(path) and "node_modules" not in path.parts:
                    files.append(path)
        else:
            files.append(item)
    return files
