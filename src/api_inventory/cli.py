"""CLI entry point for api-inventory."""

import fnmatch
import json
from pathlib import Path

import click
import yaml

from api_inventory.config import ConfigError, discover_files, expand_inputs, find_config, load_config
from api_inventory.log import configure_logging
from api_inventory.parser.aggregate import FRAMEWORKS, extract_all_endpoints
from api_inventory.parser.base import Endpoint, ExtractionResult


def _filter_endpoints(endpoints: list[Endpoint], patterns: tuple[str, ...]) -> list[Endpoint]:
    """Keep endpoints matching any glob; `"POST /users/*"` also checks the method."""
    if not patterns:
        return endpoints
    kept = []
    for ep in endpoints:
        for pattern in patterns:
            subject = f"{ep.method} {ep.path}" if " " in pattern.strip() else ep.path
            if fnmatch.fnmatchcase(subject, pattern.strip()):
                kept.append(ep)
                break
    return kept


def _collect(paths: tuple[Path, ...], config_path: Path | None, framework: str | None, verbose: bool):
    configure_logging(verbose)
    if config_path is None:
        config_path = find_config(Path.cwd())
    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    files = expand_inputs(list(paths)) if paths else discover_files(config, Path.cwd())
    if not files:
        raise click.ClickException("No source files found.")
    return extract_all_endpoints(files, framework=framework or config.framework, workers=config.workers)


def _render(result: ExtractionResult, fmt: str) -> str:
    data = result.model_dump(mode="json", exclude_none=True)
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    return json.dumps(data, indent=2, ensure_ascii=False)


def _report_failures(result: ExtractionResult) -> None:
    for path, reason in result.failures.items():
        click.echo(f"warning: skipped {path}: {reason}", err=True)


@click.group()
@click.version_option(package_name="api-inventory")
def main():
    """api-inventory: list the HTTP endpoints declared in a JS/TS codebase."""
    pass


common_options = [
    click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path)),
    click.option("-c", "--config", "config_path", type=click.Path(exists=True, path_type=Path), help="Config file (default: ./api-inventory.yaml if present)."),
    click.option("--framework", type=click.Choice(FRAMEWORKS), default=None, help="Routing dialect to extract."),
    click.option("--filter", "filters", multiple=True, help="Only endpoints matching this glob, e.g. 'GET /users/*'."),
    click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr."),
]


def with_common_options(func):
    for option in reversed(common_options):
        func = option(func)
    return func


@main.command()
@with_common_options
@click.option("--format", "fmt", default="json", type=click.Choice(["json", "yaml"]), help="Output format.")
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Write to a file instead of stdout.")
def extract(paths, config_path, framework, filters, verbose, fmt, output):
    """Extract endpoints with their parameters and body schemas."""
    result = _collect(paths, config_path, framework, verbose)
    result.endpoints = _filter_endpoints(result.endpoints, filters)
    _report_failures(result)

    rendered = _render(result, fmt)
    if output is None:
        click.echo(rendered)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(rendered + "\n", encoding="utf-8")
    click.echo(f"Wrote {len(result.endpoints)} endpoints to {output}", err=True)


@main.command()
@with_common_options
def routes(paths, config_path, framework, filters, verbose):
    """Print one line per endpoint: METHOD path  (file)."""
    result = _collect(paths, config_path, framework, verbose)
    endpoints = _filter_endpoints(result.endpoints, filters)
    _report_failures(result)

    width = max((len(ep.method) for ep in endpoints), default=0)
    for ep in endpoints:
        click.echo(f"{ep.method.ljust(width)} {ep.path}  ({ep.source_file})")
    click.echo(f"{len(endpoints)} endpoints", err=True)
