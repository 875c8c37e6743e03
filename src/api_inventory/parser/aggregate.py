"""Run the extractors over a file set and merge their endpoints.

Each extractor first produces facts for every file; only then is the router
graph built, since a mount may point at a router declared in any file.
"""

from pathlib import Path

import structlog

from api_inventory.paths import extract_path_params, join_paths, to_key

from .base import Endpoint, ExtractionResult, Param, Parameters, RouteFact
from .builder import BuilderExtractor
from .decorator import DecoratorExtractor
from .extractor import Extractor, FileFacts
from .fluent import FluentExtractor
from .graph import RouterGraph, build_graph
from .project import Project
from .syntax import SourceFile, UnparsableFileError

logger = structlog.get_logger(__name__)

EXTRACTORS: dict[str, type[Extractor]] = {
    "decorator": DecoratorExtractor,
    "fluent": FluentExtractor,
    "builder": BuilderExtractor,
}
FRAMEWORKS = ("auto", *EXTRACTORS)

# tried in order when no framework is named; the first non-empty result wins,
# except that decorator and builder results are merged
AUTO_FIRST = "fluent"
AUTO_MERGED = ("decorator", "builder")


def extract_all_endpoints(
    files: list[Path | str],
    framework: str = "auto",
    workers: int = 4,
    project: Project | None = None,
) -> ExtractionResult:
    """Extract every endpoint declared across `files`.

    Files that cannot be read are reported in `failures`; everything else
    degrades to partial results rather than raising.
    """
    if framework not in FRAMEWORKS:
        raise ValueError(f"Unknown framework: {framework!r} (expected one of {', '.join(FRAMEWORKS)})")

    project = project or Project()
    result = ExtractionResult()
    paths = [Path(f).resolve() for f in files]
    if not paths:
        return result

    project.provider.prime(paths, workers=workers)
    sources: list[SourceFile] = []
    for path in paths:
        try:
            sources.append(project.provider.parse(path))
        except UnparsableFileError as e:
            logger.warning("failed to parse source file", path=str(e.path), error=e.reason)
            result.failures[str(e.path)] = e.reason

    if framework == "auto":
        runs = [_run(EXTRACTORS[AUTO_FIRST](), sources, project)]
        if not any(runs[0].values()):
            runs = [_run(EXTRACTORS[name](), sources, project) for name in AUTO_MERGED]
    else:
        runs = [_run(EXTRACTORS[framework](), sources, project)]

    endpoints = _merge(runs, sources)
    result.endpoints = list(endpoints.values())
    logger.debug("extraction finished", framework=framework, files=len(paths), endpoints=len(result.endpoints))
    return result


def extract_endpoints(file: Path | str, framework: str = "auto") -> ExtractionResult:
    """Endpoints declared in one file; routers mounted from other files are not followed."""
    return extract_all_endpoints([file], framework=framework, workers=1)


def _run(extractor: Extractor, sources: list[SourceFile], project: Project) -> dict[Path, dict[str, Endpoint]]:
    """Endpoints keyed by the file that declares them, in emission order."""
    facts: list[FileFacts] = [extractor.extract_file(source, project) for source in sources]
    graph = build_graph(facts, project)
    prefixes = graph.resolve_prefixes()

    by_file: dict[Path, dict[str, Endpoint]] = {}
    for file_facts in facts:
        emitted = by_file.setdefault(file_facts.path, {})
        for fact in file_facts.routes:
            for endpoint in _expand(fact, file_facts.path, graph, prefixes):
                emitted[endpoint.key] = endpoint
    logger.debug("extractor finished", extractor=extractor.name, endpoints=sum(len(e) for e in by_file.values()))
    return by_file


def _merge(runs: list[dict[Path, dict[str, Endpoint]]], sources: list[SourceFile]) -> dict[str, Endpoint]:
    """Walk files in order, each file's runs in order; a repeated key keeps its first position."""
    endpoints: dict[str, Endpoint] = {}
    for source in sources:
        for run in runs:
            endpoints.update(run.get(source.path, {}))
    return endpoints


def _expand(fact: RouteFact, path: Path, graph: RouterGraph, prefixes: dict[str, list[str]]) -> list[Endpoint]:
    node = graph.nodes.get(fact.router_id) if fact.router_id else None
    base_path = node.base_path if node else ""
    source_file = str(node.file if node else path)
    router_prefixes = prefixes.get(fact.router_id, ["/"]) if fact.router_id else ["/"]

    endpoints = []
    for prefix in router_prefixes:
        full_path = join_paths(prefix, base_path, fact.path)
        endpoints.append(
            Endpoint(
                method=fact.method,
                path=full_path,
                description=fact.description or to_key(fact.method, full_path),
                tags=list(fact.tags),
                parameters=_with_path_tokens(fact, full_path),
                source_file=source_file,
            )
        )
    return endpoints


def _with_path_tokens(fact: RouteFact, full_path: str) -> Parameters:
    """Copy of the fact's parameters with every path token declared."""
    parameters = fact.parameters.model_copy(deep=True)
    declared = {p.name for p in parameters.path}
    for name in extract_path_params(full_path):
        if name not in declared:
            parameters.path.append(Param(name=name, location="path", required=True))
    return parameters
