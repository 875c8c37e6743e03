"""Builder-style routers (Express).

    const router = express.Router()
    router.get('/users', validate(listQuery), handler)
    router.route('/users/:id').get(show).put(update)
    app.use('/api', router)
    app.use('/legacy', require('./routes/legacy'))

Verb calls become route facts; `use` calls become mount records that the
router graph resolves across files.
"""

from tree_sitter import Node

from api_inventory.paths import HTTP_METHODS

from .base import Parameters, RouteFact
from .extractor import Extractor, FileFacts, MountRecord
from .imports import require_target
from .project import Project
from .schema import SchemaContext, resolve_chain, schema_to_params
from .syntax import (
    SourceFile,
    annotated_parameters,
    children,
    flatten_chain,
    identifier_name,
    parameter_names,
    property_key,
    string_value,
    text,
    unwrap,
    walk,
)
from .fluent import is_chain_tip

BUILDER_METHODS = set(HTTP_METHODS) | {"all"}
ROUTER_FACTORIES = {"express", "Router"}
SAFE_METHODS = {"GET", "DELETE", "HEAD"}

# receivers that are HTTP clients, not routers (`axios.get('/users')`)
HTTP_CLIENTS = {"axios", "http", "https", "fetch", "request", "superagent", "got", "ky", "$http", "client"}

ROUTER_TYPES = {"Router", "Express", "Application"}


class BuilderExtractor(Extractor):
    name = "builder"

    def extract_file(self, source: SourceFile, project: Project) -> FileFacts:
        facts = FileFacts(source.path)
        for name in declared_routers(source):
            facts.ensure_router(name)
        known = set(facts.routers) | set(project.imports(source)) | annotated_parameters(source.root, ROUTER_TYPES)
        # outside Express modules, only function parameters (`(app) => ...`) may be unnamed routers
        receivers = None if facts.routers or _mentions_express(source) else parameter_names(source.root)
        ctx: SchemaContext | None = None

        for node in walk(source.root):
            if node.type != "call_expression" or not is_chain_tip(node):
                continue
            root, links = flatten_chain(node)
            router = identifier_name(root)
            if router is None or router in ROUTER_FACTORIES or not links:
                continue

            route_path = None
            for link in links:
                if link.args is None:
                    continue
                if link.name == "use":
                    _record_use(router, link.args, facts, source)
                elif link.name == "route":
                    route_path = string_value(link.args[0]) if link.args else None
                    if route_path is None:
                        break
                    facts.ensure_router(router)
                elif link.name in BUILDER_METHODS:
                    if route_path is not None:
                        path, handlers = route_path, link.args
                    else:
                        path = string_value(link.args[0]) if link.args else None
                        handlers = link.args[1:]
                    if path is None or not _looks_like_router(router, path, known, facts, receivers):
                        continue
                    method = link.name.upper()
                    if ctx is None:
                        ctx = project.schema_context(source)
                    facts.routes.append(
                        RouteFact(
                            router_id=facts.ensure_router(router),
                            method=method,
                            path=path,
                            parameters=middleware_parameters(handlers, method, ctx),
                        )
                    )
        return facts


def _looks_like_router(name: str, path: str, known: set[str], facts: FileFacts, receivers: set[str] | None) -> bool:
    if name in known or name in facts.routers:
        return True
    if not path.startswith("/") or name in HTTP_CLIENTS:
        return False
    return receivers is None or name in receivers


def _mentions_express(source: SourceFile) -> bool:
    """True if the file imports or requires `express`."""
    for node in walk(source.root):
        if node.type == "string" and string_value(node) == "express":
            return True
    return False


def _record_use(router: str, args: list[Node], facts: FileFacts, source: SourceFile) -> None:
    if not args:
        return
    prefix = string_value(args[0])
    handlers = args[1:] if prefix is not None else args
    if not handlers:
        return
    child = unwrap(handlers[-1])
    child_name = identifier_name(child)
    child_file = None if child_name else require_target(child, source.directory)
    if child_name is None and child_file is None:
        return
    facts.ensure_router(router)
    facts.mounts.append(MountRecord(parent=router, prefix=prefix or "", child=child_name, child_file=child_file))


def middleware_parameters(handlers: list[Node], method: str, ctx: SchemaContext) -> Parameters:
    """Treat `validate(schema)`-style middleware as body or query declarations.

    A call whose first argument resolves to an object schema with properties
    is a query declaration for GET/DELETE/HEAD and a body schema otherwise.
    """
    parameters = Parameters()
    for handler in handlers:
        handler = unwrap(handler)
        if handler is None or handler.type != "call_expression":
            continue
        args = children(handler.child_by_field_name("arguments"))
        if not args:
            continue
        schema = resolve_chain(args[0], ctx)
        if not schema.has_properties():
            continue
        if method in SAFE_METHODS:
            parameters.query = schema_to_params(schema, "query")
        else:
            parameters.body = schema
    return parameters


def declared_routers(source: SourceFile) -> list[str]:
    """Names bound to `express()`, `Router()` or `express.Router()`."""
    names = []
    for node in walk(source.root):
        if node.type != "variable_declarator":
            continue
        name = identifier_name(node.child_by_field_name("name"))
        value = unwrap(node.child_by_field_name("value"))
        if name and value is not None and value.type == "call_expression" and _is_router_factory(value):
            names.append(name)
    return names


def _is_router_factory(call: Node) -> bool:
    fn = call.child_by_field_name("function")
    if fn is None:
        return False
    if fn.type == "identifier":
        return text(fn) in ROUTER_FACTORIES
    if fn.type == "member_expression":
        return property_key(fn.child_by_field_name("property")) == "Router"
    return False

