"""Fluent router chains (Hono / OpenAPIHono).

Routers are created with `new Hono()` and configured through member-call
chains, either at the declaration or later through the variable:

    const api = new Hono().basePath('/api').get('/health', handler)
    api.post('/items', zValidator('json', itemSchema), handler)
    api.openapi(getWidgetRoute, handler)
    app.route('/v1', api)

Every chain is flattened root-to-tip and its links are interpreted in order.
`.route(prefix, child)` links become mount records for the router graph.
"""

from dataclasses import dataclass

from tree_sitter import Node

from api_inventory.paths import HTTP_METHODS, join_paths

from .base import Parameters, RouteFact
from .extractor import Extractor, FileFacts, MountRecord
from .project import Project
from .schema import SchemaContext, resolve_chain, schema_to_params
from .syntax import (
    SourceFile,
    annotated_parameters,
    callee_name,
    children,
    flatten_chain,
    identifier_name,
    object_entries,
    object_get,
    string_value,
    text,
    unwrap,
    walk,
)

ROUTER_CLASSES = {"Hono", "OpenAPIHono"}
FLUENT_METHODS = set(HTTP_METHODS) | {"all"}
VALIDATORS = {"zValidator", "validator", "sValidator", "vValidator", "tbValidator"}
ROUTE_FACTORIES = {"createRoute"}


@dataclass(frozen=True)
class RouteDefinition:
    """A route declared as data (`createRoute({...})` or a plain object)."""

    method: str
    path: str
    description: str | None
    options: Node  # the object literal, for request parameters
    source: SourceFile


class FluentExtractor(Extractor):
    name = "fluent"

    def extract_file(self, source: SourceFile, project: Project) -> FileFacts:
        return _FluentFile(source, project).extract()


class _FluentFile:
    def __init__(self, source: SourceFile, project: Project):
        self.source = source
        self.project = project
        self.facts = FileFacts(source.path)
        self.imports = project.imports(source)
        self.typed = annotated_parameters(source.root, ROUTER_CLASSES)
        self._ctx: SchemaContext | None = None

    @property
    def ctx(self) -> SchemaContext:
        if self._ctx is None:
            self._ctx = self.project.schema_context(self.source)
        return self._ctx

    def extract(self) -> FileFacts:
        for name in declared_routers(self.source):
            self.facts.ensure_router(name)
        for node in walk(self.source.root):
            if node.type == "call_expression" and is_chain_tip(node):
                self._extract_chain(node)
        return self.facts

    def _extract_chain(self, tip: Node) -> None:
        root, links = flatten_chain(tip)
        if root is None or not links:
            return
        router = _router_name(tip, root)
        if router is None:
            return
        known = root.type == "new_expression" or router in self.typed or self._is_imported_router(router)

        for link in links:
            args = link.args
            if args is None:
                continue
            if link.name == "basePath":
                base = string_value(args[0]) if args else None
                if base:
                    self.facts.ensure_router(router)
                    self.facts.routers[router] = join_paths(self.facts.routers[router], base)
            elif link.name == "route":
                self._record_mount(router, args)
            elif link.name == "on" and (known or router in self.facts.routers):
                self._record_on(router, args)
            elif link.name == "openapi":
                self._record_openapi(router, args)
            elif link.name in FLUENT_METHODS:
                path = string_value(args[0]) if args else None
                if path is None or not (known or router in self.facts.routers):
                    continue
                method = link.name.upper()
                parameters = self._validator_parameters(args[1:])
                self.facts.routes.append(
                    RouteFact(router_id=self.facts.ensure_router(router), method=method, path=path, parameters=parameters)
                )

    def _record_mount(self, router: str, args: list[Node]) -> None:
        if len(args) < 2:
            return
        prefix = string_value(args[0])
        if prefix is None:
            return
        child = unwrap(args[1])
        child_name = identifier_name(child)
        if child_name is None and child is not None and _is_router_construction(child):
            child_name = anonymous_name(child)
            self.facts.ensure_router(child_name)
        if child_name is None:
            return
        self.facts.ensure_router(router)
        self.facts.mounts.append(MountRecord(parent=router, prefix=prefix, child=child_name))

    def _record_on(self, router: str, args: list[Node]) -> None:
        if len(args) < 2:
            return
        methods = _strings(args[0])
        paths = _strings(args[1])
        parameters = self._validator_parameters(args[2:])
        for path in paths:
            for method in methods:
                self.facts.routes.append(
                    RouteFact(
                        router_id=self.facts.ensure_router(router),
                        method=method.upper(),
                        path=path,
                        parameters=parameters.model_copy(deep=True),
                    )
                )

    def _record_openapi(self, router: str, args: list[Node]) -> None:
        if not args:
            return
        definition = self._route_definition(args[0])
        if definition is None:
            return
        ctx = self.ctx if definition.source.path == self.source.path else self.project.schema_context(definition.source)
        self.facts.routes.append(
            RouteFact(
                router_id=self.facts.ensure_router(router),
                method=definition.method,
                path=definition.path,
                description=definition.description,
                parameters=request_parameters(definition.options, ctx),
            )
        )

    def _route_definition(self, node: Node) -> RouteDefinition | None:
        node = unwrap(node)
        if node is None:
            return None
        name = identifier_name(node)
        if name is None:
            return parse_route_definition(node, self.source)
        local = route_definitions(self.source, self.project).get(name)
        if local is not None:
            return local
        binding = self.imports.get(name)
        if binding is None:
            return None
        target = self.project.provider.try_parse(binding.source_file)
        exports = self.project.exports(binding.source_file)
        if target is None or exports is None:
            return None
        exported = exports.local_name(binding)
        return route_definitions(target, self.project).get(exported) if exported else None

    def _is_imported_router(self, name: str) -> bool:
        """True if `name` is imported from a file that binds it to `new Hono()`."""
        binding = self.imports.get(name)
        if binding is None:
            return False
        target = self.project.provider.try_parse(binding.source_file)
        exports = self.project.exports(binding.source_file)
        if target is None or exports is None:
            return False
        exported = exports.local_name(binding)
        routers = self.project.memoize("fluent-routers", target.path, lambda: declared_routers(target))
        return exported is not None and exported in routers

    def _validator_parameters(self, args: list[Node]) -> Parameters:
        parameters = Parameters()
        for arg in args:
            arg = unwrap(arg)
            if arg is None or arg.type != "call_expression" or callee_name(arg) not in VALIDATORS:
                continue
            validator_args = children(arg.child_by_field_name("arguments"))
            if len(validator_args) < 2:
                continue
            target = string_value(validator_args[0])
            if target not in ("json", "form", "query", "param"):
                continue
            schema = resolve_chain(validator_args[1], self.ctx)
            if target in ("json", "form"):
                parameters.body = schema
            elif target == "query":
                parameters.query = schema_to_params(schema, "query")
            else:
                parameters.path = [p.model_copy(update={"required": True}) for p in schema_to_params(schema, "path")]
        return parameters


def declared_routers(source: SourceFile) -> list[str]:
    """Names bound to `new Hono()` (optionally chained), plus `export default new Hono()`."""
    names = []
    for node in walk(source.root):
        if node.type == "variable_declarator":
            value = unwrap(node.child_by_field_name("value"))
            name = identifier_name(node.child_by_field_name("name"))
            if name and value is not None and _is_router_construction(value):
                names.append(name)
        elif node.type == "export_statement":
            value = unwrap(node.child_by_field_name("value"))
            if value is not None and _is_router_construction(value):
                names.append("default")
    return names


def is_chain_tip(node: Node) -> bool:
    """True unless the call is the receiver of a further `.method(...)` link."""
    parent = node.parent
    if parent is None or parent.type != "member_expression":
        return True
    obj = parent.child_by_field_name("object")
    return obj is None or obj.id != node.id


def anonymous_name(node: Node) -> str:
    row, column = node.start_point
    return f"<anonymous@{row + 1}:{column + 1}>"


def _router_name(tip: Node, root: Node) -> str | None:
    name = identifier_name(root)
    if name is not None:
        return name
    if root.type != "new_expression" or not _is_router_class(root):
        return None
    parent = tip.parent
    while parent is not None and parent.type in ("parenthesized_expression", "as_expression", "satisfies_expression"):
        parent = parent.parent
    if parent is not None and parent.type == "variable_declarator":
        declared = identifier_name(parent.child_by_field_name("name"))
        if declared:
            return declared
    if parent is not None and parent.type == "export_statement":
        return "default"
    return anonymous_name(tip)


def _is_router_class(node: Node) -> bool:
    return node.type == "new_expression" and text(node.child_by_field_name("constructor")) in ROUTER_CLASSES


def _is_router_construction(node: Node) -> bool:
    if _is_router_class(node):
        return True
    if node.type == "call_expression":
        root, _ = flatten_chain(node)
        return root is not None and _is_router_class(root)
    return False


def _strings(node: Node) -> list[str]:
    node = unwrap(node)
    if node is None:
        return []
    if node.type == "array":
        values = [string_value(el) for el in children(node)]
        return [v for v in values if v is not None]
    value = string_value(node)
    return [value] if value is not None else []


# ---------------------------------------------------------------------------
# Route definitions (`createRoute({...})`)
# ---------------------------------------------------------------------------


def parse_route_definition(node: Node, source: SourceFile) -> RouteDefinition | None:
    node = unwrap(node)
    if node is None:
        return None
    if node.type == "call_expression":
        if callee_name(node) not in ROUTE_FACTORIES:
            return None
        args = children(node.child_by_field_name("arguments"))
        node = unwrap(args[0]) if args else None
        if node is None:
            return None
    if node.type != "object":
        return None
    method = string_value(object_get(node, "method"))
    path = string_value(object_get(node, "path"))
    if not method or path is None:
        return None
    summary = string_value(object_get(node, "summary")) or string_value(object_get(node, "description"))
    return RouteDefinition(method.upper(), path, summary, node, source)


def route_definitions(source: SourceFile, project: Project) -> dict[str, RouteDefinition]:
    def collect() -> dict[str, RouteDefinition]:
        found = {}
        for node in walk(source.root):
            if node.type != "variable_declarator":
                continue
            name = identifier_name(node.child_by_field_name("name"))
            value = node.child_by_field_name("value")
            definition = parse_route_definition(value, source) if name and value is not None else None
            if definition is not None:
                found[name] = definition
        return found

    return project.memoize("route-definitions", source.path, collect)


def request_parameters(options: Node, ctx: SchemaContext) -> Parameters:
    """Parameters declared in a route definition's `request` block."""
    parameters = Parameters()
    request = unwrap(object_get(options, "request"))
    if request is None or request.type != "object":
        return parameters
    query = object_get(request, "query")
    if query is not None:
        parameters.query = schema_to_params(resolve_chain(query, ctx), "query")
    params = object_get(request, "params")
    if params is not None:
        parameters.path = [
            p.model_copy(update={"required": True}) for p in schema_to_params(resolve_chain(params, ctx), "path")
        ]
    body = unwrap(object_get(request, "body"))
    content = unwrap(object_get(body, "content")) if body is not None else None
    for _, media in object_entries(content):
        schema_node = object_get(unwrap(media), "schema")
        if schema_node is not None:
            parameters.body = resolve_chain(schema_node, ctx)
            break
    return parameters

