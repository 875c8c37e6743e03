"""Decorator-style controllers (NestJS).

A class decorated with `@Controller('users')` contributes a base path; each
member carrying an HTTP verb decorator (`@Get(':id')`) becomes one route.
Parameters come from the decorators on the member's formal arguments.
"""

from tree_sitter import Node

from api_inventory.paths import join_paths

from .base import Parameters, Param, RouteFact, SchemaNode
from .extractor import Extractor, FileFacts
from .project import Project
from .schema import SchemaContext, member_decorators, resolve_type, schema_to_params
from .syntax import SourceFile, children, decorator_call, object_get, string_value, unwrap, walk

HTTP_DECORATORS = {
    "Get": "GET",
    "Post": "POST",
    "Put": "PUT",
    "Patch": "PATCH",
    "Delete": "DELETE",
    "Options": "OPTIONS",
    "Head": "HEAD",
    "All": "ALL",
}

CLASS_TYPES = ("class_declaration", "abstract_class_declaration")
FUNCTION_VALUES = ("arrow_function", "function_expression", "function")


class DecoratorExtractor(Extractor):
    name = "decorator"

    def extract_file(self, source: SourceFile, project: Project) -> FileFacts:
        facts = FileFacts(source.path)
        scope = _LazyScope(source, project)
        for node in walk(source.root):
            if node.type in CLASS_TYPES:
                facts.routes.extend(_extract_class(node, scope))
        return facts


class _LazyScope:
    """Builds the file's schema scope (and its secondary parses) on first use."""

    def __init__(self, source: SourceFile, project: Project):
        self._source = source
        self._project = project
        self._ctx: SchemaContext | None = None

    def get(self) -> SchemaContext:
        if self._ctx is None:
            self._ctx = self._project.schema_context(self._source)
        return self._ctx


def _extract_class(node: Node, scope: _LazyScope) -> list[RouteFact]:
    base_path = ""
    tags: list[str] = []
    for dec in class_decorators(node):
        name, args = decorator_call(dec)
        if name == "Controller":
            base_path = _controller_path(args)
        elif name == "ApiTags":
            tags.extend(_string_args(args))

    body = node.child_by_field_name("body")
    routes = []
    pending: list[Node] = []
    for member in children(body):
        if member.type == "decorator":
            pending.append(member)
            continue
        decorators, pending = pending + member_decorators(member), []
        params_node = _member_parameters(member)
        if params_node is None:
            continue
        route = _extract_member(decorators, params_node, base_path, tags, scope)
        if route is not None:
            routes.append(route)
    return routes


def class_decorators(node: Node) -> list[Node]:
    """Decorators on the class, including those written before `export`."""
    decorators = member_decorators(node)
    parent = node.parent
    if parent is not None and parent.type == "export_statement":
        decorators = member_decorators(parent) + decorators
    return decorators


def _member_parameters(member: Node) -> Node | None:
    if member.type == "method_definition":
        return member.child_by_field_name("parameters")
    if member.type == "public_field_definition":
        value = unwrap(member.child_by_field_name("value"))
        if value is not None and value.type in FUNCTION_VALUES:
            return value.child_by_field_name("parameters")
    return None


def _extract_member(
    decorators: list[Node],
    params_node: Node,
    base_path: str,
    class_tags: list[str],
    scope: _LazyScope,
) -> RouteFact | None:
    method = None
    method_path = ""
    description = None
    tags = list(class_tags)
    for dec in decorators:
        name, args = decorator_call(dec)
        if name in HTTP_DECORATORS:
            method = HTTP_DECORATORS[name]
            method_path = _first_string(args)
        elif name == "ApiOperation" and args:
            options = unwrap(args[0])
            summary = string_value(object_get(options, "summary"))
            description = summary or string_value(object_get(options, "description")) or description
        elif name == "ApiTags":
            tags.extend(t for t in _string_args(args) if t not in tags)
    if method is None:
        return None

    parameters = Parameters()
    for param in children(params_node):
        if param.type in ("required_parameter", "optional_parameter"):
            _collect_parameter(param, parameters, scope)

    return RouteFact(
        method=method,
        path=join_paths(base_path, method_path),
        description=description,
        tags=tags,
        parameters=parameters,
    )


def _collect_parameter(param: Node, parameters: Parameters, scope: _LazyScope) -> None:
    type_node = param.child_by_field_name("type")
    for dec in member_decorators(param):
        name, args = decorator_call(dec)
        key = _first_string(args) if args else ""
        if name == "Param":
            if key:
                parameters.path.append(Param(name=key, location="path", required=True, param_type=_type_of(type_node, scope)))
            elif type_node is not None:
                schema = resolve_type(type_node, scope.get())
                parameters.path.extend(p.model_copy(update={"required": True}) for p in schema_to_params(schema, "path"))
        elif name == "Query":
            if key:
                parameters.query.append(Param(name=key, location="query", required=False, param_type=_type_of(type_node, scope)))
            elif type_node is not None:
                parameters.query.extend(schema_to_params(resolve_type(type_node, scope.get()), "query"))
        elif name == "Body":
            schema = resolve_type(type_node, scope.get())
            parameters.body = SchemaNode.obj({key: schema}, [key]) if key else schema


def _type_of(type_node: Node | None, scope: _LazyScope) -> str:
    if type_node is None:
        return "string"
    schema = resolve_type(type_node, scope.get())
    return "string" if schema.type == "object" and not schema.properties else schema.type


def _controller_path(args: list[Node]) -> str:
    if not args:
        return ""
    first = unwrap(args[0])
    if first is not None and first.type == "object":
        path_node = object_get(first, "path")
        return _first_string([path_node]) if path_node is not None else ""
    return _first_string(args)


def _first_string(args: list[Node]) -> str:
    """First string argument; for an array argument, its first string element."""
    if not args:
        return ""
    first = unwrap(args[0])
    if first is not None and first.type == "array":
        for element in children(first):
            value = string_value(element)
            if value is not None:
                return value
        return ""
    return string_value(first) or ""


def _string_args(args: list[Node]) -> list[str]:
    values = [string_value(unwrap(arg)) for arg in args]
    return [v for v in values if v]
