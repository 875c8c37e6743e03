"""Schema resolution for type annotations, DTO classes and zod-style chains.

Two entry points produce a `SchemaNode`:

* `resolve_type` walks a TypeScript type annotation, expanding references to
  DTO classes/interfaces found in the lookup scope;
* `resolve_chain` walks a schema-builder call chain such as
  `z.object({ name: z.string().optional() })`.

Both share a `SchemaContext` whose memo table breaks reference cycles; a name
that is already being resolved further up the stack resolves to an empty
object placeholder. Depth caps bound everything else.
"""

from dataclasses import dataclass, field

from tree_sitter import Node

from .base import Example, Param, SchemaNode
from .syntax import (
    ChainLink,
    SourceFile,
    children,
    decorator_call,
    flatten_chain,
    identifier_name,
    literal_value,
    object_entries,
    object_get,
    property_key,
    text,
    top_level_declarators,
    unwrap,
    walk,
)

MAX_TYPE_DEPTH = 2
MAX_CHAIN_DEPTH = 10

PRIMITIVES = {"string": "string", "number": "number", "boolean": "boolean", "bigint": "number"}
BOXED_TYPES = {"String": "string", "Number": "number", "Boolean": "boolean", "Date": "string"}
ARRAY_GENERICS = {"Array", "ReadonlyArray", "Set"}
TRANSPARENT_GENERICS = {"Promise", "Readonly", "Required", "Partial", "NonNullable", "Awaited"}

OPTIONAL_DECORATORS = {"IsOptional", "ApiPropertyOptional"}
TYPE_DECORATORS = {
    "IsString": "string",
    "IsEmail": "string",
    "IsUUID": "string",
    "IsDateString": "string",
    "IsUrl": "string",
    "IsInt": "number",
    "IsNumber": "number",
    "IsPositive": "number",
    "Min": "number",
    "Max": "number",
    "IsBoolean": "boolean",
}

# zod-style links that only define a shape at the start of a chain (`z.email()`)
_ROOT_SHAPES = {
    "email": "string",
    "uuid": "string",
    "url": "string",
    "datetime": "string",
    "date": "string",
    "enum": "string",
    "nativeEnum": "string",
    "int": "number",
    "float": "number",
    "nan": "number",
}
_OBJECT_LINKS = {"object", "strictObject", "looseObject"}
_OPTIONAL_LINKS = {"optional", "nullish"}


@dataclass(frozen=True)
class DtoField:
    name: str
    optional: bool
    type_node: Node | None
    example: Example | None = None
    override_type: str | None = None


@dataclass(frozen=True)
class DtoDefinition:
    name: str
    fields: list[DtoField]


@dataclass
class SchemaContext:
    """Lookup scope of one file plus the memo table used during resolution."""

    dtos: dict[str, DtoDefinition] = field(default_factory=dict)
    schemas: dict[str, Node] = field(default_factory=dict)  # variable -> initializer
    memo: dict[str, SchemaNode] = field(default_factory=dict)

    def merge(self, other: "SchemaContext") -> None:
        """Import another scope; names already defined here win."""
        for name, dto in other.dtos.items():
            self.dtos.setdefault(name, dto)
        for name, node in other.schemas.items():
            self.schemas.setdefault(name, node)


# ---------------------------------------------------------------------------
# Scope collection
# ---------------------------------------------------------------------------


def collect_scope(source: SourceFile) -> SchemaContext:
    """DTO definitions and schema-builder bindings declared in a file."""
    return SchemaContext(dtos=collect_dtos(source), schemas=collect_schema_bindings(source))


def collect_schema_bindings(source: SourceFile) -> dict[str, Node]:
    bindings = {}
    for declarator in top_level_declarators(source.root):
        name = identifier_name(declarator.child_by_field_name("name"))
        value = unwrap(declarator.child_by_field_name("value"))
        if name and value is not None and value.type in ("call_expression", "member_expression"):
            bindings[name] = value
    return bindings


def collect_dtos(source: SourceFile) -> dict[str, DtoDefinition]:
    dtos: dict[str, DtoDefinition] = {}
    for node in walk(source.root):
        dto = None
        if node.type in ("class_declaration", "abstract_class_declaration", "class"):
            dto = _dto_from_class(node)
        elif node.type == "interface_declaration":
            dto = _dto_from_members(node, node.child_by_field_name("body"))
        elif node.type == "type_alias_declaration":
            value = node.child_by_field_name("value")
            if value is not None and value.type == "object_type":
                dto = _dto_from_members(node, value)
        if dto is not None and dto.fields:
            dtos.setdefault(dto.name, dto)
    return dtos


def _dto_from_class(node: Node) -> DtoDefinition | None:
    name_node = node.child_by_field_name("name")
    body = node.child_by_field_name("body")
    if name_node is None or body is None:
        return None
    fields = []
    pending: list[Node] = []
    for member in children(body):
        if member.type == "decorator":
            pending.append(member)
            continue
        decorators, pending = pending + member_decorators(member), []
        if member.type != "public_field_definition":
            continue
        field_name = property_key(member.child_by_field_name("name"))
        if not field_name:
            continue
        meta = property_meta(decorators)
        optional = _has_token(member, "?") or meta["optional"]
        fields.append(
            DtoField(
                name=field_name,
                optional=optional,
                type_node=_annotation_type(member.child_by_field_name("type")),
                example=meta["example"],
                override_type=meta["override_type"],
            )
        )
    return DtoDefinition(text(name_node), fields)


def _dto_from_members(node: Node, body: Node | None) -> DtoDefinition | None:
    name_node = node.child_by_field_name("name")
    if name_node is None or body is None:
        return None
    fields = []
    for member in children(body):
        if member.type != "property_signature":
            continue
        field_name = property_key(member.child_by_field_name("name"))
        if field_name:
            fields.append(
                DtoField(
                    name=field_name,
                    optional=_has_token(member, "?"),
                    type_node=_annotation_type(member.child_by_field_name("type")),
                )
            )
    return DtoDefinition(text(name_node), fields)


def member_decorators(member: Node) -> list[Node]:
    return [c for c in children(member) if c.type == "decorator"]


def property_meta(decorators: list[Node]) -> dict:
    """Optionality, example and forced type declared by member decorators."""
    optional = False
    example = None
    override_type = None
    for dec in decorators:
        name, args = decorator_call(dec)
        if not name:
            continue
        if name in OPTIONAL_DECORATORS:
            optional = True
        if name in TYPE_DECORATORS:
            override_type = TYPE_DECORATORS[name]
        if name in ("ApiProperty", "ApiPropertyOptional") and args:
            options = unwrap(args[0])
            required = object_get(options, "required")
            if required is not None and required.type == "false":
                optional = True
            value = literal_value(object_get(options, "example"))
            if value is not None:
                example = value
            forced = identifier_name(object_get(options, "type"))
            if forced:
                override_type = BOXED_TYPES.get(forced) or PRIMITIVES.get(forced.lower()) or override_type
    return {"optional": optional, "example": example, "override_type": override_type}


def _has_token(node: Node, token: str) -> bool:
    return any(not c.is_named and c.type == token for c in node.children)


def _annotation_type(node: Node | None) -> Node | None:
    if node is not None and node.type == "type_annotation":
        inner = children(node)
        return inner[0] if inner else None
    return node


# ---------------------------------------------------------------------------
# Type annotations
# ---------------------------------------------------------------------------


def resolve_type(node: Node | None, ctx: SchemaContext, depth: int = 0) -> SchemaNode:
    """Resolve a type annotation node into a schema."""
    node = _annotation_type(node)
    if node is None:
        return SchemaNode.obj()
    kind = node.type

    if kind == "predefined_type":
        primitive = PRIMITIVES.get(text(node))
        return SchemaNode(type=primitive) if primitive else SchemaNode.obj()

    if kind == "literal_type":
        value = literal_value(children(node)[0] if children(node) else None)
        return _schema_for_literal(value) or SchemaNode.obj()

    if kind == "array_type":
        element = children(node)[0] if children(node) else None
        return SchemaNode(type="array", items=resolve_type(element, ctx, depth))

    if kind in ("parenthesized_type", "readonly_type"):
        inner = children(node)
        return resolve_type(inner[-1] if inner else None, ctx, depth)

    if kind == "union_type":
        members = [m for m in _union_members(node) if not _is_nullish_type(m)]
        if len(members) == 1:
            return resolve_type(members[0], ctx, depth)
        if members and all(m.type == "literal_type" for m in members):
            return resolve_type(members[0], ctx, depth)
        return SchemaNode.obj()

    if kind == "object_type":
        return _schema_for_members(children(node), ctx, depth)

    if kind == "generic_type":
        name = text(node.child_by_field_name("name"))
        type_args = children(node.child_by_field_name("type_arguments"))
        if name in ARRAY_GENERICS and len(type_args) == 1:
            return SchemaNode(type="array", items=resolve_type(type_args[0], ctx, depth))
        if name in TRANSPARENT_GENERICS and len(type_args) == 1:
            return resolve_type(type_args[0], ctx, depth)
        return resolve_reference(name, ctx, depth)

    if kind == "type_identifier":
        return resolve_reference(text(node), ctx, depth)

    return SchemaNode.obj()


def resolve_reference(name: str, ctx: SchemaContext, depth: int = 0) -> SchemaNode:
    if name in BOXED_TYPES:
        return SchemaNode(type=BOXED_TYPES[name])
    if name in ctx.dtos and depth < MAX_TYPE_DEPTH:
        return resolve_dto(name, ctx, depth + 1)
    return SchemaNode.obj()


def resolve_dto(name: str, ctx: SchemaContext, depth: int = 1) -> SchemaNode:
    """Expand a named DTO definition; unknown names yield an empty object."""
    key = f"dto:{name}"
    if key in ctx.memo:
        return ctx.memo[key]
    dto = ctx.dtos.get(name)
    if dto is None:
        return SchemaNode.obj()

    ctx.memo[key] = SchemaNode.obj()
    try:
        properties: dict[str, SchemaNode] = {}
        required: list[str] = []
        for dto_field in dto.fields:
            properties[dto_field.name] = _field_schema(dto_field, ctx, depth)
            if not dto_field.optional:
                required.append(dto_field.name)
        return SchemaNode.obj(properties, required)
    finally:
        del ctx.memo[key]


def _field_schema(dto_field: DtoField, ctx: SchemaContext, depth: int) -> SchemaNode:
    schema = resolve_type(dto_field.type_node, ctx, depth) if dto_field.type_node is not None else None
    if dto_field.override_type and (schema is None or schema.type != "array"):
        schema = SchemaNode(type=dto_field.override_type)
    if schema is None:
        schema = SchemaNode.obj()
    if dto_field.example is not None:
        schema = schema.model_copy(update={"example": dto_field.example})
    return schema


def _schema_for_members(members: list[Node], ctx: SchemaContext, depth: int) -> SchemaNode:
    properties: dict[str, SchemaNode] = {}
    required: list[str] = []
    for member in members:
        if member.type != "property_signature":
            continue
        name = property_key(member.child_by_field_name("name"))
        if not name:
            continue
        properties[name] = resolve_type(member.child_by_field_name("type"), ctx, depth)
        if not _has_token(member, "?"):
            required.append(name)
    return SchemaNode.obj(properties, required)


def _union_members(node: Node) -> list[Node]:
    members = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "union_type":
            stack.extend(reversed(children(current)))
        else:
            members.append(current)
    return members


def _is_nullish_type(node: Node) -> bool:
    if node.type == "literal_type":
        return text(node) in ("null", "undefined")
    return node.type == "predefined_type" and text(node) in ("null", "undefined", "void")


def _schema_for_literal(value) -> SchemaNode | None:
    if isinstance(value, bool):
        return SchemaNode(type="boolean")
    if isinstance(value, (int, float)):
        return SchemaNode(type="number")
    if isinstance(value, str):
        return SchemaNode(type="string")
    return None


# ---------------------------------------------------------------------------
# Schema-builder chains
# ---------------------------------------------------------------------------


def resolve_chain(node: Node | None, ctx: SchemaContext, depth: int = 0) -> SchemaNode:
    """Resolve a schema-builder expression (identifier or call chain)."""
    node = unwrap(node)
    if node is None or depth > MAX_CHAIN_DEPTH:
        return SchemaNode.obj()

    name = identifier_name(node)
    if name is not None:
        return resolve_binding(name, ctx, depth)

    if node.type in ("arrow_function", "function_expression"):
        body = node.child_by_field_name("body")
        if body is not None and body.type != "statement_block":
            return resolve_chain(body, ctx, depth + 1)
        return SchemaNode.obj()

    if node.type not in ("call_expression", "member_expression"):
        return SchemaNode.obj()

    root, links = flatten_chain(node)
    schema = None
    root_name = identifier_name(root)
    if root_name is not None and root_name in ctx.schemas:
        schema = resolve_binding(root_name, ctx, depth + 1)
    for link in links:
        schema = _apply_link(link, schema, ctx, depth + 1)
    return schema or SchemaNode.obj()


def resolve_binding(name: str, ctx: SchemaContext, depth: int = 0) -> SchemaNode:
    key = f"schema:{name}"
    if key in ctx.memo:
        return ctx.memo[key]
    definition = ctx.schemas.get(name)
    if definition is None:
        return SchemaNode.obj()
    ctx.memo[key] = SchemaNode.obj()
    try:
        return resolve_chain(definition, ctx, depth + 1)
    finally:
        del ctx.memo[key]


def _apply_link(link: ChainLink, schema: SchemaNode | None, ctx: SchemaContext, depth: int) -> SchemaNode | None:
    name = link.name
    args = link.args or []

    if name in PRIMITIVES:
        return SchemaNode(type=PRIMITIVES[name])
    if name in _ROOT_SHAPES and schema is None:
        return SchemaNode(type=_ROOT_SHAPES[name])
    if name == "literal" and schema is None:
        return _schema_for_literal(literal_value(args[0] if args else None)) or SchemaNode(type="string")
    if name in _OBJECT_LINKS:
        return _chain_object(args[0] if args else None, ctx, depth)
    if name == "array":
        if args:
            return SchemaNode(type="array", items=resolve_chain(args[0], ctx, depth + 1))
        if schema is not None:
            return SchemaNode(type="array", items=schema)
        return SchemaNode(type="array", items=SchemaNode.obj())
    if name == "lazy" and args:
        return resolve_chain(args[0], ctx, depth + 1)
    if schema is None:
        return None

    if name in _OPTIONAL_LINKS:
        return schema.model_copy(update={"optional": True})
    if name == "openapi":
        for arg in args:
            example = literal_value(object_get(unwrap(arg), "example"))
            if example is not None:
                return schema.model_copy(update={"example": example})
        return schema
    if name == "default" and args:
        example = literal_value(args[0])
        return schema.model_copy(update={"example": example}) if example is not None else schema
    if name in ("extend", "merge") and args and schema.type == "object":
        extra = _chain_object(args[0], ctx, depth) if name == "extend" else resolve_chain(args[0], ctx, depth + 1)
        return _merge_objects(schema, extra)
    if name == "partial" and schema.type == "object":
        properties = {k: v.model_copy(update={"optional": True}) for k, v in (schema.properties or {}).items()}
        return schema.model_copy(update={"properties": properties, "required": None})
    return schema


def _chain_object(arg: Node | None, ctx: SchemaContext, depth: int) -> SchemaNode:
    arg = unwrap(arg)
    if arg is None or arg.type != "object":
        name = identifier_name(arg)
        return resolve_binding(name, ctx, depth + 1) if name else SchemaNode.obj()
    properties: dict[str, SchemaNode] = {}
    required: list[str] = []
    for key, value in object_entries(arg):
        prop = resolve_chain(value, ctx, depth + 1)
        properties[key] = prop
        if not prop.optional:
            required.append(key)
    return SchemaNode.obj(properties, required)


def _merge_objects(base: SchemaNode, extra: SchemaNode) -> SchemaNode:
    properties = dict(base.properties or {})
    required = [r for r in base.required or [] if r not in (extra.properties or {})]
    for name, prop in (extra.properties or {}).items():
        properties[name] = prop
        if name in (extra.required or []):
            required.append(name)
    return SchemaNode.obj(properties, required)


def schema_to_params(schema: SchemaNode, location: str) -> list[Param]:
    """Expand an object schema into one parameter per property."""
    required = set(schema.required or [])
    return [
        Param(name=name, location=location, required=name in required, param_type=prop.type)
        for name, prop in (schema.properties or {}).items()
    ]
