"""Cross-file import resolution.

Maps local identifiers to the file and exported symbol they come from, for
both ES modules (`import x from './x'`) and CommonJS (`require('./x')`).
"""

from dataclasses import dataclass, field
from pathlib import Path

from tree_sitter import Node

from .syntax import (
    SourceFile,
    arguments,
    children,
    identifier_name,
    property_key,
    string_value,
    text,
    top_level_declarators,
    unwrap,
)

SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")
INDEX_FILES = ("index.ts", "index.tsx", "index.js", "index.jsx")


@dataclass(frozen=True)
class ImportBinding:
    local: str
    source_file: Path
    imported: str  # export name, "default" for default imports
    is_default: bool


@dataclass
class ModuleExports:
    default: str | None = None  # local name exported as default
    named: dict[str, str] = field(default_factory=dict)  # export name -> local name

    def local_name(self, binding: ImportBinding) -> str | None:
        """Second hop: the name the binding refers to inside its source file."""
        if binding.is_default:
            return self.default
        return self.named.get(binding.imported)


def resolve_import(specifier: str, from_dir: Path) -> Path | None:
    """Resolve a relative specifier to an existing file, or None."""
    if not specifier or not specifier.startswith((".", "/")):
        return None
    base = Path(specifier) if specifier.startswith("/") else from_dir / specifier
    candidates = [base]
    suffix = base.suffix.lower()
    if suffix == ".js":
        candidates += [base.with_suffix(".ts"), base.with_suffix(".tsx")]
    elif suffix == ".jsx":
        candidates.append(base.with_suffix(".tsx"))
    elif suffix not in SOURCE_EXTENSIONS:
        candidates += [base.with_name(base.name + ext) for ext in SOURCE_EXTENSIONS]
        candidates += [base / name for name in INDEX_FILES]
    for candidate in candidates:
        if candidate.is_file():
            return candidate.resolve()
    return None


def require_target(node: Node | None, from_dir: Path) -> Path | None:
    """File targeted by an inline `require('./x')` call."""
    node = unwrap(node)
    if node is None or node.type != "call_expression":
        return None
    fn = node.child_by_field_name("function")
    if fn is None or text(fn) != "require":
        return None
    args = arguments(node)
    if not args:
        return None
    specifier = string_value(args[0])
    return resolve_import(specifier, from_dir) if specifier else None


def collect_imports(source: SourceFile) -> dict[str, ImportBinding]:
    """Relative import bindings of a file, keyed by local name."""
    bindings: dict[str, ImportBinding] = {}
    for stmt in children(source.root):
        if stmt.type == "import_statement":
            _collect_es_import(stmt, source.directory, bindings)
    for declarator in top_level_declarators(source.root):
        _collect_require(declarator, source.directory, bindings)
    return bindings


def _collect_es_import(stmt: Node, from_dir: Path, bindings: dict[str, ImportBinding]) -> None:
    target = resolve_import(string_value(stmt.child_by_field_name("source")) or "", from_dir)
    if target is None:
        return
    for clause in children(stmt):
        if clause.type != "import_clause":
            continue
        for part in children(clause):
            if part.type == "identifier":
                name = text(part)
                bindings[name] = ImportBinding(name, target, "default", True)
            elif part.type == "named_imports":
                for spec in children(part):
                    if spec.type != "import_specifier":
                        continue
                    imported = _module_name(spec.child_by_field_name("name"))
                    alias = spec.child_by_field_name("alias")
                    local = text(alias) if alias is not None else imported
                    if imported and local:
                        is_default = imported == "default"
                        bindings[local] = ImportBinding(local, target, imported, is_default)


def _collect_require(declarator: Node, from_dir: Path, bindings: dict[str, ImportBinding]) -> None:
    name = declarator.child_by_field_name("name")
    value = unwrap(declarator.child_by_field_name("value"))
    if name is None or value is None:
        return

    member = None
    if value.type == "member_expression":
        member = property_key(value.child_by_field_name("property"))
        value = unwrap(value.child_by_field_name("object"))
    target = require_target(value, from_dir)
    if target is None:
        return

    if name.type == "identifier":
        local = text(name)
        if member is None or member == "default":
            bindings[local] = ImportBinding(local, target, "default", True)
        else:
            bindings[local] = ImportBinding(local, target, member, False)
    elif name.type == "object_pattern" and member is None:
        for part in children(name):
            if part.type == "shorthand_property_identifier_pattern":
                local = text(part)
                bindings[local] = ImportBinding(local, target, local, False)
            elif part.type == "pair_pattern":
                imported = property_key(part.child_by_field_name("key"))
                local_node = part.child_by_field_name("value")
                if imported and local_node is not None and local_node.type == "identifier":
                    local = text(local_node)
                    bindings[local] = ImportBinding(local, target, imported, False)


def collect_exports(source: SourceFile) -> ModuleExports:
    """Exported names of a file.

    `export default <expression>` that is not a plain identifier is recorded
    under the synthetic local name "default".
    """
    exports = ModuleExports()
    for stmt in children(source.root):
        if stmt.type == "export_statement":
            _collect_es_export(stmt, exports)
        elif stmt.type == "expression_statement":
            _collect_commonjs_export(stmt, exports)
    return exports


def _collect_es_export(stmt: Node, exports: ModuleExports) -> None:
    if stmt.child_by_field_name("source") is not None:
        return  # re-exports are not followed
    is_default = any(c.type == "default" for c in stmt.children)
    declaration = stmt.child_by_field_name("declaration")
    value = stmt.child_by_field_name("value")

    if declaration is not None:
        if declaration.type in ("lexical_declaration", "variable_declaration"):
            for declarator in children(declaration):
                name = identifier_name(declarator.child_by_field_name("name"))
                if name:
                    exports.named[name] = name
            return
        name_node = declaration.child_by_field_name("name")
        name = text(name_node) if name_node is not None else None
        if is_default:
            exports.default = name or "default"
        elif name:
            exports.named[name] = name
        return

    if value is not None:
        exports.default = identifier_name(unwrap(value)) or "default"
        return

    for clause in children(stmt):
        if clause.type != "export_clause":
            continue
        for spec in children(clause):
            if spec.type != "export_specifier":
                continue
            local = _module_name(spec.child_by_field_name("name"))
            alias = spec.child_by_field_name("alias")
            exported = _module_name(alias) if alias is not None else local
            if not local or not exported:
                continue
            if exported == "default":
                exports.default = local
            else:
                exports.named[exported] = local


def _collect_commonjs_export(stmt: Node, exports: ModuleExports) -> None:
    expr = children(stmt)[0] if children(stmt) else None
    if expr is None or expr.type != "assignment_expression":
        return
    left = expr.child_by_field_name("left")
    right = unwrap(expr.child_by_field_name("right"))
    target = text(left)
    if target == "module.exports":
        name = identifier_name(right)
        if name:
            exports.default = name
        elif right is not None and right.type == "object":
            for member in children(right):
                if member.type == "shorthand_property_identifier":
                    exports.named[text(member)] = text(member)
                elif member.type == "pair":
                    key = property_key(member.child_by_field_name("key"))
                    local = identifier_name(member.child_by_field_name("value"))
                    if key and local:
                        exports.named[key] = local
        return
    for prefix in ("module.exports.", "exports."):
        if target.startswith(prefix):
            name = identifier_name(right)
            if name:
                exports.named[target[len(prefix):]] = name
            return


def _module_name(node: Node | None) -> str | None:
    """Name in an import/export specifier: identifier, `default` keyword or string."""
    if node is None:
        return None
    if node.type == "string":
        return string_value(node)
    return text(node) or None
