"""Syntax tree provider and node helpers built on tree-sitter.

Every JavaScript/TypeScript file is parsed with the TypeScript grammars
(`.ts` with the plain grammar, everything else with the TSX grammar, which
also accepts JSX and plain JavaScript). Trees are cached per path for the
lifetime of one run.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import structlog
import tree_sitter_typescript as ts_typescript
from tree_sitter import Language, Node, Parser, Tree

logger = structlog.get_logger(__name__)

TS_LANGUAGE = Language(ts_typescript.language_typescript())
TSX_LANGUAGE = Language(ts_typescript.language_tsx())

SOURCE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts")
_TS_SUFFIXES = (".ts", ".mts", ".cts")

_SKIP_TYPES = {"comment"}


class UnparsableFileError(Exception):
    """Raised when a file cannot be read or decoded."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(frozen=True)
class SourceFile:
    path: Path
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def directory(self) -> Path:
        return self.path.parent


def is_declaration_file(path: Path) -> bool:
    return path.name.endswith((".d.ts", ".d.tsx", ".d.mts", ".d.cts"))


def is_source_file(path: Path) -> bool:
    return path.suffix.lower() in SOURCE_SUFFIXES and not is_declaration_file(path)


def parse_code(code: str | bytes, path: Path | str = "inline.ts") -> SourceFile:
    """Parse source text that does not live on disk (tests, stdin)."""
    path = Path(path)
    source = code.encode("utf-8") if isinstance(code, str) else code
    language = TS_LANGUAGE if path.suffix.lower() in _TS_SUFFIXES else TSX_LANGUAGE
    tree = Parser(language).parse(source)
    return SourceFile(path=path, tree=tree)


class SyntaxTreeProvider:
    """Parses files on demand and caches the result (or the failure) per path."""

    def __init__(self):
        self._cache: dict[Path, SourceFile | UnparsableFileError] = {}
        self._lock = threading.Lock()

    def parse(self, path: Path) -> SourceFile:
        """Return the parsed file, raising UnparsableFileError on failure."""
        path = Path(path).resolve()
        with self._lock:
            cached = self._cache.get(path)
        if cached is None:
            cached = self._load(path)
            with self._lock:
                cached = self._cache.setdefault(path, cached)
        if isinstance(cached, UnparsableFileError):
            raise cached
        return cached

    def try_parse(self, path: Path) -> SourceFile | None:
        """Secondary parse: return None instead of raising."""
        try:
            return self.parse(path)
        except UnparsableFileError as e:
            logger.debug("skipping unparsable import", path=str(e.path), error=e.reason)
            return None

    def prime(self, paths: list[Path], workers: int = 4) -> None:
        """Parse many files concurrently so later lookups hit the cache."""
        if workers <= 1 or len(paths) <= 1:
            for path in paths:
                self.try_parse(path)
            return
        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(self.try_parse, paths))

    def _load(self, path: Path) -> SourceFile | UnparsableFileError:
        try:
            source = path.read_bytes()
        except OSError as e:
            return UnparsableFileError(path, e.strerror or str(e))
        try:
            source.decode("utf-8")
        except UnicodeDecodeError as e:
            return UnparsableFileError(path, f"not valid UTF-8 ({e.reason})")
        parsed = parse_code(source, path)
        if parsed.root.has_error:
            logger.debug("syntax errors recovered", path=str(path))
        return parsed


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------


def text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def children(node: Node | None) -> list[Node]:
    """Named children without comments."""
    if node is None:
        return []
    return [c for c in node.named_children if c.type not in _SKIP_TYPES]


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal over named nodes, without recursion."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(children(current)))


def arguments(call: Node | None) -> list[Node]:
    if call is None:
        return []
    return children(call.child_by_field_name("arguments"))


def string_value(node: Node | None) -> str | None:
    """Value of a string literal or a template literal without substitutions."""
    if node is None:
        return None
    if node.type == "string":
        return text(node)[1:-1]
    if node.type == "template_string":
        if any(c.type == "template_substitution" for c in node.named_children):
            return None
        return text(node)[1:-1]
    return None


def literal_value(node: Node | None) -> bool | int | float | str | None:
    """Value of a string, number or boolean literal; None otherwise."""
    if node is None:
        return None
    if node.type in ("string", "template_string"):
        return string_value(node)
    if node.type == "true":
        return True
    if node.type == "false":
        return False
    if node.type == "number":
        return _number(text(node))
    if node.type == "unary_expression" and text(node).startswith("-"):
        value = literal_value(node.child_by_field_name("argument"))
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return -value
    return None


def _number(raw: str) -> int | float | None:
    raw = raw.replace("_", "")
    try:
        return int(raw, 0)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return None


def identifier_name(node: Node | None) -> str | None:
    """Name of a plain identifier reference (including `{ shorthand }` values)."""
    if node is not None and node.type in ("identifier", "shorthand_property_identifier"):
        return text(node)
    return None


def property_key(node: Node | None) -> str | None:
    """Name of an object/class key: identifiers and string keys."""
    if node is None:
        return None
    if node.type in ("property_identifier", "identifier", "private_property_identifier"):
        return text(node)
    if node.type == "string":
        return string_value(node)
    return None


def object_entries(node: Node | None) -> list[tuple[str, Node]]:
    """(key, value) pairs of an object literal; shorthand members map to themselves."""
    if node is None or node.type != "object":
        return []
    entries = []
    for member in children(node):
        if member.type == "pair":
            key = property_key(member.child_by_field_name("key"))
            value = member.child_by_field_name("value")
            if key is not None and value is not None:
                entries.append((key, value))
        elif member.type == "shorthand_property_identifier":
            entries.append((text(member), member))
    return entries


def object_get(node: Node | None, key: str) -> Node | None:
    for name, value in object_entries(node):
        if name == key:
            return value
    return None


def callee_name(call: Node | None) -> str | None:
    """`foo` for `foo(...)`, `bar` for `x.bar(...)`."""
    if call is None or call.type != "call_expression":
        return None
    fn = call.child_by_field_name("function")
    if fn is None:
        return None
    if fn.type == "identifier":
        return text(fn)
    if fn.type == "member_expression":
        return property_key(fn.child_by_field_name("property"))
    return None


@dataclass(frozen=True)
class ChainLink:
    """One `.name(args)` (or bare `.name`) step of a member-call chain."""

    name: str
    args: list[Node] | None  # None for a property access without a call
    node: Node


def flatten_chain(node: Node) -> tuple[Node | None, list[ChainLink]]:
    """Split `root.a(x).b.c(y)` into its root and links ordered root-to-tip.

    A bare call such as `object({...})` yields no root and a single link.
    """
    links: list[ChainLink] = []
    current: Node | None = node
    while current is not None:
        if current.type == "call_expression":
            fn = current.child_by_field_name("function")
            if fn is None:
                break
            if fn.type == "member_expression":
                name = property_key(fn.child_by_field_name("property"))
                if name is None:
                    break
                links.append(ChainLink(name, arguments(current), current))
                current = fn.child_by_field_name("object")
                continue
            if fn.type == "identifier":
                links.append(ChainLink(text(fn), arguments(current), current))
                current = None
            break
        if current.type == "member_expression":
            name = property_key(current.child_by_field_name("property"))
            if name is None:
                break
            links.append(ChainLink(name, None, current))
            current = current.child_by_field_name("object")
            continue
        break
    links.reverse()
    return current, links


def unwrap(node: Node | None) -> Node | None:
    """Strip parentheses, `as` casts, `satisfies` and non-null assertions."""
    while node is not None and node.type in (
        "parenthesized_expression",
        "as_expression",
        "satisfies_expression",
        "non_null_expression",
    ):
        inner = children(node)
        if not inner:
            break
        node = inner[0]
    return node


def decorator_call(decorator: Node) -> tuple[str | None, list[Node]]:
    """Name and arguments of `@Name(...)` / `@Name` / `@ns.Name(...)`."""
    expr = children(decorator)[0] if children(decorator) else None
    if expr is None:
        return None, []
    if expr.type == "call_expression":
        fn = expr.child_by_field_name("function")
        if fn is not None and fn.type == "identifier":
            return text(fn), arguments(expr)
        if fn is not None and fn.type == "member_expression":
            return property_key(fn.child_by_field_name("property")), arguments(expr)
        return None, []
    if expr.type == "identifier":
        return text(expr), []
    if expr.type == "member_expression":
        return property_key(expr.child_by_field_name("property")), []
    return None, []


def top_level_declarators(root: Node) -> Iterator[Node]:
    """`variable_declarator` nodes of module-level const/let/var statements."""
    for stmt in children(root):
        decl = stmt
        if stmt.type == "export_statement":
            decl = stmt.child_by_field_name("declaration")
        if decl is None or decl.type not in ("lexical_declaration", "variable_declaration"):
            continue
        for declarator in children(decl):
            if declarator.type == "variable_declarator":
                yield declarator


def annotated_parameters(root: Node, type_names: set[str]) -> set[str]:
    """Names of function parameters whose type annotation mentions one of `type_names`."""
    names = set()
    for node in walk(root):
        if node.type not in ("required_parameter", "optional_parameter"):
            continue
        name = identifier_name(node.child_by_field_name("pattern"))
        annotation = node.child_by_field_name("type")
        if name is None or annotation is None:
            continue
        words = set(text(annotation).replace(".", " ").replace("<", " ").replace(">", " ").replace(":", " ").split())
        if words & type_names:
            names.add(name)
    return names


def parameter_names(root: Node) -> set[str]:
    """Names bound as function parameters anywhere under `root`."""
    names = set()
    for node in walk(root):
        if node.type in ("required_parameter", "optional_parameter"):
            name = identifier_name(node.child_by_field_name("pattern"))
        elif node.type == "arrow_function":
            name = identifier_name(node.child_by_field_name("parameter"))
        else:
            continue
        if name:
            names.add(name)
    return names
