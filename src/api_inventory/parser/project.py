"""Per-run context shared by the extractors.

A `Project` owns the syntax tree cache and the per-file import, export and
schema-scope tables. One instance lives for one extraction run and is thrown
away afterwards.
"""

import threading
from pathlib import Path
from typing import Callable, TypeVar

from .imports import ImportBinding, ModuleExports, collect_exports, collect_imports
from .schema import SchemaContext, collect_scope
from .syntax import SourceFile, SyntaxTreeProvider

T = TypeVar("T")

MAX_IMPORT_HOPS = 3


class Project:
    def __init__(self, provider: SyntaxTreeProvider | None = None):
        self.provider = provider or SyntaxTreeProvider()
        self._memo: dict[tuple[str, Path], object] = {}
        self._lock = threading.Lock()

    def memoize(self, kind: str, path: Path, factory: Callable[[], T]) -> T:
        key = (kind, path)
        with self._lock:
            if key in self._memo:
                return self._memo[key]  # type: ignore[return-value]
        value = factory()
        with self._lock:
            return self._memo.setdefault(key, value)  # type: ignore[return-value]

    def imports(self, source: SourceFile) -> dict[str, ImportBinding]:
        return self.memoize("imports", source.path, lambda: collect_imports(source))

    def exports(self, path: Path) -> ModuleExports | None:
        """Exports of any file, parsing it on demand; None if unparsable."""
        source = self.provider.try_parse(path)
        if source is None:
            return None
        return self.memoize("exports", source.path, lambda: collect_exports(source))

    def local_scope(self, source: SourceFile) -> SchemaContext:
        return self.memoize("scope", source.path, lambda: collect_scope(source))

    def schema_context(self, source: SourceFile) -> SchemaContext:
        """A fresh lookup scope: local definitions first, then imported ones.

        Imports are followed transitively up to MAX_IMPORT_HOPS files away, so
        a DTO can reference types its own module imports.
        """
        ctx = SchemaContext()
        ctx.merge(self.local_scope(source))
        seen = {source.path}
        frontier = [source]
        for _ in range(MAX_IMPORT_HOPS):
            reached: list[SourceFile] = []
            for current in frontier:
                for binding in self.imports(current).values():
                    target = self.provider.try_parse(binding.source_file)
                    if target is None:
                        continue
                    self._alias(ctx, binding, target)
                    if target.path not in seen:
                        seen.add(target.path)
                        reached.append(target)
            for target in reached:
                ctx.merge(self.local_scope(target))
            frontier = reached
        return ctx

    def _alias(self, ctx: SchemaContext, binding: ImportBinding, target: SourceFile) -> None:
        scope = self.local_scope(target)
        exports = self.exports(target.path)
        local = (exports.local_name(binding) if exports else None) or binding.imported
        if local in scope.dtos:
            ctx.dtos.setdefault(binding.local, scope.dtos[local])
        if local in scope.schemas:
            ctx.schemas.setdefault(binding.local, scope.schemas[local])
