"""Common interface implemented by every dialect extractor."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from .base import RouteFact
from .project import Project
from .syntax import SourceFile


def router_id(path: Path, name: str) -> str:
    return f"{path}::{name}"


@dataclass(frozen=True)
class MountRecord:
    """`parent.use(prefix, child)` as written in one file, before resolution."""

    parent: str  # local router name
    prefix: str
    child: str | None = None  # local identifier of the child router
    child_file: Path | None = None  # set for an inline require('./child')


@dataclass
class FileFacts:
    path: Path
    routes: list[RouteFact] = field(default_factory=list)
    routers: dict[str, str] = field(default_factory=dict)  # local name -> base path
    mounts: list[MountRecord] = field(default_factory=list)

    def ensure_router(self, name: str) -> str:
        self.routers.setdefault(name, "")
        return router_id(self.path, name)


class Extractor(ABC):
    """Turns one parsed file into route facts plus router/mount metadata."""

    name: str

    @abstractmethod
    def extract_file(self, source: SourceFile, project: Project) -> FileFacts:
        """Extract facts local to `source`; unrecognized shapes are skipped."""
