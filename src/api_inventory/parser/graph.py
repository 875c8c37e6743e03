"""Router mount graph and prefix propagation.

Nodes are router bindings (one per file and local name), edges are mounts
carrying a literal prefix. `RouterGraph.resolve_prefixes` walks the graph
breadth-first from its roots and records every distinct prefix under which
each router is reachable.
"""

from collections import deque
from dataclasses import dataclass
from pathlib import Path

import structlog

from api_inventory.paths import join_paths

from .extractor import FileFacts, MountRecord, router_id
from .project import Project

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RouterNode:
    file: Path
    name: str
    base_path: str = ""

    @property
    def id(self) -> str:
        return router_id(self.file, self.name)


@dataclass(frozen=True)
class MountEdge:
    parent: str
    child: str
    prefix: str


class RouterGraph:
    def __init__(self):
        self.nodes: dict[str, RouterNode] = {}
        self.edges: dict[str, list[MountEdge]] = {}

    def add_node(self, node: RouterNode) -> None:
        self.nodes[node.id] = node

    def add_edge(self, edge: MountEdge) -> None:
        self.edges.setdefault(edge.parent, []).append(edge)

    def roots(self) -> list[str]:
        """Nodes without a parent; every node when the graph is one big cycle."""
        children = {e.child for edges in self.edges.values() for e in edges}
        roots = [node_id for node_id in self.nodes if node_id not in children]
        return roots or list(self.nodes)

    def resolve_prefixes(self) -> dict[str, list[str]]:
        """Map each reachable router id to its ordered, distinct inherited prefixes.

        A prefix excludes the router's own base path. A mount that leads back
        to a router already on the current mount trail is not followed.
        """
        prefixes: dict[str, list[str]] = {}
        queue: deque[tuple[str, str, frozenset[str]]] = deque()

        def record(node_id: str, prefix: str, trail: frozenset[str]) -> None:
            seen = prefixes.setdefault(node_id, [])
            if prefix in seen:
                return
            seen.append(prefix)
            queue.append((node_id, prefix, trail | {node_id}))

        for node_id in self.roots():
            record(node_id, "/", frozenset())

        while queue:
            node_id, inherited, trail = queue.popleft()
            node = self.nodes.get(node_id)
            if node is None:
                continue
            effective = join_paths(inherited, node.base_path)
            for edge in self.edges.get(node_id, []):
                if edge.child in trail:
                    logger.debug("mount cycle ignored", parent=node_id, child=edge.child)
                    continue
                record(edge.child, join_paths(effective, edge.prefix), trail)
        return prefixes


def build_graph(facts: list[FileFacts], project: Project) -> RouterGraph:
    """Merge per-file routers and mounts into one graph.

    Needs every file's facts at once: a mount's child may live in any file.
    """
    graph = RouterGraph()
    for file_facts in facts:
        for name, base_path in file_facts.routers.items():
            graph.add_node(RouterNode(file_facts.path, name, base_path))

    for file_facts in facts:
        for mount in file_facts.mounts:
            child = _resolve_child(mount, file_facts, project)
            if child is None or child not in graph.nodes:
                logger.debug("unresolved mount", file=str(file_facts.path), child=mount.child, prefix=mount.prefix)
                continue
            graph.add_edge(MountEdge(router_id(file_facts.path, mount.parent), child, mount.prefix))
    return graph


def _resolve_child(mount: MountRecord, file_facts: FileFacts, project: Project) -> str | None:
    if mount.child_file is not None:
        exports = project.exports(mount.child_file)
        if exports is None or exports.default is None:
            return None
        return router_id(mount.child_file, exports.default)

    if mount.child is None:
        return None
    if mount.child in file_facts.routers:
        return router_id(file_facts.path, mount.child)

    source = project.provider.try_parse(file_facts.path)
    if source is None:
        return None
    binding = project.imports(source).get(mount.child)
    if binding is None:
        return None
    exports = project.exports(binding.source_file)
    local = exports.local_name(binding) if exports else None
    return router_id(binding.source_file, local) if local else None
