"""Critical path — the longest dependency chain through unfinished work.

Only incomplete tasks and pending decisions take part. The graph builder does
not compute this; hosts call ``calculate_critical_path`` and pass the result
to ``apply_critical_path`` to annotate graph data for rendering.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

import networkx as nx

from forge_graph.graph import EdgeKind, GraphData
from forge_graph.nodes import (
    DecisionNode,
    DecisionStatus,
    ForgeNode,
    TaskNode,
    TaskStatus,
    get_dependencies,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CriticalPathNode:
    id: str
    title: str
    status: str
    distance: int


@dataclass
class CriticalPathResult:
    """Ordered path plus lookup sets; edge keys are ``(dependency, dependent)`` pairs."""

    nodes: list[CriticalPathNode] = field(default_factory=list)
    node_ids: set[str] = field(default_factory=set)
    edge_keys: set[tuple[str, str]] = field(default_factory=set)

    @property
    def length(self) -> int:
        return len(self.nodes)

    @property
    def has_path(self) -> bool:
        return bool(self.nodes)

    def position_of(self, node_id: str) -> int:
        for cp_node in self.nodes:
            if cp_node.id == node_id:
                return cp_node.distance
        return -1


def is_incomplete_node(node: ForgeNode) -> bool:
    if isinstance(node, TaskNode):
        return node.status is not TaskStatus.Complete
    if isinstance(node, DecisionNode):
        return node.status is not DecisionStatus.Selected
    return False


def _incomplete_subgraph(nodes: Mapping[str, ForgeNode]) -> nx.DiGraph:
    g: nx.DiGraph = nx.DiGraph()
    for node_id, node in nodes.items():
        if is_incomplete_node(node):
            g.add_node(node_id)
    for node_id in g.nodes:
        for dependency_id in get_dependencies(nodes[node_id]):
            if dependency_id in g and dependency_id != node_id:
                g.add_edge(dependency_id, node_id)
    return g


def calculate_critical_path(nodes: Mapping[str, ForgeNode]) -> CriticalPathResult:
    """Longest chain (by node count) of incomplete tasks/decisions.

    Ties are broken by node order so results are stable. A dependency cycle
    among incomplete nodes yields an empty result.
    """
    g = _incomplete_subgraph(nodes)
    if g.number_of_nodes() == 0:
        return CriticalPathResult()

    order = {node_id: i for i, node_id in enumerate(nodes)}
    try:
        sorted_ids = list(nx.lexicographical_topological_sort(g, key=order.__getitem__))
    except nx.NetworkXUnfeasible:
        logger.debug("Dependency cycle among incomplete nodes; no critical path")
        return CriticalPathResult()

    distance: dict[str, int] = {node_id: 1 for node_id in sorted_ids}
    predecessor: dict[str, str | None] = {node_id: None for node_id in sorted_ids}
    for node_id in sorted_ids:
        for dependent in g.successors(node_id):
            if distance[node_id] + 1 > distance[dependent]:
                distance[dependent] = distance[node_id] + 1
                predecessor[dependent] = node_id

    end = max(sorted_ids, key=lambda n: (distance[n], -order[n]))
    path: list[str] = []
    current: str | None = end
    while current is not None:
        path.append(current)
        current = predecessor[current]
    path.reverse()

    result = CriticalPathResult()
    for index, node_id in enumerate(path):
        node = nodes[node_id]
        result.nodes.append(CriticalPathNode(id=node_id, title=node.title, status=node.status.value, distance=index))
        result.node_ids.add(node_id)
        if index < len(path) - 1:
            result.edge_keys.add((node_id, path[index + 1]))
    return result


def apply_critical_path(graph_data: GraphData, critical_path: CriticalPathResult) -> GraphData:
    """Copy of ``graph_data`` with critical-path flags set on nodes and dependency edges."""
    nodes = [
        replace(
            node,
            is_on_critical_path=node.id in critical_path.node_ids,
            critical_path_position=critical_path.position_of(node.id),
        )
        for node in graph_data.nodes
    ]
    edges = [
        replace(
            edge,
            is_on_critical_path=edge.kind is EdgeKind.Dependency and (edge.source, edge.target) in critical_path.edge_keys,
        )
        for edge in graph_data.edges
    ]
    return GraphData(nodes=nodes, edges=edges)
