"""Graph builder — converts Forge nodes and a link index into render-model graph data.

Three independent edge passes produce the edge list:
  1. Dependency edges  (task ``depends_on`` → dependency blocks task)
  2. Reference edges   (wiki-links, suppressed where a dependency already
                        connects the same pair in either direction)
  3. Containment edges (parent container → child, grouping only)

The passes are concatenated without cross-kind deduplication: a dependency
and a containment edge between the same two nodes may coexist.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum

from forge_graph.links import LinkIndex
from forge_graph.nodes import (
    ForgeNode,
    NodeType,
    get_dependencies,
    get_node_status,
    get_parent_id,
    is_container_node,
)

logger = logging.getLogger(__name__)

# ─── Positions & Grid Defaults ────────────────────────────────────────────────


@dataclass(frozen=True)
class NodePosition:
    """Top-left corner of a node in canvas pixels."""

    x: float
    y: float


NodePositions = dict[str, NodePosition]


@dataclass(frozen=True)
class GridConfig:
    """Geometry of the default placement grid and of every rendered node card."""

    start_x: float = 100
    start_y: float = 100
    node_width: float = 180
    node_height: float = 80
    horizontal_gap: float = 80
    vertical_gap: float = 60
    nodes_per_row: int = 4


GRID_CONFIG = GridConfig()


def default_position(index: int, grid: GridConfig = GRID_CONFIG) -> NodePosition:
    """Grid slot for the ``index``-th node lacking a stored position."""
    row, col = divmod(index, grid.nodes_per_row)
    return NodePosition(
        x=grid.start_x + col * (grid.node_width + grid.horizontal_gap),
        y=grid.start_y + row * (grid.node_height + grid.vertical_gap),
    )


# ─── Render Model ─────────────────────────────────────────────────────────────


class EdgeKind(str, Enum):
    Dependency = "dependency"
    Reference = "reference"
    Containment = "containment"


_EDGE_ID_PREFIX: dict[EdgeKind, str] = {
    EdgeKind.Dependency: "dep",
    EdgeKind.Reference: "ref",
    EdgeKind.Containment: "contain",
}


def edge_id(kind: EdgeKind, source: str, target: str) -> str:
    """Deterministic edge id for (kind, source, target)."""
    return f"{_EDGE_ID_PREFIX[kind]}-{source}->{target}"


@dataclass
class GraphNode:
    """One visible Forge node on the canvas."""

    id: str
    position: NodePosition
    label: str
    node_type: NodeType
    tags: tuple[str, ...] = ()
    status: str | None = None
    is_container: bool = False
    parent_id: str | None = None
    selected: bool = False
    is_on_critical_path: bool = False
    critical_path_position: int = -1
    forge_node: ForgeNode | None = field(default=None, repr=False, compare=False)


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    kind: EdgeKind
    is_on_critical_path: bool = False


@dataclass
class GraphData:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {node.id for node in self.nodes}


def forge_node_to_graph_node(node: ForgeNode, position: NodePosition, selected: bool) -> GraphNode:
    return GraphNode(
        id=node.id,
        position=position,
        label=node.title,
        node_type=node.type,
        tags=tuple(node.tags),
        status=get_node_status(node),
        is_container=is_container_node(node),
        parent_id=get_parent_id(node),
        selected=selected,
        forge_node=node,
    )


# ─── Edge Passes ──────────────────────────────────────────────────────────────


def create_dependency_edges(nodes: Mapping[str, ForgeNode]) -> list[GraphEdge]:
    """One edge dependency → task for every resolvable ``depends_on`` entry."""
    edges: list[GraphEdge] = []
    seen: set[str] = set()

    for node in nodes.values():
        for dependency_id in get_dependencies(node):
            if dependency_id not in nodes:
                logger.debug("Skipping dependency of %s on missing node %s", node.id, dependency_id)
                continue
            eid = edge_id(EdgeKind.Dependency, dependency_id, node.id)
            if eid in seen:
                continue
            seen.add(eid)
            edges.append(GraphEdge(id=eid, source=dependency_id, target=node.id, kind=EdgeKind.Dependency))

    return edges


def create_reference_edges(
    nodes: Mapping[str, ForgeNode],
    link_index: LinkIndex,
    dependency_edges: Iterable[GraphEdge],
) -> list[GraphEdge]:
    """One edge per outgoing wiki-link, unless a dependency already joins the pair.

    Links whose source or target is not in ``nodes`` are skipped; the index may
    be stale or cover a larger node set. Targets are visited in sorted order so
    repeated builds produce identical lists.
    """
    dependency_pairs: set[frozenset[str]] = {frozenset((e.source, e.target)) for e in dependency_edges}
    edges: list[GraphEdge] = []
    seen: set[str] = set()

    for source_id, targets in link_index.outgoing.items():
        for target_id in sorted(targets):
            if source_id not in nodes or target_id not in nodes:
                logger.debug("Skipping link %s -> %s: endpoint not in node set", source_id, target_id)
                continue
            if frozenset((source_id, target_id)) in dependency_pairs:
                continue
            eid = edge_id(EdgeKind.Reference, source_id, target_id)
            if eid in seen:
                continue
            seen.add(eid)
            edges.append(GraphEdge(id=eid, source=source_id, target=target_id, kind=EdgeKind.Reference))

    return edges


def create_containment_edges(nodes: Mapping[str, ForgeNode]) -> list[GraphEdge]:
    edges: list[GraphEdge] = []
    seen: set[str] = set()

    for node in nodes.values():
        parent_id = get_parent_id(node)
        if not parent_id or parent_id not in nodes:
            continue
        eid = edge_id(EdgeKind.Containment, parent_id, node.id)
        if eid in seen:
            continue
        seen.add(eid)
        edges.append(GraphEdge(id=eid, source=parent_id, target=node.id, kind=EdgeKind.Containment))

    return edges


def nodes_to_edges(nodes: Mapping[str, ForgeNode], link_index: LinkIndex) -> list[GraphEdge]:
    """All dependency, reference and containment edges, in that order."""
    dependency_edges = create_dependency_edges(nodes)
    reference_edges = create_reference_edges(nodes, link_index, dependency_edges)
    containment_edges = create_containment_edges(nodes)
    return [*dependency_edges, *reference_edges, *containment_edges]


# ─── Public API ───────────────────────────────────────────────────────────────


def nodes_to_graph_data(
    nodes: Mapping[str, ForgeNode],
    link_index: LinkIndex,
    stored_positions: Mapping[str, NodePosition] | None = None,
    selected_node_id: str | None = None,
) -> GraphData:
    """Convert Forge nodes and a link index into graph data.

    Args:
        nodes: Ordered id → node mapping. Iteration order decides default grid slots.
        link_index: Wiki-link adjacency built from node content.
        stored_positions: Positions from the position store; nodes without one
            get a default grid slot.
        selected_node_id: Node to mark as selected, if any.

    Returns:
        A ``GraphData`` with one GraphNode per input node and the typed edge list.
    """
    stored = stored_positions or {}
    graph_nodes = [
        forge_node_to_graph_node(node, stored.get(node.id) or default_position(index), node.id == selected_node_id)
        for index, node in enumerate(nodes.values())
    ]
    return GraphData(nodes=graph_nodes, edges=nodes_to_edges(nodes, link_index))


def extract_node_positions(graph_nodes: Iterable[GraphNode]) -> NodePositions:
    """Current positions of graph nodes, keyed by id, for the position store."""
    return {node.id: NodePosition(x=node.position.x, y=node.position.y) for node in graph_nodes}


def apply_stored_positions(
    graph_nodes: Iterable[GraphNode],
    stored_positions: Mapping[str, NodePosition],
) -> list[GraphNode]:
    """Return copies of graph nodes with stored positions applied where present."""
    result: list[GraphNode] = []
    for node in graph_nodes:
        stored = stored_positions.get(node.id)
        result.append(replace(node, position=stored) if stored is not None else node)
    return result


def filter_graph_data(graph_data: GraphData, visible_node_ids: Iterable[str]) -> GraphData:
    """Keep visible nodes and the edges whose both endpoints are visible.

    An edge with a hidden endpoint is dropped, never re-routed.
    """
    visible = set(visible_node_ids)
    return GraphData(
        nodes=[node for node in graph_data.nodes if node.id in visible],
        edges=[edge for edge in graph_data.edges if edge.source in visible and edge.target in visible],
    )


def get_connected_node_ids(node_id: str, link_index: LinkIndex) -> set[str]:
    """Ids linked to or from ``node_id`` (for highlighting)."""
    return set(link_index.outgoing.get(node_id, ())) | set(link_index.incoming.get(node_id, ()))


def get_all_tags(nodes: Mapping[str, ForgeNode]) -> list[str]:
    """Unique tags across all nodes, sorted."""
    return sorted({tag for node in nodes.values() for tag in node.tags})
