"""Tag clustering — collapse nodes sharing a tag into one cluster pseudo-node.

Tag membership is not a partition: a node tagged ``{a, b}`` belongs to both
clusters. A node is hidden only when every cluster it belongs to is collapsed.
Untagged nodes form the reserved ``UNTAGGED`` cluster.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from forge_graph.graph import (
    GRID_CONFIG,
    GraphData,
    NodePosition,
    default_position,
    filter_graph_data,
    forge_node_to_graph_node,
    nodes_to_edges,
    nodes_to_graph_data,
)
from forge_graph.links import LinkIndex
from forge_graph.nodes import ForgeNode

logger = logging.getLogger(__name__)

UNTAGGED = "__untagged__"
UNTAGGED_LABEL = "Untagged"
CLUSTER_PREFIX = "cluster-"

# Cluster cards use their own, sparser grid.
_CLUSTER_PER_ROW: int = 3
_CLUSTER_WIDTH: float = 160
_CLUSTER_HEIGHT: float = 60
_CLUSTER_H_GAP: float = 100
_CLUSTER_V_GAP: float = 80

#: tag → expanded? (missing tags are collapsed)
ClusterExpandedState = Mapping[str, bool]


@dataclass
class TagCluster:
    """Pseudo-node standing in for the members of one collapsed tag."""

    id: str
    tag: str
    label: str
    member_ids: list[str]
    expanded: bool
    position: NodePosition

    @property
    def member_count(self) -> int:
        return len(self.member_ids)


@dataclass
class ClusteredGraphData(GraphData):
    clusters: list[TagCluster] = field(default_factory=list)


def cluster_id(tag: str) -> str:
    return f"{CLUSTER_PREFIX}{tag}"


def cluster_position(index: int) -> NodePosition:
    row, col = divmod(index, _CLUSTER_PER_ROW)
    return NodePosition(
        x=GRID_CONFIG.start_x + col * (_CLUSTER_WIDTH + _CLUSTER_H_GAP),
        y=GRID_CONFIG.start_y + row * (_CLUSTER_HEIGHT + _CLUSTER_V_GAP),
    )


def group_nodes_by_tag(nodes: Mapping[str, ForgeNode]) -> dict[str, list[str]]:
    """tag → member ids, in node order. Untagged nodes go under ``UNTAGGED``."""
    groups: dict[str, list[str]] = {}
    for node in nodes.values():
        if not node.tags:
            groups.setdefault(UNTAGGED, []).append(node.id)
            continue
        for tag in dict.fromkeys(node.tags):
            groups.setdefault(tag, []).append(node.id)
    return groups


def create_cluster_nodes(
    tag_groups: Mapping[str, list[str]],
    expanded_state: ClusterExpandedState,
    stored_positions: Mapping[str, NodePosition] | None = None,
) -> list[TagCluster]:
    """One pseudo-node per collapsed tag; expanded tags emit nothing."""
    stored = stored_positions or {}
    clusters: list[TagCluster] = []

    for tag, member_ids in tag_groups.items():
        if expanded_state.get(tag, False):
            continue
        cid = cluster_id(tag)
        clusters.append(
            TagCluster(
                id=cid,
                tag=tag,
                label=UNTAGGED_LABEL if tag == UNTAGGED else tag,
                member_ids=list(member_ids),
                expanded=False,
                position=stored.get(cid) or cluster_position(len(clusters)),
            )
        )

    return clusters


def hidden_node_ids(tag_groups: Mapping[str, list[str]], expanded_state: ClusterExpandedState) -> set[str]:
    """Ids whose every containing tag group is collapsed."""
    collapsed: set[str] = set()
    expanded: set[str] = set()
    for tag, member_ids in tag_groups.items():
        target = expanded if expanded_state.get(tag, False) else collapsed
        target.update(member_ids)
    return collapsed - expanded


def nodes_to_graph_data_with_clusters(
    nodes: Mapping[str, ForgeNode],
    link_index: LinkIndex,
    enable_clustering: bool = False,
    expanded_clusters: ClusterExpandedState | None = None,
    stored_positions: Mapping[str, NodePosition] | None = None,
    selected_node_id: str | None = None,
) -> ClusteredGraphData:
    """Build graph data, optionally collapsing tag groups into cluster pseudo-nodes.

    With clustering disabled the result equals ``nodes_to_graph_data`` plus an
    empty cluster list. With it enabled, hidden nodes are left out, default
    grid slots are assigned over the visible nodes only, and edges are
    filtered exactly as ``filter_graph_data`` would.
    """
    if not enable_clustering:
        plain = nodes_to_graph_data(nodes, link_index, stored_positions, selected_node_id)
        return ClusteredGraphData(nodes=plain.nodes, edges=plain.edges, clusters=[])

    expanded_state = expanded_clusters or {}
    stored = stored_positions or {}
    tag_groups = group_nodes_by_tag(nodes)
    clusters = create_cluster_nodes(tag_groups, expanded_state, stored)
    hidden = hidden_node_ids(tag_groups, expanded_state)
    logger.debug("Clustering hides %d of %d nodes in %d clusters", len(hidden), len(nodes), len(clusters))

    visible_nodes = [node for node in nodes.values() if node.id not in hidden]
    graph_nodes = [
        forge_node_to_graph_node(node, stored.get(node.id) or default_position(index), node.id == selected_node_id)
        for index, node in enumerate(visible_nodes)
    ]
    filtered = filter_graph_data(
        GraphData(nodes=graph_nodes, edges=nodes_to_edges(nodes, link_index)),
        (node.id for node in visible_nodes),
    )
    return ClusteredGraphData(nodes=filtered.nodes, edges=filtered.edges, clusters=clusters)
