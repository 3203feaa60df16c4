"""forge_graph — node-relationship graph builder and hierarchical auto-layout for Forge projects."""

from forge_graph.clustering import (
    ClusteredGraphData,
    TagCluster,
    create_cluster_nodes,
    group_nodes_by_tag,
    nodes_to_graph_data_with_clusters,
)
from forge_graph.errors import ForgeGraphError, LayoutError, UnknownNodeError
from forge_graph.graph import (
    GRID_CONFIG,
    EdgeKind,
    GraphData,
    GraphEdge,
    GraphNode,
    NodePosition,
    NodePositions,
    apply_stored_positions,
    extract_node_positions,
    filter_graph_data,
    nodes_to_graph_data,
)
from forge_graph.links import LinkIndex, build_link_index

__version__ = "0.1.0"

__all__ = [
    "GRID_CONFIG",
    "ClusteredGraphData",
    "EdgeKind",
    "ForgeGraphError",
    "GraphData",
    "GraphEdge",
    "GraphNode",
    "LayoutError",
    "LinkIndex",
    "NodePosition",
    "NodePositions",
    "TagCluster",
    "UnknownNodeError",
    "apply_stored_positions",
    "build_link_index",
    "create_cluster_nodes",
    "extract_node_positions",
    "filter_graph_data",
    "group_nodes_by_tag",
    "nodes_to_graph_data",
    "nodes_to_graph_data_with_clusters",
]
