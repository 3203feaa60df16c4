"""Exceptions raised by the graph builder and layout engine.

Graph construction never raises for bad input data (dangling dependencies,
cyclic containment); only the layout delegate rejects a graph it cannot
position faithfully.
"""

from __future__ import annotations


class ForgeGraphError(Exception):
    """Base class for all forge_graph errors."""


class LayoutError(ForgeGraphError):
    """The layout delegate rejected its input."""


class UnknownNodeError(LayoutError):
    """An edge handed to the layout delegate references a node that is not in the layout structure.

    Callers must pre-filter edges (see ``filter_graph_data``) before layout.
    """

    def __init__(self, edge_id: str, node_id: str) -> None:
        super().__init__(f"Edge {edge_id!r} references unknown node {node_id!r}")
        self.edge_id = edge_id
        self.node_id = node_id
