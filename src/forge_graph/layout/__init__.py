"""Hierarchical auto-layout: a layered delegate plus entry points that nest containers and flatten results."""

from forge_graph.layout.engine import (
    LayoutScheduler,
    build_compound_graph,
    build_flat_graph,
    calculate_centered_hierarchical_layout,
    calculate_centered_layout,
    calculate_hierarchical_layout,
    calculate_layout,
    center_positions,
    flatten_positions,
    has_containment,
)
from forge_graph.layout.sugiyama import LayeredLayoutEngine
from forge_graph.layout.types import (
    DEFAULT_LAYOUT_OPTIONS,
    AutoLayoutOptions,
    LayoutAlgorithm,
    LayoutBox,
    LayoutDirection,
    LayoutEdge,
    LayoutGraph,
    Padding,
)

__all__ = [
    "DEFAULT_LAYOUT_OPTIONS",
    "AutoLayoutOptions",
    "LayeredLayoutEngine",
    "LayoutAlgorithm",
    "LayoutBox",
    "LayoutDirection",
    "LayoutEdge",
    "LayoutGraph",
    "LayoutScheduler",
    "Padding",
    "build_compound_graph",
    "build_flat_graph",
    "calculate_centered_hierarchical_layout",
    "calculate_centered_layout",
    "calculate_hierarchical_layout",
    "calculate_layout",
    "center_positions",
    "flatten_positions",
    "has_containment",
]
