"""Auto-layout entry points — turn visible graph data into absolute node positions.

Two variants:
  - flat: every node is a sibling in one frame; all edges take part.
  - hierarchical: children are nested inside their parent container's box and
    containment edges are left out, since nesting already encodes them.

Both hand the structure to a ``LayeredLayoutEngine`` in one request, flatten
the frame-relative result to absolute coordinates and can center it in a
viewport. The engine runs in a worker thread so callers on an event loop are
not blocked.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable

from forge_graph.graph import GRID_CONFIG, EdgeKind, GraphEdge, GraphNode, GridConfig, NodePosition, NodePositions
from forge_graph.layout.sugiyama import LayeredLayoutEngine
from forge_graph.layout.types import (
    DEFAULT_LAYOUT_OPTIONS,
    AutoLayoutOptions,
    LayoutBox,
    LayoutEdge,
    LayoutGraph,
    Padding,
)

logger = logging.getLogger(__name__)

# Top padding leaves room for the container's own card above its children.
CONTAINER_TOP_PADDING: float = GRID_CONFIG.node_height + 32
CONTAINER_SIDE_PADDING: float = 24

ParentChildIndex = dict[str, list[str]]

# ─── Structure Construction ───────────────────────────────────────────────────


def _leaf_box(node_id: str) -> LayoutBox:
    return LayoutBox(id=node_id, width=GRID_CONFIG.node_width, height=GRID_CONFIG.node_height)


def _layout_edges(edges: Iterable[GraphEdge]) -> list[LayoutEdge]:
    return [LayoutEdge(id=edge.id, source=edge.source, target=edge.target) for edge in edges]


def build_parent_child_index(nodes: Iterable[GraphNode]) -> ParentChildIndex:
    """parent id → child ids, in node order."""
    index: ParentChildIndex = {}
    for node in nodes:
        if node.parent_id:
            index.setdefault(node.parent_id, []).append(node.id)
    return index


def nest_children(root_id: str, index: ParentChildIndex, visited: set[str]) -> LayoutBox:
    """Build the box for ``root_id`` with its descendants nested inside.

    Uses an explicit worklist. ``visited`` is shared across calls: a node
    already placed somewhere is never nested again, which breaks cyclic
    containment data. Boxes that end up with children get container padding.
    """
    root = _leaf_box(root_id)
    visited.add(root_id)
    worklist = [root]
    while worklist:
        box = worklist.pop()
        for child_id in index.get(box.id, []):
            if child_id in visited:
                logger.debug("Not nesting %s under %s: already placed (containment cycle)", child_id, box.id)
                continue
            visited.add(child_id)
            child = _leaf_box(child_id)
            box.children.append(child)
            worklist.append(child)
        if box.children:
            box.padding = Padding(
                top=CONTAINER_TOP_PADDING,
                left=CONTAINER_SIDE_PADDING,
                bottom=CONTAINER_SIDE_PADDING,
                right=CONTAINER_SIDE_PADDING,
            )
    return root


def build_compound_graph(
    nodes: list[GraphNode],
    edges: Iterable[GraphEdge],
    options: AutoLayoutOptions = DEFAULT_LAYOUT_OPTIONS,
) -> LayoutGraph:
    """Nest children inside their parents; keep only non-containment edges.

    Roots are nodes without a parent or whose parent is not in ``nodes``.
    Nodes reachable from no root (members of a pure containment cycle) are
    promoted to roots in node order so that every node is placed.
    """
    node_ids = {node.id for node in nodes}
    index = build_parent_child_index(node for node in nodes if node.parent_id in node_ids)
    visited: set[str] = set()

    roots = [node.id for node in nodes if not node.parent_id or node.parent_id not in node_ids]
    children: list[LayoutBox] = []
    for root_id in roots:
        if root_id not in visited:
            children.append(nest_children(root_id, index, visited))

    for node in nodes:
        if node.id not in visited:
            logger.debug("Promoting %s to top level: unreachable from any root (containment cycle)", node.id)
            children.append(nest_children(node.id, index, visited))

    return LayoutGraph(
        children=children,
        edges=_layout_edges(edge for edge in edges if edge.kind is not EdgeKind.Containment),
        options=options,
    )


def build_flat_graph(
    nodes: list[GraphNode],
    edges: Iterable[GraphEdge],
    options: AutoLayoutOptions = DEFAULT_LAYOUT_OPTIONS,
) -> LayoutGraph:
    """Every node as a top-level sibling; every edge kept."""
    return LayoutGraph(children=[_leaf_box(node.id) for node in nodes], edges=_layout_edges(edges), options=options)


# ─── Flattening & Centering ───────────────────────────────────────────────────


def flatten_positions(graph: LayoutGraph) -> NodePositions:
    """Accumulate parent offsets top-down into one absolute position per box."""
    positions: NodePositions = {}
    stack: list[tuple[LayoutBox, float, float]] = [(box, 0.0, 0.0) for box in reversed(graph.children)]
    while stack:
        box, offset_x, offset_y = stack.pop()
        abs_x = (box.x or 0.0) + offset_x
        abs_y = (box.y or 0.0) + offset_y
        positions[box.id] = NodePosition(x=abs_x, y=abs_y)
        stack.extend((child, abs_x, abs_y) for child in reversed(box.children))
    return positions


def center_positions(
    positions: NodePositions,
    viewport_width: float,
    viewport_height: float,
    grid: GridConfig = GRID_CONFIG,
) -> NodePositions:
    """Translate positions so their bounding box sits centered in the viewport.

    The bounding box spans each position plus one node card. The offset puts
    the box at the grid start margin plus half the spare viewport space,
    never less than the margin, so content never starts at a negative origin.
    """
    if not positions:
        return {}

    min_x = min(p.x for p in positions.values())
    min_y = min(p.y for p in positions.values())
    max_x = max(p.x + grid.node_width for p in positions.values())
    max_y = max(p.y + grid.node_height for p in positions.values())

    offset_x = max(0.0, (viewport_width - (max_x - min_x)) / 2) - min_x + grid.start_x
    offset_y = max(0.0, (viewport_height - (max_y - min_y)) / 2) - min_y + grid.start_y

    return {node_id: NodePosition(x=p.x + offset_x, y=p.y + offset_y) for node_id, p in positions.items()}


# ─── Entry Points ─────────────────────────────────────────────────────────────


async def _run(engine: LayeredLayoutEngine, graph: LayoutGraph) -> NodePositions:
    laid_out = await asyncio.to_thread(engine.layout, graph)
    return flatten_positions(laid_out)


async def calculate_layout(
    engine: LayeredLayoutEngine,
    nodes: list[GraphNode],
    edges: list[GraphEdge],
    options: AutoLayoutOptions = DEFAULT_LAYOUT_OPTIONS,
) -> NodePositions:
    """Lay out ``nodes`` as siblings of one frame.

    Raises:
        UnknownNodeError: an edge references a node not in ``nodes``.
    """
    if not nodes:
        return {}
    return await _run(engine, build_flat_graph(nodes, edges, options))


async def calculate_centered_layout(
    engine: LayeredLayoutEngine,
    nodes: list[GraphNode],
    edges: list[GraphEdge],
    viewport_width: float,
    viewport_height: float,
    options: AutoLayoutOptions = DEFAULT_LAYOUT_OPTIONS,
) -> NodePositions:
    positions = await calculate_layout(engine, nodes, edges, options)
    return center_positions(positions, viewport_width, viewport_height)


async def calculate_hierarchical_layout(
    engine: LayeredLayoutEngine,
    nodes: list[GraphNode],
    edges: list[GraphEdge],
    options: AutoLayoutOptions = DEFAULT_LAYOUT_OPTIONS,
) -> NodePositions:
    """Lay out ``nodes`` with children nested inside their containers.

    ``edges`` may include containment edges; they are dropped before layout.
    Returned positions are absolute.

    Raises:
        UnknownNodeError: a non-containment edge references a node not in ``nodes``.
    """
    if not nodes:
        return {}
    return await _run(engine, build_compound_graph(nodes, edges, options))


async def calculate_centered_hierarchical_layout(
    engine: LayeredLayoutEngine,
    nodes: list[GraphNode],
    edges: list[GraphEdge],
    viewport_width: float,
    viewport_height: float,
    options: AutoLayoutOptions = DEFAULT_LAYOUT_OPTIONS,
) -> NodePositions:
    positions = await calculate_hierarchical_layout(engine, nodes, edges, options)
    return center_positions(positions, viewport_width, viewport_height)


def has_containment(nodes: Iterable[GraphNode]) -> bool:
    """True if any node's parent is among ``nodes`` (the hierarchical variant is needed)."""
    node_list = list(nodes)
    ids = {node.id for node in node_list}
    return any(node.parent_id in ids for node in node_list if node.parent_id)


# ─── Superseded Requests ──────────────────────────────────────────────────────


class LayoutScheduler:
    """Cancel-and-restart policy for layout requests.

    Starting a request cancels the previous one if it has not finished; the
    superseded caller sees ``asyncio.CancelledError``. The delegate's worker
    thread cannot be interrupted, so a cancelled computation may still run to
    completion, but its result is discarded.
    """

    def __init__(self) -> None:
        self._current: asyncio.Future[NodePositions] | None = None

    async def run(self, request: Awaitable[NodePositions]) -> NodePositions:
        if self._current is not None and not self._current.done():
            logger.debug("Cancelling superseded layout request")
            self._current.cancel()
        task = asyncio.ensure_future(request)
        self._current = task
        return await task
