"""Layered layout delegate — Sugiyama-style pipeline over compound graphs.

Phases, run once per frame (the root frame and every box nesting children):
  1. Cycle removal  (greedy-FAS approach)
  2. Layer assignment (longest path, then tightened to shorten edges)
  3. Dummy node insertion for edges spanning several layers
  4. Crossing minimization (barycenter heuristic)
  5. Coordinate assignment (x/y positions)

Disconnected components of a frame are laid out separately and packed into
rows. Frames are processed children-first so that a compound box already has
its final size when its own parent frame is laid out.
"""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import networkx as nx

from forge_graph.errors import LayoutError, UnknownNodeError
from forge_graph.layout.types import (
    DUMMY_PREFIX,
    ROOT_ID,
    AutoLayoutOptions,
    LayoutAlgorithm,
    LayoutBox,
    LayoutDirection,
    LayoutGraph,
)

logger = logging.getLogger(__name__)

# Fixed seed so the force variant is reproducible.
FORCE_SEED: int = 7

# ─── Cycle Removal (Greedy-FAS) ───────────────────────────────────────────────


def greedy_fas_ordering(graph: nx.DiGraph) -> list[str]:
    """Compute a node ordering using the greedy-FAS heuristic.

    Returns a list of node ids in an ordering that minimizes back-edges.
    Nodes earlier in the ordering should have outgoing edges going forward.

    Algorithm (Eades, Lin, Smyth 1993):
    - Maintain dynamic in/out degree counters updated as nodes are removed.
    - Repeatedly:
        1. Move all sinks (out_deg == 0) to s2.
        2. Move all sources (in_deg == 0) to s1.
        3. Of remaining nodes in cycles, pick max (out - in) and add to s1.
    - Final ordering: s1 + reversed(s2).

    The active set keeps graph insertion order so ties resolve the same way
    on every run.
    """
    active: dict[str, None] = dict.fromkeys(graph.nodes)

    out_deg: dict[str, int] = {node: graph.out_degree(node) for node in graph.nodes}
    in_deg: dict[str, int] = {node: graph.in_degree(node) for node in graph.nodes}

    s1: list[str] = []
    s2: list[str] = []

    while active:
        changed = True
        while changed:
            changed = False
            sinks = [n for n in active if out_deg[n] == 0]
            if sinks:
                changed = True
                for sink in sinks:
                    del active[sink]
                    s2.append(sink)
                    for pred in graph.predecessors(sink):
                        if pred in active:
                            out_deg[pred] -= 1

        changed = True
        while changed:
            changed = False
            sources = [n for n in active if in_deg[n] == 0]
            if sources:
                changed = True
                for source in sources:
                    del active[source]
                    s1.append(source)
                    for succ in graph.successors(source):
                        if succ in active:
                            in_deg[succ] -= 1

        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            del active[best]
            s1.append(best)
            for succ in graph.successors(best):
                if succ in active:
                    in_deg[succ] -= 1
            for pred in graph.predecessors(best):
                if pred in active:
                    out_deg[pred] -= 1

    s2.reverse()
    s1.extend(s2)
    return s1


def remove_cycles(graph: nx.DiGraph) -> tuple[nx.DiGraph, set[tuple[str, str]]]:
    """Remove cycles from a copy of the DiGraph using the greedy-FAS heuristic.

    Returns a tuple of:
    - new_graph: copy of graph with back-edges reversed (self-loops removed)
    - reversed_edges: set of (src_id, tgt_id) tuples that were reversed
      (identified relative to the ORIGINAL graph's edge directions)
    """
    if graph.number_of_nodes() == 0:
        return graph.copy(), set()

    position: dict[str, int] = {node: pos for pos, node in enumerate(greedy_fas_ordering(graph))}

    reversed_edges: set[tuple[str, str]] = set()
    for src, tgt in graph.edges():
        if src == tgt or position[src] > position[tgt]:
            reversed_edges.add((src, tgt))

    new_graph: nx.DiGraph = nx.DiGraph()
    new_graph.add_nodes_from(graph.nodes(data=True))

    for src, tgt, edge_attrs in graph.edges(data=True):
        if src == tgt:
            continue
        if (src, tgt) in reversed_edges:
            new_graph.add_edge(tgt, src, **edge_attrs)
        else:
            new_graph.add_edge(src, tgt, **edge_attrs)

    return new_graph, reversed_edges


# ─── Layer Assignment ─────────────────────────────────────────────────────────


def assign_layers(dag: nx.DiGraph) -> dict[str, int]:
    """Rank every node of a DAG so each edge points to a strictly later layer.

    Longest-path ranking first, then ``tighten_layers`` pulls nodes with more
    outgoing than incoming edges towards their successors, which shortens the
    total edge length.
    """
    layers: dict[str, int] = {node: 0 for node in dag.nodes}
    for node in nx.topological_sort(dag):
        for succ in dag.successors(node):
            if layers[succ] < layers[node] + 1:
                layers[succ] = layers[node] + 1

    tighten_layers(dag, layers)
    return layers


def tighten_layers(dag: nx.DiGraph, layers: dict[str, int]) -> None:
    """Move nodes down towards their successors when that shortens more edges than it stretches.

    Nodes are visited in reverse topological order so successors are already
    final. Layers are renumbered to start at 0 afterwards.
    """
    for node in reversed(list(nx.topological_sort(dag))):
        successors = list(dag.successors(node))
        if not successors or len(successors) <= dag.in_degree(node):
            continue
        lowest = min(layers[s] for s in successors) - 1
        if lowest > layers[node]:
            layers[node] = lowest

    if layers:
        base = min(layers.values())
        if base:
            for node in layers:
                layers[node] -= base


# ─── Dummy Node Insertion ─────────────────────────────────────────────────────


@dataclass
class AugmentedGraph:
    """A graph augmented with dummy nodes for edges that span multiple layers.

    After dummy node insertion, every edge in the augmented graph connects
    nodes in adjacent layers (layer difference == 1). This is a pre-condition
    for crossing minimisation and coordinate assignment.
    """

    graph: nx.DiGraph
    layers: dict[str, int]
    layer_count: int
    dummy_chains: dict[tuple[str, str], list[str]] = field(default_factory=dict)


def insert_dummy_nodes(dag: nx.DiGraph, layers: dict[str, int]) -> AugmentedGraph:
    """Replace each edge u → v with layer[v] - layer[u] > 1 by a chain u → d₁ → … → dₖ → v."""
    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(dag.nodes)
    augmented_layers = dict(layers)
    chains: dict[tuple[str, str], list[str]] = {}

    for index, (src, tgt) in enumerate(list(dag.edges())):
        span = augmented_layers[tgt] - augmented_layers[src]
        if span <= 1:
            g.add_edge(src, tgt)
            continue

        chain: list[str] = []
        prev = src
        for step in range(span - 1):
            dummy_id = f"{DUMMY_PREFIX}{index}_{step}"
            g.add_node(dummy_id)
            augmented_layers[dummy_id] = augmented_layers[src] + step + 1
            g.add_edge(prev, dummy_id)
            chain.append(dummy_id)
            prev = dummy_id
        g.add_edge(prev, tgt)
        chains[(src, tgt)] = chain

    layer_count = (max(augmented_layers.values()) + 1) if augmented_layers else 0
    return AugmentedGraph(graph=g, layers=augmented_layers, layer_count=layer_count, dummy_chains=chains)


# ─── Crossing Minimization (Barycenter) ───────────────────────────────────────


def minimise_crossings(aug: AugmentedGraph, model_order: dict[str, int] | None = None) -> list[list[str]]:
    """Minimise edge crossings using the barycenter heuristic.

    The initial order within each layer follows ``model_order`` (the order
    nodes were handed in), with dummy nodes after real ones in insertion
    order. Top-down and bottom-up sweeps run until the crossing count stops
    improving; the best ordering seen is returned.
    """
    order_of = model_order or {}
    ordering: list[list[str]] = [[] for _ in range(aug.layer_count)]
    for _index, node_id in sorted(
        enumerate(aug.graph.nodes), key=lambda item: (order_of.get(item[1], len(order_of) + item[0]), item[0])
    ):
        ordering[aug.layers[node_id]].append(node_id)

    best_ordering = [list(layer) for layer in ordering]
    best = count_crossings(ordering, aug.graph)

    max_passes = 24
    for _pass in range(max_passes):
        if best == 0:
            break

        for layer_idx in range(1, aug.layer_count):
            prev: dict[str, float] = {nid: float(i) for i, nid in enumerate(ordering[layer_idx - 1])}
            ordering[layer_idx].sort(key=lambda a, p=prev: _barycenter(a, aug.graph, p, "incoming"))

        for layer_idx in range(max(0, aug.layer_count - 2), -1, -1):
            nxt: dict[str, float] = {nid: float(i) for i, nid in enumerate(ordering[layer_idx + 1])}
            ordering[layer_idx].sort(key=lambda a, n=nxt: _barycenter(a, aug.graph, n, "outgoing"))

        new = count_crossings(ordering, aug.graph)
        if new >= best:
            break
        best = new
        best_ordering = [list(layer) for layer in ordering]

    return best_ordering


def _barycenter(node_id: str, graph: nx.DiGraph, neighbor_pos: dict[str, float], direction: str) -> float:
    """Average position of a node's neighbours in the adjacent layer.

    Returns float('inf') if the node has no neighbours there, which keeps it
    after the nodes that do (the sort is stable).
    """
    neighbors = graph.predecessors(node_id) if direction == "incoming" else graph.successors(node_id)
    positions = [neighbor_pos[nb] for nb in neighbors if nb in neighbor_pos]
    if not positions:
        return float("inf")
    return sum(positions) / len(positions)


def count_crossings(ordering: list[list[str]], graph: nx.DiGraph) -> int:
    """Count edge crossings between consecutive layers (inversion count)."""
    total = 0
    for l_idx in range(len(ordering) - 1):
        tgt_pos: dict[str, int] = {nid: i for i, nid in enumerate(ordering[l_idx + 1])}
        edges: list[tuple[int, int]] = []
        for sp, src_id in enumerate(ordering[l_idx]):
            for nb in graph.successors(src_id):
                if nb in tgt_pos:
                    edges.append((sp, tgt_pos[nb]))
        for i in range(len(edges)):
            for j in range(i + 1, len(edges)):
                ei, ej = edges[i], edges[j]
                if (ei[0] < ej[0] and ei[1] > ej[1]) or (ei[0] > ej[0] and ei[1] < ej[1]):
                    total += 1
    return total


# ─── Coordinate Assignment ────────────────────────────────────────────────────


@dataclass
class LayoutNode:
    """A node placed in the working frame, where layers stack along y.

    ``width`` runs across a layer and ``height`` along the layer axis; for
    horizontal directions these are the box's height and width respectively.
    """

    id: str
    layer: int
    order: int
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> float:
        return self.x + self.width / 2


def is_dummy(node_id: str) -> bool:
    return node_id.startswith(DUMMY_PREFIX)


def assign_coordinates(
    ordering: list[list[str]],
    aug: AugmentedGraph,
    sizes: dict[str, tuple[float, float]],
    options: AutoLayoutOptions,
) -> list[LayoutNode]:
    """Assign working-frame coordinates to every node in the augmented graph.

    ``sizes`` maps node id → (across-layer size, along-layer-axis size).
    Dummy nodes are ``edge_spacing`` wide and take no layer thickness.
    Each layer is as thick as its thickest node; nodes are centered on that
    thickness. Layers are first centered on the widest one, then nodes are
    pulled over the mean center of their predecessors (top-down) and sources
    over their successors (bottom-up), pushing right only to avoid overlap.
    """

    def dims(node_id: str) -> tuple[float, float]:
        if node_id in sizes:
            return sizes[node_id]
        return (options.edge_spacing, 0.0)

    def gap(left: str, right: str) -> float:
        if is_dummy(left) or is_dummy(right):
            return options.edge_spacing
        return options.node_spacing

    layer_thickness = [max((dims(nid)[1] for nid in layer), default=0.0) for layer in ordering]
    layer_y: list[float] = []
    y = 0.0
    for thickness in layer_thickness:
        layer_y.append(y)
        y += thickness + options.level_spacing

    layer_widths: list[float] = []
    for layer in ordering:
        total = sum(dims(nid)[0] for nid in layer)
        total += sum(gap(a, b) for a, b in zip(layer, layer[1:]))
        layer_widths.append(total)
    center_line = max(layer_widths, default=0.0) / 2

    nodes: dict[str, LayoutNode] = {}
    for layer_idx, layer in enumerate(ordering):
        x = center_line - layer_widths[layer_idx] / 2
        for order, node_id in enumerate(layer):
            width, height = dims(node_id)
            nodes[node_id] = LayoutNode(
                id=node_id,
                layer=layer_idx,
                order=order,
                x=x,
                y=layer_y[layer_idx] + (layer_thickness[layer_idx] - height) / 2,
                width=width,
                height=height,
            )
            if order + 1 < len(layer):
                x += width + gap(node_id, layer[order + 1])

    g = aug.graph
    for layer_idx in range(1, len(ordering)):
        _align_layer(ordering[layer_idx], nodes, g.predecessors, gap, lambda nid: True)

    for layer_idx in range(len(ordering) - 2, -1, -1):
        _align_layer(
            ordering[layer_idx],
            nodes,
            g.successors,
            gap,
            lambda nid: g.in_degree(nid) == 0,
        )

    placed = list(nodes.values())
    if placed:
        min_x = min(n.x for n in placed)
        for n in placed:
            n.x -= min_x

    return placed


def _align_layer(
    layer: list[str],
    nodes: dict[str, LayoutNode],
    neighbours: Callable[[str], Iterable[str]],
    gap: Callable[[str, str], float],
    movable: Callable[[str], bool],
) -> None:
    """Move movable nodes over the mean center of their neighbours, left to right, without overlap."""
    prev: LayoutNode | None = None
    for node_id in layer:
        node = nodes[node_id]
        desired = node.x
        if movable(node_id):
            centers = [nodes[nb].center for nb in neighbours(node_id) if nb in nodes]
            if centers:
                desired = sum(centers) / len(centers) - node.width / 2
        if prev is not None:
            desired = max(desired, prev.x + prev.width + gap(prev.id, node_id))
        node.x = desired
        prev = node


def orient(
    placed: list[LayoutNode],
    direction: LayoutDirection,
) -> tuple[dict[str, tuple[float, float]], float, float]:
    """Map working-frame nodes onto ``direction``; dummy nodes are dropped.

    Returns (id → top-left position, frame width, frame height).
    """
    across = max((n.x + n.width for n in placed), default=0.0)
    along = max((n.y + n.height for n in placed), default=0.0)

    positions: dict[str, tuple[float, float]] = {}
    for n in placed:
        if is_dummy(n.id):
            continue
        if direction is LayoutDirection.DOWN:
            positions[n.id] = (n.x, n.y)
        elif direction is LayoutDirection.UP:
            positions[n.id] = (n.x, along - n.y - n.height)
        elif direction is LayoutDirection.RIGHT:
            positions[n.id] = (n.y, n.x)
        else:
            positions[n.id] = (along - n.y - n.height, n.x)

    if direction.is_horizontal:
        return positions, along, across
    return positions, across, along


# ─── Frames & Components ──────────────────────────────────────────────────────


@dataclass
class FrameLayout:
    """Positions of a frame's direct children relative to the frame's content origin."""

    positions: dict[str, tuple[float, float]]
    width: float
    height: float


def layout_component(
    graph: nx.DiGraph,
    sizes: dict[str, tuple[float, float]],
    options: AutoLayoutOptions,
    direction: LayoutDirection,
) -> FrameLayout:
    """Run the layered pipeline on one connected component."""
    model_order = {node_id: i for i, node_id in enumerate(graph.nodes)}
    dag, reversed_edges = remove_cycles(graph)
    if reversed_edges:
        logger.debug("Reversed %d edge(s) to break cycles: %s", len(reversed_edges), sorted(reversed_edges))

    aug = insert_dummy_nodes(dag, assign_layers(dag))
    ordering = minimise_crossings(aug, model_order)

    working_sizes = {
        node_id: ((h, w) if direction.is_horizontal else (w, h)) for node_id, (w, h) in sizes.items()
    }
    placed = assign_coordinates(ordering, aug, working_sizes, options)
    positions, width, height = orient(placed, direction)
    return FrameLayout(positions=positions, width=width, height=height)


def force_layout(
    graph: nx.DiGraph,
    sizes: dict[str, tuple[float, float]],
    options: AutoLayoutOptions,
) -> FrameLayout:
    """Spring-embedder placement of a whole frame, scaled to pixel space."""
    node_ids = list(graph.nodes)
    if len(node_ids) == 1:
        w, h = sizes[node_ids[0]]
        return FrameLayout(positions={node_ids[0]: (0.0, 0.0)}, width=w, height=h)

    cell = max(max(w, h) for w, h in sizes.values()) + options.node_spacing
    scale = cell * math.sqrt(len(node_ids))
    raw = nx.spring_layout(graph.to_undirected(as_view=True), seed=FORCE_SEED)

    positions: dict[str, tuple[float, float]] = {}
    for node_id in node_ids:
        w, h = sizes[node_id]
        cx, cy = raw[node_id]
        positions[node_id] = (float(cx) * scale - w / 2, float(cy) * scale - h / 2)

    min_x = min(x for x, _ in positions.values())
    min_y = min(y for _, y in positions.values())
    positions = {nid: (x - min_x, y - min_y) for nid, (x, y) in positions.items()}
    width = max(x + sizes[nid][0] for nid, (x, _) in positions.items())
    height = max(y + sizes[nid][1] for nid, (_, y) in positions.items())
    return FrameLayout(positions=positions, width=width, height=height)


def pack_components(components: list[FrameLayout], options: AutoLayoutOptions) -> FrameLayout:
    """Pack component layouts into rows whose width targets ``options.aspect_ratio``.

    Components keep their given order; ``component_spacing`` separates them.
    """
    if len(components) == 1:
        return components[0]

    spacing = options.component_spacing
    area = sum((c.width + spacing) * (c.height + spacing) for c in components)
    row_limit = max(max(c.width for c in components), math.sqrt(area * options.aspect_ratio))

    positions: dict[str, tuple[float, float]] = {}
    x = y = row_height = 0.0
    width = 0.0
    for component in components:
        if x > 0 and x + component.width > row_limit:
            x = 0.0
            y += row_height + spacing
            row_height = 0.0
        for node_id, (px, py) in component.positions.items():
            positions[node_id] = (px + x, py + y)
        width = max(width, x + component.width)
        row_height = max(row_height, component.height)
        x += component.width + spacing

    return FrameLayout(positions=positions, width=width, height=y + row_height)


def layout_frame(
    child_ids: list[str],
    sizes: dict[str, tuple[float, float]],
    edges: Iterable[tuple[str, str]],
    options: AutoLayoutOptions,
    direction: LayoutDirection,
) -> FrameLayout:
    """Lay out the direct children of one frame given edges between them."""
    if not child_ids:
        return FrameLayout(positions={}, width=0.0, height=0.0)

    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(child_ids)
    g.add_edges_from(edges)

    if options.algorithm is LayoutAlgorithm.FORCE:
        return force_layout(g, sizes, options)

    model_order = {node_id: i for i, node_id in enumerate(child_ids)}
    components = sorted(nx.weakly_connected_components(g), key=lambda c: min(model_order[n] for n in c))
    layouts = [
        layout_component(
            g.subgraph(sorted(component, key=model_order.__getitem__)).copy(),
            {node_id: sizes[node_id] for node_id in component},
            options,
            direction,
        )
        for component in components
    ]
    return pack_components(layouts, options)


# ─── Delegate ─────────────────────────────────────────────────────────────────


def _post_order(roots: list[LayoutBox]) -> list[LayoutBox]:
    """Every box in the structure, children before their parent."""
    result: list[LayoutBox] = []
    stack: list[tuple[LayoutBox, bool]] = [(box, False) for box in reversed(roots)]
    while stack:
        box, children_done = stack.pop()
        if children_done:
            result.append(box)
            continue
        stack.append((box, True))
        stack.extend((child, False) for child in reversed(box.children))
    return result


def _ancestry(node_id: str, parents: dict[str, str]) -> list[str]:
    """[top-level ancestor, …, node_id]."""
    path = [node_id]
    while parents[path[-1]] != ROOT_ID:
        path.append(parents[path[-1]])
    path.reverse()
    return path


def lift_edge(source: str, target: str, parents: dict[str, str]) -> tuple[str, str, str] | None:
    """Express an edge in the innermost frame containing both endpoints.

    Returns (frame id, lifted source, lifted target), where the lifted ends
    are the frame's direct children containing the original ends. Returns
    None for self-loops and for edges between a box and its own descendant,
    which carry no ordering information inside any frame.
    """
    src_path = _ancestry(source, parents)
    tgt_path = _ancestry(target, parents)
    depth = 0
    while depth < min(len(src_path), len(tgt_path)) and src_path[depth] == tgt_path[depth]:
        depth += 1
    if depth == len(src_path) or depth == len(tgt_path):
        return None
    frame = src_path[depth - 1] if depth else ROOT_ID
    return frame, src_path[depth], tgt_path[depth]


class LayeredLayoutEngine:
    """Layered layout for compound graphs.

    The engine holds no per-request state: a host constructs one and passes
    it to every layout call. ``layout`` never mutates its argument.

    Contract:
      - ranks follow edge direction; crossings within a layer are minimised;
      - disconnected components are packed without overlap;
      - children of a box are positioned relative to that box;
      - an edge naming an id absent from the structure raises
        ``UnknownNodeError``;
      - self-loops are ignored and dependency cycles are broken internally,
        so every box still receives a position.
    """

    def layout(self, graph: LayoutGraph) -> LayoutGraph:
        result = copy.deepcopy(graph)
        options = result.options
        boxes = _post_order(result.children)

        parents: dict[str, str] = {}
        for box in result.children:
            parents[box.id] = ROOT_ID
        for box in boxes:
            for child in box.children:
                parents[child.id] = box.id
        if len(parents) != len(boxes):
            raise LayoutError("Layout structure contains duplicate node ids")

        frame_edges: dict[str, list[tuple[str, str]]] = {}
        for edge in result.edges:
            for end in (edge.source, edge.target):
                if end not in parents:
                    raise UnknownNodeError(edge.id, end)
            lifted = lift_edge(edge.source, edge.target, parents)
            if lifted is None:
                continue
            frame, source, target = lifted
            frame_edges.setdefault(frame, []).append((source, target))

        for box in boxes:
            if box.children:
                self._layout_compound(box, frame_edges.get(box.id, []), options)

        root = layout_frame(
            [box.id for box in result.children],
            {box.id: (box.width, box.height) for box in result.children},
            frame_edges.get(ROOT_ID, []),
            options,
            options.direction,
        )
        for box in result.children:
            box.x, box.y = root.positions[box.id]

        logger.debug(
            "Laid out %d boxes (%d top-level) in %.0fx%.0f", len(boxes), len(result.children), root.width, root.height
        )
        return result

    def _layout_compound(self, box: LayoutBox, edges: list[tuple[str, str]], options: AutoLayoutOptions) -> None:
        """Lay out ``box``'s children top-down, grow ``box`` to fit them and center them horizontally."""
        frame = layout_frame(
            [child.id for child in box.children],
            {child.id: (child.width, child.height) for child in box.children},
            edges,
            options,
            LayoutDirection.DOWN,
        )
        pad = box.padding
        box.width = max(box.width, frame.width + pad.left + pad.right)
        box.height = max(box.height, pad.top + frame.height + pad.bottom)
        inner_width = box.width - pad.left - pad.right
        dx = pad.left + (inner_width - frame.width) / 2
        for child in box.children:
            cx, cy = frame.positions[child.id]
            child.x = cx + dx
            child.y = cy + pad.top
