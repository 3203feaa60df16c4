"""Tests for graph.py — building typed edges, default positions and filtering."""

from __future__ import annotations

from forge_graph.graph import (
    GRID_CONFIG,
    EdgeKind,
    GraphData,
    NodePosition,
    apply_stored_positions,
    default_position,
    edge_id,
    extract_node_positions,
    filter_graph_data,
    get_all_tags,
    get_connected_node_ids,
    nodes_to_graph_data,
)
from forge_graph.links import LinkIndex
from forge_graph.nodes import (
    ComponentNode,
    DecisionNode,
    ModuleNode,
    NodeType,
    NoteNode,
    SubsystemNode,
    TaskNode,
    TaskStatus,
    node_map,
)

# ─── Helpers ──────────────────────────────────────────────────────────────────


def task(node_id: str, *depends_on: str, parent: str | None = None, tags: tuple[str, ...] = ()) -> TaskNode:
    return TaskNode(id=node_id, title=f"Task {node_id}", depends_on=depends_on, parent=parent, tags=tags)


def edge_pairs(graph: GraphData, kind: EdgeKind | None = None) -> list[tuple[str, str]]:
    return [(e.source, e.target) for e in graph.edges if kind is None or e.kind is kind]


# ─── Default Positions ────────────────────────────────────────────────────────


class TestDefaultPosition:
    def test_first_slot_at_grid_start(self):
        assert default_position(0) == NodePosition(x=GRID_CONFIG.start_x, y=GRID_CONFIG.start_y)

    def test_row_wraps(self):
        per_row = GRID_CONFIG.nodes_per_row
        assert default_position(per_row).x == GRID_CONFIG.start_x
        assert default_position(per_row).y > default_position(0).y

    def test_slots_do_not_overlap(self):
        slots = [default_position(i) for i in range(12)]
        for i, a in enumerate(slots):
            for b in slots[i + 1 :]:
                apart_x = abs(a.x - b.x) >= GRID_CONFIG.node_width
                apart_y = abs(a.y - b.y) >= GRID_CONFIG.node_height
                assert apart_x or apart_y


# ─── Builder ──────────────────────────────────────────────────────────────────


class TestNodesToGraphData:
    def test_concrete_dependency_scenario(self):
        """A; B depends on A; C depends on A and B → A→B, A→C, B→C."""
        nodes = node_map(task("A"), task("B", "A"), task("C", "A", "B"))
        graph = nodes_to_graph_data(nodes, LinkIndex.empty())
        assert edge_pairs(graph) == [("A", "B"), ("A", "C"), ("B", "C")]
        assert all(e.kind is EdgeKind.Dependency for e in graph.edges)

    def test_nodes_without_relationships(self):
        nodes = node_map(*(NoteNode(id=f"n{i}", title=f"Note {i}") for i in range(6)))
        graph = nodes_to_graph_data(nodes, LinkIndex.empty())
        assert len(graph.nodes) == 6
        assert graph.edges == []
        assert len({(n.position.x, n.position.y) for n in graph.nodes}) == 6

    def test_deterministic(self):
        nodes = node_map(task("A"), task("B", "A"), NoteNode(id="N", title="Note"))
        links = LinkIndex.from_pairs([("N", "A"), ("N", "B"), ("A", "N")])
        first = nodes_to_graph_data(nodes, links)
        second = nodes_to_graph_data(nodes, links)
        assert [(e.id, e.source, e.target, e.kind) for e in first.edges] == [
            (e.id, e.source, e.target, e.kind) for e in second.edges
        ]

    def test_edge_ids_unique_and_derived(self):
        nodes = node_map(task("A"), task("B", "A", "A"), NoteNode(id="N", title="Note", parent=None))
        graph = nodes_to_graph_data(nodes, LinkIndex.from_pairs([("N", "A")]))
        ids = [e.id for e in graph.edges]
        assert len(ids) == len(set(ids))
        assert edge_id(EdgeKind.Dependency, "A", "B") in ids
        assert edge_id(EdgeKind.Reference, "N", "A") in ids

    def test_missing_dependency_silently_skipped(self):
        nodes = node_map(task("A", "deleted"))
        graph = nodes_to_graph_data(nodes, LinkIndex.empty())
        assert graph.edges == []

    def test_duplicate_dependency_deduplicated(self):
        nodes = node_map(task("A"), task("B", "A", "A"))
        assert edge_pairs(nodes_to_graph_data(nodes, LinkIndex.empty())) == [("A", "B")]

    def test_only_tasks_produce_dependency_edges(self):
        nodes = node_map(task("A"), DecisionNode(id="D", title="Decision"))
        graph = nodes_to_graph_data(nodes, LinkIndex.empty())
        assert edge_pairs(graph, EdgeKind.Dependency) == []

    def test_dependency_suppresses_reference_same_direction(self):
        nodes = node_map(task("A"), task("B", "A"))
        graph = nodes_to_graph_data(nodes, LinkIndex.from_pairs([("A", "B")]))
        assert [(e.source, e.target, e.kind) for e in graph.edges] == [("A", "B", EdgeKind.Dependency)]

    def test_dependency_suppresses_reference_reverse_direction(self):
        """B depends on A and B's content links back to A: one dependency edge."""
        nodes = node_map(task("A"), task("B", "A"))
        graph = nodes_to_graph_data(nodes, LinkIndex.from_pairs([("B", "A")]))
        assert [(e.source, e.target, e.kind) for e in graph.edges] == [("A", "B", EdgeKind.Dependency)]

    def test_reference_edges_follow_outgoing_links(self):
        nodes = node_map(NoteNode(id="X", title="X"), NoteNode(id="Y", title="Y"))
        graph = nodes_to_graph_data(nodes, LinkIndex.from_pairs([("X", "Y"), ("Y", "X")]))
        assert edge_pairs(graph, EdgeKind.Reference) == [("X", "Y"), ("Y", "X")]

    def test_reference_to_unknown_node_skipped(self):
        """A stale link index may name ids that are not in the node set."""
        nodes = node_map(NoteNode(id="A", title="A"))
        graph = nodes_to_graph_data(nodes, LinkIndex.from_pairs([("A", "Z"), ("Q", "A")]))
        assert graph.edges == []

    def test_containment_edge(self):
        nodes = node_map(ModuleNode(id="M", title="Module"), ComponentNode(id="C", title="Part", parent="M"))
        graph = nodes_to_graph_data(nodes, LinkIndex.empty())
        assert edge_pairs(graph, EdgeKind.Containment) == [("M", "C")]
        assert edge_pairs(graph, EdgeKind.Dependency) == []
        assert edge_pairs(graph, EdgeKind.Reference) == []

    def test_containment_to_missing_parent_skipped(self):
        nodes = node_map(ComponentNode(id="C", title="Part", parent="gone"))
        assert nodes_to_graph_data(nodes, LinkIndex.empty()).edges == []

    def test_dependency_and_containment_coexist(self):
        nodes = node_map(ModuleNode(id="M", title="Module"), task("T", parent="M"))
        nodes["T"] = TaskNode(id="T", title="T", depends_on=("M",), parent="M")
        graph = nodes_to_graph_data(nodes, LinkIndex.empty())
        assert sorted((e.kind.value, e.source, e.target) for e in graph.edges) == [
            ("containment", "M", "T"),
            ("dependency", "M", "T"),
        ]

    def test_graph_node_fields(self):
        nodes = node_map(
            SubsystemNode(id="S", title="Power"),
            TaskNode(id="T", title="Wire it", status=TaskStatus.Blocked, parent="S", tags=("elec",)),
        )
        graph = nodes_to_graph_data(nodes, LinkIndex.empty(), selected_node_id="T")
        by_id = {n.id: n for n in graph.nodes}
        assert by_id["S"].is_container is True
        assert by_id["S"].parent_id is None
        assert by_id["T"].is_container is False
        assert by_id["T"].parent_id == "S"
        assert by_id["T"].status == "blocked"
        assert by_id["T"].label == "Wire it"
        assert by_id["T"].node_type is NodeType.Task
        assert by_id["T"].tags == ("elec",)
        assert by_id["T"].selected is True
        assert by_id["S"].selected is False

    def test_stored_positions_used(self):
        nodes = node_map(task("A"), task("B"))
        stored = {"B": NodePosition(x=5, y=7)}
        graph = nodes_to_graph_data(nodes, LinkIndex.empty(), stored_positions=stored)
        by_id = {n.id: n for n in graph.nodes}
        assert by_id["B"].position == NodePosition(x=5, y=7)
        assert by_id["A"].position == default_position(0)


# ─── Positions ────────────────────────────────────────────────────────────────


class TestPositions:
    def test_extract_round_trips_through_apply(self):
        graph = nodes_to_graph_data(node_map(task("A"), task("B")), LinkIndex.empty())
        positions = extract_node_positions(graph.nodes)
        assert positions == {"A": default_position(0), "B": default_position(1)}

    def test_apply_only_touches_stored(self):
        graph = nodes_to_graph_data(node_map(task("A"), task("B")), LinkIndex.empty())
        updated = apply_stored_positions(graph.nodes, {"A": NodePosition(x=1, y=2)})
        assert updated[0].position == NodePosition(x=1, y=2)
        assert updated[1] is graph.nodes[1]
        assert graph.nodes[0].position == default_position(0)


# ─── Filtering ────────────────────────────────────────────────────────────────


class TestFilterGraphData:
    def build(self) -> GraphData:
        nodes = node_map(task("A"), task("B", "A"), task("C", "B"), NoteNode(id="N", title="Note"))
        return nodes_to_graph_data(nodes, LinkIndex.from_pairs([("N", "C"), ("N", "A")]))

    def test_edges_need_both_ends_visible(self):
        graph = self.build()
        for visible in ({"A", "B"}, {"A", "C", "N"}, {"B"}, set(), {"A", "B", "C", "N"}):
            filtered = filter_graph_data(graph, visible)
            expected = [e for e in graph.edges if e.source in visible and e.target in visible]
            assert filtered.edges == expected
            assert [n.id for n in filtered.nodes] == [n.id for n in graph.nodes if n.id in visible]

    def test_hidden_endpoint_not_rerouted(self):
        filtered = filter_graph_data(self.build(), {"A", "C"})
        assert filtered.edges == []


class TestHelpers:
    def test_connected_node_ids(self):
        links = LinkIndex.from_pairs([("A", "B"), ("C", "A")])
        assert get_connected_node_ids("A", links) == {"B", "C"}
        assert get_connected_node_ids("Z", links) == set()

    def test_all_tags_sorted_unique(self):
        nodes = node_map(task("A", tags=("b", "a")), task("B", tags=("a", "c")))
        assert get_all_tags(nodes) == ["a", "b", "c"]
