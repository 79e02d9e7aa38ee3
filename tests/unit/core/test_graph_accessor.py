"""
Unit tests for core/graph_accessor.py - WorkflowGraphIndex

Tests the index over a snapshot including:
- Node lookup by int or string id
- Forward edges (normal, branch, exception, canvas, body)
- Malformed edges as dead ends
- Loop membership chains and body ordering
"""
import pytest

from conftest import arg, node
from core.graph_accessor import NodeNotFoundError, WorkflowGraphIndex
from core.ontology import EdgeKind


# =============================================================================
# NODE ACCESS
# =============================================================================

def test_lookup_accepts_int_and_str_ids(diamond_graph):
    index = WorkflowGraphIndex(diamond_graph)
    assert index.get_node(2).key == "2"
    assert index.get_node("2").key == "2"
    assert 3 in index
    assert len(index) == 4


def test_get_node_missing_raises(diamond_graph):
    index = WorkflowGraphIndex(diamond_graph)
    with pytest.raises(NodeNotFoundError) as exc:
        index.get_node("99")
    assert exc.value.node_id == "99"
    assert index.find_node("99") is None


def test_duplicate_ids_keep_first(build_graph):
    graph = build_graph(node(1, "Start", outputs=[arg("first")]), node(1, "End"))
    index = WorkflowGraphIndex(graph)
    assert index.node_count == 1
    assert index.get_node(1).config.output_args[0].name == "first"


# =============================================================================
# EDGES
# =============================================================================

def test_successors_in_wiring_order(diamond_graph):
    index = WorkflowGraphIndex(diamond_graph)
    assert [s.key for s in index.successors(1)] == ["2", "4"]
    assert index.edge_kind("1", "2") == EdgeKind.NORMAL


def test_roots_put_start_first(build_graph):
    graph = build_graph(node(9, "Code", next_ids=[2]), node(1, "Start", next_ids=[2]), node(2, "End"))
    assert WorkflowGraphIndex(graph).roots() == ["1", "9"]


def test_branch_edges(build_graph):
    graph = build_graph(
        node(1, "Start", next_ids=[2]),
        node(2, "Condition", conditionBranchConfigs=[{"nextNodeIds": [3]}, {"nextNodeIds": [4]}]),
        node(3, "Code"),
        node(4, "Code"),
    )
    index = WorkflowGraphIndex(graph)
    assert [s.key for s in index.successors(2)] == ["3", "4"]
    assert index.edge_kind("2", "4") == EdgeKind.BRANCH


def test_intent_and_qa_branches(build_graph):
    graph = build_graph(
        node(1, "IntentRecognition", intentConfigs=[{"nextNodeIds": [2]}]),
        node(2, "QA", options=[{"nextNodeIds": [3]}]),
        node(3, "End"),
    )
    index = WorkflowGraphIndex(graph)
    assert index.ancestors(3) == {"1", "2"}


def test_exception_edges(exception_graph):
    index = WorkflowGraphIndex(exception_graph)
    assert index.edge_kind("2", "5") == EdgeKind.EXCEPTION
    assert index.ancestors(6) == {"1", "2", "5"}
    assert index.ancestors(6, include_exception=False) == {"5"}


def test_exception_edges_can_be_disabled(exception_graph):
    index = WorkflowGraphIndex(exception_graph, follow_exception_edges=False)
    assert index.ancestors(6) == {"5"}
    assert index.roots() == ["1", "5"]


def test_normal_edge_outranks_exception_edge(build_graph):
    graph = build_graph(
        node(1, "LLM", next_ids=[2], exceptionHandleConfig={"exceptionHandleNodeIds": [2]}),
        node(2, "End"),
    )
    index = WorkflowGraphIndex(graph)
    assert index.edge_count == 1
    assert index.edge_kind("1", "2") == EdgeKind.NORMAL


def test_malformed_edges_are_dead_ends(build_graph):
    graph = build_graph(node(1, "Start", next_ids=[2, 404]), node(2, "End"))
    index = WorkflowGraphIndex(graph)
    assert [s.key for s in index.successors(1)] == ["2"]
    assert index.malformed_edges == [("1", "404")]


def test_canvas_edges_with_port_suffix(build_graph):
    graph = build_graph(
        node(1, "Start"),
        node(2, "End"),
        edges=[{"source": "1-out", "target": "2"}, {"source": "77", "target": "2"}],
    )
    index = WorkflowGraphIndex(graph)
    assert index.ancestors(2) == {"1"}
    assert ("77", "2") in index.malformed_edges


def test_cycle_detection(cyclic_graph, diamond_graph):
    cyclic = WorkflowGraphIndex(cyclic_graph)
    assert cyclic.has_cycle()
    assert cyclic.cyclic_components() == [["2", "3"]]
    assert not WorkflowGraphIndex(diamond_graph).has_cycle()


# =============================================================================
# LOOP SCOPES
# =============================================================================

def test_loop_back_link_is_not_an_edge(loop_graph):
    index = WorkflowGraphIndex(loop_graph)
    assert index.successors(3) == []
    assert not index.has_cycle()


def test_loop_body_edge(loop_graph):
    index = WorkflowGraphIndex(loop_graph)
    assert index.edge_kind("2", "3") == EdgeKind.BODY
    assert index.loop_chain(3) == ["2"]
    assert index.loop_chain(4) == []
    assert index.body_members(2) == ["3"]


def test_nested_loop_chain(build_graph):
    graph = build_graph(
        node(1, "Start", next_ids=[2]),
        node(2, "Loop"),
        node(3, "Loop", loop=2),
        node(4, "Code", loop=3),
    )
    index = WorkflowGraphIndex(graph)
    assert index.loop_chain(4) == ["3", "2"]
    assert index.ancestors(4) == {"1", "2", "3"}


def test_loop_chain_stops_on_bad_ids(build_graph):
    graph = build_graph(
        node(1, "Code", loop=404),
        node(2, "Code", loop=1),
        node(3, "Loop", loop=4),
        node(4, "Loop", loop=3),
    )
    index = WorkflowGraphIndex(graph)
    assert index.loop_chain(1) == []
    assert index.loop_chain(2) == []
    assert index.loop_chain(3) == ["4"]


def test_inner_nodes_merged_into_index(build_graph):
    loop = node(2, "Loop")
    loop["innerNodes"] = [node(3, "Code", next_ids=[4]), node(4, "Code")]
    graph = build_graph(node(1, "Start", next_ids=[2]), loop)
    index = WorkflowGraphIndex(graph)
    assert index.loop_chain(4) == ["2"]
    assert index.body_order(2) == ["3", "4"]
    assert index.edge_kind("2", "3") == EdgeKind.BODY
    assert index.edge_kind("2", "4") is None


def test_body_order_follows_the_body_walk(build_graph):
    loop = {**node(2, "Loop"), "innerStartNodeId": 5}
    graph = build_graph(
        loop,
        node(3, "Code", next_ids=[2], loop=2),
        node(4, "Code", next_ids=[3], loop=2),
        node(5, "Code", next_ids=[4], loop=2),
    )
    assert WorkflowGraphIndex(graph).body_order(2) == ["5", "4", "3"]
