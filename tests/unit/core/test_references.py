"""
Unit tests for core/references.py - Reverse-Reference Finder.
"""
import msgspec

from conftest import arg, node, ref
from core.references import find_references_in_graph, find_references_to_node
from core.schemas import Reference, decode_node
from infrastructure.config import ResolverConfig


def make_node(payload):
    return decode_node(msgspec.json.encode(payload))


# =============================================================================
# SINGLE NODE
# =============================================================================

def test_template_reference_in_system_prompt():
    llm = make_node(node(5, "LLM", systemPrompt="{{3.out}}"))
    assert find_references_to_node(3, llm) == [Reference(field="systemPrompt", token="3.out")]


def test_structured_reference_carries_index_and_name():
    llm = make_node(node(5, "LLM", inputs=[arg("a"), arg("b"), ref("question", "3.out")]))
    assert find_references_to_node("3", llm) == [
        Reference(field="inputArgs[2].question", token="3.out"),
    ]


def test_every_embedded_token_is_found():
    llm = make_node(node(5, "LLM", userPrompt="{{3.a}} then {{4.b}} then {{3.c.d}}"))
    assert [r.token for r in find_references_to_node(3, llm)] == ["3.a", "3.c.d"]


def test_other_sources_are_ignored():
    llm = make_node(node(5, "LLM", inputs=[ref("q", "33.out")], systemPrompt="{{13.out}}"))
    assert find_references_to_node(3, llm) == []


def test_http_and_database_fields():
    http = make_node(node(5, "HTTPRequest", url="https://x/{{1.id}}", body='{"q": "{{1.q}}"}'))
    sql = make_node(node(6, "Database", sql="SELECT * FROM t WHERE id = {{1.id}}"))
    assert [r.field for r in find_references_to_node(1, http)] == ["url", "body"]
    assert [r.field for r in find_references_to_node(1, sql)] == ["sql"]


def test_database_query_in_system_prompt():
    """The editor's SQL box saves into systemPrompt."""
    db = make_node(node(9, "Database", systemPrompt="SELECT * FROM users WHERE id = {{1.uid}}"))
    assert find_references_to_node(1, db) == [Reference(field="systemPrompt", token="1.uid")]


def test_loop_output_binding(loop_graph):
    loop = loop_graph.nodes[1]
    assert find_references_to_node(3, loop) == [Reference(field="outputArgs[0].results", token="3.out")]


def test_configured_template_fields_replace_defaults():
    code = make_node(node(5, "Code", content="{{1.x}}", sql="{{1.y}}"))
    config = ResolverConfig(template_fields={"Code": ("sql",)})
    assert find_references_to_node(1, code) == [Reference(field="content", token="1.x")]
    assert find_references_to_node(1, code, config=config) == [Reference(field="sql", token="1.y")]


# =============================================================================
# WHOLE GRAPH
# =============================================================================

def test_graph_wide_references(loop_graph):
    found = find_references_in_graph(1, loop_graph)
    assert [(r.node_id, r.field, r.token) for r in found] == [("2", "inputArgs[0].arr", "1.arr")]


def test_graph_wide_includes_inner_nodes(build_graph):
    loop = node(2, "Loop")
    loop["innerNodes"] = [node(3, "LLM", systemPrompt="{{1.q}}")]
    graph = build_graph(node(1, "Start", next_ids=[2]), loop)
    found = find_references_in_graph(1, graph)
    assert [(r.node_id, r.field) for r in found] == [("3", "systemPrompt")]


def test_graph_wide_skips_the_source(build_graph):
    graph = build_graph(node(1, "LLM", systemPrompt="{{1.self}}"))
    assert find_references_in_graph(1, graph) == []


def test_graph_wide_finds_output_bindings(loop_graph):
    found = find_references_in_graph(3, loop_graph)
    assert [(r.node_id, r.field, r.token) for r in found] == [("2", "outputArgs[0].results", "3.out")]
