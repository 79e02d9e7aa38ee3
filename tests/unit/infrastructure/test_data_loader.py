"""
Unit tests for infrastructure/data_loader.py

Tests:
- Snapshot loading from files, bytes and text
- GraphLoadError on unreadable or invalid input
- Polars report frames
"""
import polars as pl
import pytest

from core.references import find_references_in_graph
from core.resolver import calculate_node_previous_args
from core.schemas import GraphReference
from infrastructure.data_loader import (
    ARG_MAP_SCHEMA,
    REFERENCES_SCHEMA,
    DataLoadError,
    GraphLoadError,
    arg_map_frame,
    load_graph,
    references_frame,
    summarize_references,
)


# =============================================================================
# LOADING
# =============================================================================

def test_load_from_file(snapshot_file):
    graph = load_graph(snapshot_file)
    assert [n.key for n in graph.nodes] == ["1", "2", "3", "4"]


def test_load_from_str_path(snapshot_file):
    assert len(load_graph(str(snapshot_file)).nodes) == 4


def test_load_from_bytes_and_text():
    data = '{"nodes": [{"id": 1, "type": "Start", "nextNodeIds": []}]}'
    assert load_graph(data.encode()).nodes[0].key == "1"
    assert load_graph(data).nodes[0].key == "1"


def test_load_snapshot_with_nulls():
    """Lists the editor left null load and resolve like empty ones."""
    data = (
        '{"nodes": ['
        '{"id": 1, "type": "Start", "nextNodeIds": [2], "nodeConfig": {"inputArgs": null,'
        ' "outputArgs": [{"name": "q", "dataType": "String", "subArgs": null}]}},'
        '{"id": 2, "type": "End", "nextNodeIds": null, "nodeConfig": {"outputArgs": null}}'
        '], "edges": null}'
    )
    graph = load_graph(data)
    result = calculate_node_previous_args(2, graph)
    assert [p.id for p in result.previous_nodes] == [1]
    assert "1.q" in result.arg_map


def test_missing_file(tmp_path):
    with pytest.raises(GraphLoadError) as exc:
        load_graph(tmp_path / "missing.json")
    assert isinstance(exc.value, DataLoadError)
    assert "missing.json" in exc.value.source


def test_not_json():
    with pytest.raises(GraphLoadError):
        load_graph(b"not json at all")


def test_wrong_structure():
    with pytest.raises(GraphLoadError) as exc:
        load_graph('{"nodes": [{"id": 1, "type": "Wormhole"}]}')
    assert exc.value.source == "<text>"


# =============================================================================
# FRAMES
# =============================================================================

def test_references_frame(loop_graph):
    frame = references_frame(find_references_in_graph(1, loop_graph))
    assert frame.columns == list(REFERENCES_SCHEMA)
    assert frame.schema["token"] == pl.Utf8
    assert frame.rows() == [("2", "inputArgs[0].arr", "1.arr")]


def test_empty_references_frame():
    frame = references_frame([])
    assert frame.height == 0
    assert frame.columns == ["node_id", "field", "token"]


def test_arg_map_frame(loop_graph):
    result = calculate_node_previous_args(3, loop_graph)
    frame = arg_map_frame(result.arg_map)
    assert frame.columns == list(ARG_MAP_SCHEMA)
    assert frame.height == len(result.arg_map)
    row = frame.filter(pl.col("token") == "2.INDEX").row(0, named=True)
    assert row["node_id"] == "2"
    assert row["data_type"] == "Integer"
    assert row["system_variable"] is True


def test_summarize_references():
    refs = [
        GraphReference(node_id="5", field="systemPrompt", token="1.a"),
        GraphReference(node_id="7", field="url", token="1.a"),
        GraphReference(node_id="7", field="body", token="1.b"),
    ]
    summary = summarize_references(refs)
    assert summary.rows() == [("7", 2), ("5", 1)]
