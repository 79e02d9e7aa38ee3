"""
Pytest configuration and shared fixtures for the varscope test suite.

Graphs are written the way the editor saves them (camelCase JSON) and
converted with graph_from_builtins, so every test also exercises decoding.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_global_state():
    """Use default settings (not the on-disk config) for every test."""
    from infrastructure.config import ResolverConfig, reset_config, set_config

    set_config(ResolverConfig())

    yield

    reset_config()


def arg(name, data_type="String", **extra):
    """One ArgDef in editor JSON."""
    payload = {"name": name, "dataType": data_type}
    payload.update(extra)
    return payload


def ref(name, token, data_type="String", **extra):
    """An ArgDef bound by Reference."""
    return arg(name, data_type, bindValueType="Reference", bindValue=token, **extra)


def node(node_id, node_type, next_ids=(), inputs=(), outputs=(), loop=None, **config):
    """One node in editor JSON; extra keyword args go into nodeConfig."""
    payload = {
        "id": node_id,
        "name": f"{node_type}_{node_id}",
        "type": node_type,
        "nextNodeIds": list(next_ids),
        "nodeConfig": {
            "inputArgs": list(inputs),
            "outputArgs": list(outputs),
            **config,
        },
    }
    if loop is not None:
        payload["loopNodeId"] = loop
    return payload


@pytest.fixture
def build_graph():
    """Factory: build a WorkflowGraph from editor-shaped node dicts."""
    from core.schemas import graph_from_builtins

    def _build(*nodes, edges=(), system_variables=()):
        return graph_from_builtins({
            "nodes": list(nodes),
            "edges": list(edges),
            "systemVariables": list(system_variables),
        })

    return _build


@pytest.fixture
def diamond_graph(build_graph):
    """Start(1) -> A(2) -> C(3) and Start(1) -> B(4) -> C(3); A walked before B."""
    return build_graph(
        node(1, "Start", next_ids=[2, 4]),
        node(2, "Code", next_ids=[3], outputs=[arg("a_out")]),
        node(4, "Code", next_ids=[3], outputs=[arg("b_out")]),
        node(3, "End", next_ids=[]),
    )


@pytest.fixture
def loop_graph(build_graph):
    """
    Start(1, arr: Array_Object{field}) -> Loop(2, arr <- 1.arr) -> End(4).

    Code(3) is the loop body; its link back to Loop 2 is the loop-back edge.
    """
    field = arg("field", "String")
    return build_graph(
        node(1, "Start", next_ids=[2], outputs=[arg("arr", "Array_Object", subArgs=[field])]),
        {
            **node(
                2, "Loop", next_ids=[4],
                inputs=[ref("arr", "1.arr", "Array_Object")],
                outputs=[ref("results", "3.out", "Array_String")],
            ),
            "innerStartNodeId": 3,
        },
        node(3, "Code", next_ids=[2], outputs=[arg("out")], loop=2),
        node(4, "End", next_ids=[], inputs=[ref("final", "2.results", "Array_String")]),
    )


@pytest.fixture
def exception_graph(build_graph):
    """
    Start(1) -> S(2) -> End(3); S fails over to X(5) -> T(6).

    T is reachable only through S's exception edge.
    """
    return build_graph(
        node(1, "Start", next_ids=[2]),
        node(
            2, "LLM", next_ids=[3], outputs=[arg("answer")],
            exceptionHandleConfig={
                "exceptionHandleType": "EXECUTE_EXCEPTION_FLOW",
                "exceptionHandleNodeIds": [5],
            },
        ),
        node(3, "End"),
        node(5, "Code", next_ids=[6], outputs=[arg("fallback")]),
        node(6, "Output", content="{{2.answer}} / {{5.fallback}}"),
    )


@pytest.fixture
def cyclic_graph(build_graph):
    """Start(1) -> 2 -> 3 -> 2 (cycle), 3 -> End(4)."""
    return build_graph(
        node(1, "Start", next_ids=[2]),
        node(2, "Code", next_ids=[3], outputs=[arg("two")]),
        node(3, "Code", next_ids=[2, 4], outputs=[arg("three")]),
        node(4, "End"),
    )


@pytest.fixture
def snapshot_file(tmp_path, loop_graph):
    """The loop graph saved as a JSON file."""
    from core.schemas import encode

    path = tmp_path / "workflow.json"
    path.write_bytes(encode(loop_graph))
    return path
