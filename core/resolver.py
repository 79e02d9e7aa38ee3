"""
VARSCOPE RESOLVER - Which Variables Can a Node Reference?

One query is one complete pipeline run over an explicit snapshot:

    accessor -> enumerate -> order -> materialize -> flatten

    Graph Accessor       WorkflowGraphIndex over the snapshot
    Path Enumerator      predecessors of the target, first-discovery order
    Topological Orderer  one dependency-respecting order
    Scope Materializer   what each visible predecessor exposes
    Arg Map Builder      "<nodeId>.<argName>" -> ArgDef

The resolver holds no state between calls and caches nothing: the graph
mutates live in the editor, so every call takes a fresh snapshot. Queries
are total: an unknown target, malformed edges or cycles produce a
best-effort (possibly empty) result, never an exception.

Usage:
    from core.resolver import calculate_node_previous_args

    result = calculate_node_previous_args("3", graph)
    [p.id for p in result.previous_nodes]     # [1, 2]
    "2.arr_item" in result.arg_map            # True inside Loop 2
"""
import logging
from typing import Any, Dict, List, Optional

from core.arg_map import build_arg_map
from core.graph_accessor import WorkflowGraphIndex
from core.path_enumerator import enumerate_predecessors
from core.schemas import (
    ArgDef,
    LoopNode,
    NodeId,
    NodePreviousArgs,
    PreviousNode,
    WorkflowGraph,
    clone_arg,
    node_key,
)
from core.scope import ScopeMaterializer, to_previous_node
from core.topo_order import order_predecessors
from infrastructure.config import ResolverConfig, get_config
from infrastructure.diagnostics import QueryDiagnostics

logger = logging.getLogger(__name__)


def resolve_system_variables(
    graph: WorkflowGraph,
    config: Optional[ResolverConfig] = None,
) -> List[ArgDef]:
    """
    System variables Start exposes for this snapshot.

    Variables shipped with the snapshot win over the configured set.
    """
    if graph.system_variables:
        return [clone_arg(arg, system_variable=True) for arg in graph.system_variables]
    config = config or get_config()
    return [
        ArgDef(
            name=variable.name,
            data_type=variable.data_type,
            description=variable.description,
            system_variable=True,
        )
        for variable in config.system_variables
    ]


def build_index(graph: WorkflowGraph, config: ResolverConfig) -> WorkflowGraphIndex:
    return WorkflowGraphIndex(
        graph,
        follow_exception_edges=config.follow_exception_edges,
        exception_flow_modes=config.exception_flow_modes,
    )


def calculate_node_previous_args(
    target_node_id: NodeId,
    graph: WorkflowGraph,
    *,
    config: Optional[ResolverConfig] = None,
    with_diagnostics: bool = False,
) -> NodePreviousArgs:
    """
    Compute the variables a node may reference.

    Args:
        target_node_id: Node being configured
        graph: Snapshot of the editor graph
        config: Overrides the default config
        with_diagnostics: Attach per-phase timing to the result

    Returns:
        NodePreviousArgs with previous_nodes (dependency order), the
        inner_previous_nodes of a Loop target, and the flat arg_map
    """
    config = config or get_config()
    target = node_key(target_node_id)
    dx = QueryDiagnostics(target=target)

    with dx.phase("accessor") as phase:
        index = build_index(graph, config)
        phase.count("nodes", index.node_count)
        phase.count("edges", index.edge_count)
        phase.count("malformed", len(index.malformed_edges))

    target_node = index.find_node(target)
    if target_node is None:
        logger.debug(f"Unknown target {target}, empty scope")
        return _finish(NodePreviousArgs(), dx, with_diagnostics)

    with dx.phase("enumerate") as phase:
        discovery = enumerate_predecessors(index, target)
        phase.count("predecessors", len(discovery))

    with dx.phase("order") as phase:
        ordered = order_predecessors(discovery)
        phase.count("ordered", len(ordered))

    with dx.phase("materialize") as phase:
        scope = ScopeMaterializer(index, target, resolve_system_variables(graph, config))
        previous_nodes: List[PreviousNode] = []
        for key in ordered:
            if not scope.is_visible(key):
                continue
            node = index.get_node(key)
            args = scope.expose(node)
            previous_nodes.append(to_previous_node(node, args, key in discovery.via_exception))

        inner_previous_nodes: List[PreviousNode] = []
        if isinstance(target_node, LoopNode):
            inner_previous_nodes = scope.inner_previous_nodes(target_node)
        phase.count("visible", len(previous_nodes))
        phase.count("inner", len(inner_previous_nodes))

    with dx.phase("flatten") as phase:
        arg_map = build_arg_map(previous_nodes, inner_previous_nodes)
        phase.count("tokens", len(arg_map))

    result = NodePreviousArgs(
        previous_nodes=previous_nodes,
        inner_previous_nodes=inner_previous_nodes,
        arg_map=arg_map,
    )
    return _finish(result, dx, with_diagnostics)


def _finish(result: NodePreviousArgs, dx: QueryDiagnostics, with_diagnostics: bool) -> NodePreviousArgs:
    dx.log_summary()
    if with_diagnostics:
        result.diagnostics = dx.to_dict()
    return result


def get_available_variables(
    target_node_id: NodeId,
    graph: WorkflowGraph,
    *,
    config: Optional[ResolverConfig] = None,
) -> List[Dict[str, Any]]:
    """
    Picker-ready view of a node's scope.

    Returns:
        One entry per previous node:
        {node_id, node_name, node_type, variables: [{key, name, data_type, path, description}]}
    """
    result = calculate_node_previous_args(target_node_id, graph, config=config)
    groups = []
    for previous in result.previous_nodes:
        groups.append({
            "node_id": node_key(previous.id),
            "node_name": previous.name,
            "node_type": previous.type,
            "variables": [
                {
                    "key": arg.key,
                    "name": arg.name,
                    "data_type": arg.data_type,
                    "path": arg.name,
                    "description": arg.description,
                }
                for arg in previous.output_args
            ],
        })
    return groups
