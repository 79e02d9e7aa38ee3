"""
VARSCOPE CORE - Central exports for the snapshot model and graph access.

This module provides access to:
- Snapshot schemas (WorkflowGraph, node variants, ArgDef)
- The graph index (WorkflowGraphIndex)
- Reference tokens and argMap lookups

Queries that read configuration live in their own modules and are
imported from there:
    from core.resolver import calculate_node_previous_args
    from core.references import find_references_to_node
    from core.graph_invariants import validate_workflow
"""

# Schemas
from core.schemas import (
    ArgDef,
    GraphReference,
    Node,
    NodePreviousArgs,
    PreviousNode,
    Reference,
    WorkflowGraph,
    decode_graph,
    encode,
    graph_from_builtins,
)

# Graph access
from core.graph_accessor import (
    GraphError,
    NodeNotFoundError,
    WorkflowGraphIndex,
)

# Reference lookups
from core.arg_map import (
    is_valid_reference,
    get_referenced_arg,
)
from core.tokens import parse_variable_reference

__all__ = [
    # Schemas
    "ArgDef",
    "GraphReference",
    "Node",
    "NodePreviousArgs",
    "PreviousNode",
    "Reference",
    "WorkflowGraph",
    "decode_graph",
    "encode",
    "graph_from_builtins",
    # Graph access
    "GraphError",
    "NodeNotFoundError",
    "WorkflowGraphIndex",
    # Reference lookups
    "is_valid_reference",
    "get_referenced_arg",
    "parse_variable_reference",
]
