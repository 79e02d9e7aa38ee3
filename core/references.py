"""
Reverse-Reference Finder.

Given a source node id, find every field that points at it: structured
Reference bindings and {{token}} templates in free text. Each node variant
declares which of its fields can carry references (see Node.scan), so there
is no guessing over arbitrary config keys.

Drives delete/rename impact warnings and dangling-reference highlighting.
"""
import logging
from typing import List, Optional

from core.graph_accessor import WorkflowGraphIndex
from core.schemas import GraphReference, Node, NodeId, Reference, WorkflowGraph, node_key
from core.tokens import token_node_id
from infrastructure.config import ResolverConfig, get_config

logger = logging.getLogger(__name__)


def find_references_to_node(
    source_node_id: NodeId,
    node: Node,
    *,
    config: Optional[ResolverConfig] = None,
) -> List[Reference]:
    """
    Every reference inside one node that points at the source node.

    Array fields carry their index in the field path, e.g.
    "inputArgs[2].question". Every embedded template token is reported, not
    just the first.

    Args:
        source_node_id: Node whose outputs are referenced
        node: Node to scan
        config: Overrides the default config (template field lists)

    Returns:
        (field, token) pairs in field order
    """
    config = config or get_config()
    source = node_key(source_node_id)
    template_fields = config.template_fields_for(node.node_type.value)
    return [
        Reference(field=field_path, token=token)
        for field_path, token in node.scan(template_fields)
        if token_node_id(token) == source
    ]


def find_references_in_graph(
    source_node_id: NodeId,
    graph: WorkflowGraph,
    *,
    config: Optional[ResolverConfig] = None,
) -> List[GraphReference]:
    """
    Run the finder over every other node of a snapshot (loop bodies included).

    Returns:
        (node_id, field, token) records in snapshot order
    """
    config = config or get_config()
    source = node_key(source_node_id)
    index = WorkflowGraphIndex(
        graph,
        follow_exception_edges=config.follow_exception_edges,
        exception_flow_modes=config.exception_flow_modes,
    )
    found: List[GraphReference] = []
    for node in index.iter_nodes():
        if node.key == source:
            continue
        for ref in find_references_to_node(source, node, config=config):
            found.append(GraphReference(node_id=node.key, field=ref.field, token=ref.token))
    logger.debug(f"{len(found)} references to {source}")
    return found
