"""
VARSCOPE GRAPH ACCESSOR - The Index over a Snapshot

Bridges the editor's node ids with rustworkx's integer indices, enabling:
- O(1) node lookup by id
- Rust-native ancestor queries over the forward edges
- One place that decides what counts as a forward edge

Architecture (The Bridge Pattern):
  Snapshot Layer (Business Logic)
  - Uses editor ids: 12, "12", "abc"
  - Calls: index.successors("12"), index.ancestors("12")

  Bridge Layer (This File)
  - _node_map: Dict[str, int]  (id -> index)
  - _inv_map: Dict[int, str]   (index -> id)

  Rust Layer (rustworkx.PyDiGraph)
  - _graph: every forward edge
  - _flow_graph: the same nodes without exception edges

Forward Edges:
- nextNodeIds (a body node's link back to its own Loop is not an edge)
- Branch lists of Condition / IntentRecognition / QA
- exceptionHandleNodeIds, when the handle mode routes to them
- Canvas edge list entries
- Loop -> entry of its own body

An id with no matching node is a malformed edge: it is recorded and
otherwise ignored. Building an index never raises for a decoded snapshot.
"""
import logging
import re
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Set, Tuple

import msgspec
import rustworkx as rx

from core.ontology import EdgeKind, ExceptionHandleType, NodeType
from core.schemas import LoopNode, Node, NodeId, WorkflowGraph, node_key

logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class GraphError(Exception):
    """Base exception for graph operations."""
    pass


class NodeNotFoundError(GraphError):
    """Raised when a node id is not in the snapshot."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class Successor(NamedTuple):
    key: str
    kind: EdgeKind


_CANVAS_ID = re.compile(r"^\s*(\d+)")


# =============================================================================
# WORKFLOW GRAPH INDEX
# =============================================================================

class WorkflowGraphIndex:
    """
    Read-only index over one WorkflowGraph snapshot.

    Build one per query; it holds no reference back into the editor and is
    discarded with the query result.

    Usage:
        index = WorkflowGraphIndex(graph)
        index.successors("2")        # [Successor("3", EdgeKind.NORMAL), ...]
        index.ancestors("3")         # {"1", "2"}
        index.loop_chain("5")        # ["4"] (innermost first)
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        follow_exception_edges: bool = True,
        exception_flow_modes: Sequence[str] = (ExceptionHandleType.EXECUTE_EXCEPTION_FLOW.value,),
    ):
        self._follow_exception_edges = follow_exception_edges
        self._exception_flow_modes = tuple(exception_flow_modes)

        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=False)
        self._flow_graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=False)

        # The Bridge: bidirectional id <-> index mapping (same index in both graphs)
        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}

        self._nodes: Dict[str, Node] = {}
        self._successors: Dict[str, List[Successor]] = {}
        self._edge_kinds: Dict[Tuple[str, str], EdgeKind] = {}
        self._malformed: List[Tuple[str, str]] = []
        self._body: Dict[str, List[str]] = {}

        for node in graph.nodes:
            self._index_node(node)
        self._wire_edges(graph)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.num_edges()

    @property
    def malformed_edges(self) -> List[Tuple[str, str]]:
        """(source, missing target) pairs dropped while wiring."""
        return list(self._malformed)

    # =========================================================================
    # NODE ACCESS
    # =========================================================================

    def get_node(self, node_id: NodeId) -> Node:
        """
        Strict lookup.

        Raises:
            NodeNotFoundError: If the id is not in the snapshot
        """
        key = node_key(node_id)
        if key not in self._nodes:
            raise NodeNotFoundError(key)
        return self._nodes[key]

    def find_node(self, node_id: NodeId) -> Optional[Node]:
        return self._nodes.get(node_key(node_id))

    def has_node(self, node_id: NodeId) -> bool:
        return node_key(node_id) in self._nodes

    def iter_nodes(self) -> Iterator[Node]:
        return iter(self._nodes.values())

    def keys(self) -> List[str]:
        return list(self._nodes)

    # =========================================================================
    # EDGES
    # =========================================================================

    def successors(self, node_id: NodeId) -> List[Successor]:
        """Forward successors in wiring order (normal, branch, exception, canvas, body)."""
        return list(self._successors.get(node_key(node_id), ()))

    def edge_kind(self, source: str, target: str) -> Optional[EdgeKind]:
        return self._edge_kinds.get((source, target))

    def roots(self) -> List[str]:
        """
        Nodes with no incoming forward edge.

        Start nodes come first, then the rest in snapshot order.
        """
        roots = [
            key for key, idx in self._node_map.items()
            if self._graph.in_degree(idx) == 0
        ]
        starts = [key for key in roots if self._nodes[key].node_type == NodeType.START]
        return starts + [key for key in roots if key not in starts]

    def start_nodes(self) -> List[str]:
        return [key for key, node in self._nodes.items() if node.node_type == NodeType.START]

    def ancestors(self, node_id: NodeId, include_exception: bool = True) -> Set[str]:
        """
        Every node with a forward path to the given node (itself excluded).

        Unknown ids have no ancestors.
        """
        key = node_key(node_id)
        if key not in self._node_map:
            return set()
        graph = self._graph if include_exception else self._flow_graph
        found = {self._inv_map[i] for i in rx.ancestors(graph, self._node_map[key])}
        found.discard(key)
        return found

    def descendants(self, node_id: NodeId) -> Set[str]:
        key = node_key(node_id)
        if key not in self._node_map:
            return set()
        found = {self._inv_map[i] for i in rx.descendants(self._graph, self._node_map[key])}
        found.discard(key)
        return found

    def has_cycle(self) -> bool:
        """Check if the forward edges contain any cycle."""
        return not rx.is_directed_acyclic_graph(self._graph)

    def cyclic_components(self) -> List[List[str]]:
        """Groups of nodes that reach each other, in snapshot order."""
        components = []
        for component in rx.strongly_connected_components(self._graph):
            keys = sorted((self._inv_map[i] for i in component), key=self._node_map.__getitem__)
            if len(keys) > 1 or self._graph.has_edge(self._node_map[keys[0]], self._node_map[keys[0]]):
                components.append(keys)
        components.sort(key=lambda keys: self._node_map[keys[0]])
        return components

    # =========================================================================
    # LOOP SCOPES
    # =========================================================================

    def loop_chain(self, node_id: NodeId) -> List[str]:
        """
        Ids of the Loops enclosing a node, innermost first.

        Stops at an unknown Loop id, a non-Loop id or a repeated id.
        """
        chain: List[str] = []
        node = self.find_node(node_id)
        while node is not None and node.loop_key is not None:
            loop_key = node.loop_key
            if loop_key in chain or loop_key == node_key(node_id):
                logger.debug(f"Loop chain of {node_id} revisits {loop_key}, stopping")
                break
            loop = self._nodes.get(loop_key)
            if loop is None or loop.node_type != NodeType.LOOP:
                break
            chain.append(loop_key)
            node = loop
        return chain

    def body_members(self, loop_id: NodeId) -> List[str]:
        """Direct members of a Loop's body, in snapshot order."""
        return list(self._body.get(node_key(loop_id), ()))

    def body_order(self, loop_id: NodeId) -> List[str]:
        """
        Direct body members ordered by a walk from the body entries.

        Members the walk doesn't reach follow in snapshot order.
        """
        key = node_key(loop_id)
        members = self._body.get(key, [])
        member_set = set(members)
        order: List[str] = []
        seen: Set[str] = set()
        for entry in self._body_entries(key):
            stack = [entry]
            while stack:
                current = stack.pop()
                if current in seen:
                    continue
                seen.add(current)
                order.append(current)
                nexts = [s.key for s in self._successors.get(current, ()) if s.key in member_set]
                stack.extend(reversed(nexts))
        order.extend(m for m in members if m not in seen)
        return order

    # =========================================================================
    # INTERNAL: INDEXING
    # =========================================================================

    def _index_node(self, node: Node, enclosing_loop: Optional[str] = None) -> None:
        key = node.key
        if key in self._nodes:
            logger.debug(f"Duplicate node id {key}, keeping the first occurrence")
            return
        if enclosing_loop is not None and node.loop_key is None:
            node = msgspec.structs.replace(node, loop_node_id=enclosing_loop)

        # Both graphs gain nodes in lockstep, so they share indices
        idx = self._graph.add_node(key)
        self._flow_graph.add_node(key)

        self._nodes[key] = node
        self._node_map[key] = idx
        self._inv_map[idx] = key

        if isinstance(node, LoopNode):
            for inner in node.declared_body():
                self._index_node(inner, enclosing_loop=key)

    def _wire_edges(self, graph: WorkflowGraph) -> None:
        for key, node in self._nodes.items():
            own_loop = node.loop_key
            for target in node.next_node_ids:
                if node_key(target) == own_loop:
                    continue
                self._add_edge(key, target, EdgeKind.NORMAL)
            for target in node.branch_targets():
                self._add_edge(key, target, EdgeKind.BRANCH)
            if self._follow_exception_edges:
                for target in node.exception_targets(self._exception_flow_modes):
                    self._add_edge(key, target, EdgeKind.EXCEPTION)

        for edge in graph.edges:
            source = self._canvas_key(edge.source)
            target = self._canvas_key(edge.target)
            if source is None:
                self._malformed.append((edge.source, edge.target))
                continue
            if target is not None and target == self._nodes[source].loop_key:
                continue
            self._add_edge(source, target if target is not None else edge.target, EdgeKind.NORMAL)

        for key, node in self._nodes.items():
            if node.loop_key is not None and node.loop_key in self._nodes:
                self._body.setdefault(node.loop_key, []).append(key)
        for loop_key in self._body:
            if self._nodes[loop_key].node_type != NodeType.LOOP:
                continue
            for entry in self._body_entries(loop_key):
                self._add_edge(loop_key, entry, EdgeKind.BODY)

    def _body_entries(self, loop_key: str) -> List[str]:
        members = self._body.get(loop_key, [])
        loop = self._nodes.get(loop_key)
        if isinstance(loop, LoopNode) and loop.inner_start_node_id is not None:
            start = node_key(loop.inner_start_node_id)
            if start in members:
                return [start]
        member_set = set(members)
        entered = {
            target for (source, target), kind in self._edge_kinds.items()
            if source in member_set and target in member_set and kind != EdgeKind.BODY
        }
        entries = [m for m in members if m not in entered]
        # A body that is one closed cycle still needs a way in
        return entries or members[:1]

    def _add_edge(self, source: str, target: NodeId, kind: EdgeKind) -> None:
        target_key = node_key(target)
        if target_key not in self._node_map:
            logger.debug(f"Dropping {kind.value} edge {source} -> {target_key}: no such node")
            self._malformed.append((source, target_key))
            return

        existing = self._edge_kinds.get((source, target_key))
        if existing is not None:
            # A normal-flow edge outranks an exception edge between the same pair
            if existing == EdgeKind.EXCEPTION and kind != EdgeKind.EXCEPTION:
                self._edge_kinds[(source, target_key)] = kind
                self._flow_graph.add_edge(self._node_map[source], self._node_map[target_key], kind)
                self._successors[source] = [
                    Successor(s.key, kind) if s.key == target_key else s
                    for s in self._successors[source]
                ]
            return

        src_idx = self._node_map[source]
        tgt_idx = self._node_map[target_key]
        self._graph.add_edge(src_idx, tgt_idx, kind)
        if kind != EdgeKind.EXCEPTION:
            self._flow_graph.add_edge(src_idx, tgt_idx, kind)
        self._edge_kinds[(source, target_key)] = kind
        self._successors.setdefault(source, []).append(Successor(target_key, kind))

    def _canvas_key(self, raw: str) -> Optional[str]:
        """Node id of a canvas edge endpoint ("12", "12-out", ...)."""
        key = node_key(raw)
        if key in self._nodes:
            return key
        match = _CANVAS_ID.match(key)
        if match and match.group(1) in self._nodes:
            return match.group(1)
        return None

    # =========================================================================
    # INTERNAL UTILITIES
    # =========================================================================

    def __len__(self) -> int:
        return self.node_count

    def __contains__(self, node_id: NodeId) -> bool:
        return node_key(node_id) in self._nodes

    def __repr__(self) -> str:
        return f"WorkflowGraphIndex(nodes={self.node_count}, edges={self.edge_count})"
