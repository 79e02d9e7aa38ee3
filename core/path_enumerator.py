"""
Path Enumerator - forward walk from the roots to a target.

A predecessor is a node that lies on some forward path from a root to the
target. The walk only ever enters ancestors of the target (computed once by
rustworkx), so every discovered node has a path to it. Nodes the target
itself reaches are never predecessors: on a cycle they run after it.

Cycle safety: a node already on the current path is never re-entered, and a
node discovered through an earlier path is not expanded again. Each node is
expanded at most once, so the walk is O(V+E) and terminates on any graph.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from core.graph_accessor import WorkflowGraphIndex
from core.schemas import NodeId, node_key

logger = logging.getLogger(__name__)


@dataclass
class PathDiscovery:
    """Predecessors of one target in first-discovery order."""
    target: str
    order: List[str] = field(default_factory=list)
    # Edges walked between predecessors (back edges excluded)
    edges: List[Tuple[str, str]] = field(default_factory=list)
    # Predecessors with no normal-flow path to the target
    via_exception: Set[str] = field(default_factory=set)

    @property
    def rank(self) -> Dict[str, int]:
        return {key: position for position, key in enumerate(self.order)}

    def __contains__(self, key: str) -> bool:
        return key in self.order

    def __len__(self) -> int:
        return len(self.order)


def enumerate_predecessors(index: WorkflowGraphIndex, target_id: NodeId) -> PathDiscovery:
    """
    Discover every predecessor of a target.

    Walks forward from every root along all forward edges (exception edges
    included). Unknown targets and root targets yield an empty discovery.

    Args:
        index: Index over the snapshot
        target_id: Node whose predecessors are wanted

    Returns:
        PathDiscovery with predecessors in first-discovery order
    """
    target = node_key(target_id)
    discovery = PathDiscovery(target=target)
    if target not in index:
        logger.debug(f"Target {target} is not in the snapshot")
        return discovery

    # Nodes downstream of the target run after it, even when a cycle links
    # them back
    future = index.descendants(target)
    ancestors = index.ancestors(target) - future
    if not ancestors:
        return discovery

    roots = [key for key in index.roots() if key in ancestors]
    if not roots:
        # Every ancestor sits on a cycle with no way in; walk from a Start
        # node if one is involved, else from the first ancestor in snapshot order
        roots = [key for key in index.start_nodes() if key in ancestors]
        if not roots:
            roots = [next(key for key in index.keys() if key in ancestors)]
        logger.debug(f"No root reaches {target}, walking from {roots}")

    discovered: Set[str] = set()
    for root in roots:
        if root in discovered:
            continue
        _walk(index, root, target, ancestors, discovered, discovery)

    flow_ancestors = index.ancestors(target, include_exception=False)
    discovery.via_exception = {key for key in discovery.order if key not in flow_ancestors}
    return discovery


def _walk(
    index: WorkflowGraphIndex,
    root: str,
    target: str,
    ancestors: Set[str],
    discovered: Set[str],
    discovery: PathDiscovery,
) -> None:
    """Depth-first walk from one root, recording preorder discovery."""
    discovered.add(root)
    discovery.order.append(root)
    on_path: Set[str] = {root}
    stack = [(root, iter(index.successors(root)))]

    while stack:
        current, successors = stack[-1]
        for successor in successors:
            nxt = successor.key
            if nxt == target or nxt not in ancestors:
                continue
            if nxt in on_path:
                logger.debug(f"Cycle {current} -> {nxt} not re-entered")
                continue
            discovery.edges.append((current, nxt))
            if nxt in discovered:
                continue
            discovered.add(nxt)
            discovery.order.append(nxt)
            on_path.add(nxt)
            stack.append((nxt, iter(index.successors(nxt))))
            break
        else:
            stack.pop()
            on_path.discard(current)
