"""
Topological Orderer - one deterministic order over the discovered paths.

If A precedes B on every path containing both, A comes first. Independent
branches keep first-discovery order. The walked edges are loaded into a
cycle-checked rustworkx DAG and sorted lexicographically on discovery rank.
"""
import logging
from typing import Dict, List

import rustworkx as rx

from core.path_enumerator import PathDiscovery

logger = logging.getLogger(__name__)


def order_predecessors(discovery: PathDiscovery) -> List[str]:
    """
    Order predecessors so every walked edge points forward.

    Edges that would close a cycle are dropped (the walk never records back
    edges, so this only guards odd inputs).

    Returns:
        Predecessor ids, dependency-respecting, ties broken by discovery rank
    """
    if not discovery.order:
        return []

    rank = discovery.rank
    width = len(str(len(discovery.order)))

    dag = rx.PyDiGraph(check_cycle=True, multigraph=False)
    indices: Dict[str, int] = {key: dag.add_node(key) for key in discovery.order}

    for source, target in discovery.edges:
        if source not in indices or target not in indices:
            continue
        try:
            dag.add_edge(indices[source], indices[target], None)
        except rx.DAGWouldCycle:
            logger.debug(f"Ordering edge {source} -> {target} would cycle, skipped")

    return list(rx.lexicographical_topological_sort(dag, key=lambda key: f"{rank[key]:0{width}d}"))
