"""
VARSCOPE GRAPH INVARIANTS - Pre-Save Checks

This module checks a snapshot before the editor saves it. Queries stay
total no matter what the graph looks like; these checks are where broken
structure and broken references become visible.

Checks Implemented:
1. Start Node: A workflow needs at least one Start (error)
2. Malformed Edges: Successor ids with no matching node (warning)
3. Reachability: Nodes outside loop bodies that no Start reaches (warning)
4. Cycles: Forward edges that close a cycle (info; loops use body edges)
5. Dangling References: Bindings and {{token}} templates that resolve to
   nothing in the node's own scope (error)

Design Philosophy:
- Reuses the query core: a reference is dangling exactly when the picker
  would not offer it
- Checks never raise; every finding is a violation in the report
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.arg_map import ArgMap
from core.graph_accessor import WorkflowGraphIndex
from core.resolver import build_index, calculate_node_previous_args
from core.schemas import ArgDef, WorkflowGraph
from core.tokens import make_token, parse_variable_reference
from infrastructure.config import ResolverConfig, get_config

logger = logging.getLogger(__name__)


# =============================================================================
# INVARIANT RESULTS
# =============================================================================

class InvariantSeverity(Enum):
    """Severity levels for invariant violations."""
    ERROR = "error"      # Must be fixed before saving
    WARNING = "warning"  # Should be investigated
    INFO = "info"        # For diagnostics


@dataclass
class InvariantViolation:
    """A specific invariant violation."""
    invariant: str           # Name of the invariant
    severity: InvariantSeverity
    message: str
    nodes_involved: List[str] = None  # Node IDs involved
    edges_involved: List[Tuple[str, str]] = None  # (source, target) pairs

    def __post_init__(self):
        if self.nodes_involved is None:
            self.nodes_involved = []
        if self.edges_involved is None:
            self.edges_involved = []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invariant": self.invariant,
            "severity": self.severity.value,
            "message": self.message,
            "nodes": list(self.nodes_involved),
            "edges": [list(edge) for edge in self.edges_involved],
        }


@dataclass
class InvariantReport:
    """Complete invariant validation report."""
    valid: bool
    violations: List[InvariantViolation]
    metrics: Dict[str, Any]

    @property
    def errors(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.ERROR]

    @property
    def warnings(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.WARNING]

    def by_invariant(self, name: str) -> List[InvariantViolation]:
        return [v for v in self.violations if v.invariant == name]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "violations": [v.to_dict() for v in self.violations],
            "metrics": dict(self.metrics),
        }


# =============================================================================
# CHECKS
# =============================================================================

def check_start_node(index: WorkflowGraphIndex) -> Optional[InvariantViolation]:
    if index.start_nodes():
        return None
    return InvariantViolation(
        invariant="start_node",
        severity=InvariantSeverity.ERROR,
        message="Workflow has no Start node",
    )


def check_malformed_edges(index: WorkflowGraphIndex) -> Optional[InvariantViolation]:
    malformed = index.malformed_edges
    if not malformed:
        return None
    return InvariantViolation(
        invariant="malformed_edges",
        severity=InvariantSeverity.WARNING,
        message=f"{len(malformed)} edges point at missing nodes",
        nodes_involved=sorted({source for source, _ in malformed}),
        edges_involved=malformed,
    )


def check_reachability(index: WorkflowGraphIndex) -> Optional[InvariantViolation]:
    """Nodes outside loop bodies that no Start node reaches."""
    starts = index.start_nodes()
    if not starts:
        return None
    reached = set(starts)
    for start in starts:
        reached |= index.descendants(start)

    unreachable = [
        key for key in index.keys()
        if key not in reached and index.get_node(key).loop_key is None
    ]
    if not unreachable:
        return None
    return InvariantViolation(
        invariant="reachability",
        severity=InvariantSeverity.WARNING,
        message=f"{len(unreachable)} nodes are not reachable from Start",
        nodes_involved=unreachable,
    )


def check_cycles(index: WorkflowGraphIndex) -> List[InvariantViolation]:
    """Cycles in the forward edges; loop bodies link back through body edges, not cycles."""
    return [
        InvariantViolation(
            invariant="cycle",
            severity=InvariantSeverity.INFO,
            message=f"Cycle through {len(component)} nodes",
            nodes_involved=component,
        )
        for component in index.cyclic_components()
    ]


def resolves(token: str, arg_map: ArgMap) -> bool:
    """
    Check whether a token names something in scope.

    The first path segment must be an indexed argument; deeper segments
    must follow the argument's subArgs.
    """
    parsed = parse_variable_reference(token)
    if parsed is None:
        return False
    arg: Optional[ArgDef] = arg_map.get(make_token(parsed.node_id, parsed.path[0]))
    for name in parsed.path[1:]:
        if arg is None:
            return False
        arg = next((sub for sub in arg.sub_args if sub.identifier == name), None)
    return arg is not None


def check_references(
    graph: WorkflowGraph,
    index: WorkflowGraphIndex,
    config: ResolverConfig,
) -> List[InvariantViolation]:
    """Every reference of every node must resolve in that node's own scope."""
    violations = []
    for node in index.iter_nodes():
        scope = calculate_node_previous_args(node.key, graph, config=config)
        template_fields = config.template_fields_for(node.node_type.value)
        for field_path, token in node.scan(template_fields):
            if resolves(token, scope.arg_map):
                continue
            violations.append(InvariantViolation(
                invariant="dangling_reference",
                severity=InvariantSeverity.ERROR,
                message=f"{node.key}.{field_path} references {token!r}, which is not in scope",
                nodes_involved=[node.key],
            ))
    return violations


# =============================================================================
# ENTRY POINT
# =============================================================================

def validate_workflow(
    graph: WorkflowGraph,
    *,
    config: Optional[ResolverConfig] = None,
) -> InvariantReport:
    """
    Run every pre-save check.

    Returns:
        InvariantReport; `valid` is False when any ERROR was found
    """
    config = config or get_config()
    index = build_index(graph, config)

    violations: List[InvariantViolation] = []
    for check in (check_start_node, check_malformed_edges, check_reachability):
        violation = check(index)
        if violation is not None:
            violations.append(violation)
    violations.extend(check_cycles(index))
    violations.extend(check_references(graph, index, config))

    metrics = {
        "nodes": index.node_count,
        "edges": index.edge_count,
        "malformed_edges": len(index.malformed_edges),
        "errors": sum(1 for v in violations if v.severity == InvariantSeverity.ERROR),
        "warnings": sum(1 for v in violations if v.severity == InvariantSeverity.WARNING),
    }
    report = InvariantReport(
        valid=metrics["errors"] == 0,
        violations=violations,
        metrics=metrics,
    )
    logger.debug(f"Validated {index.node_count} nodes: {metrics['errors']} errors, {metrics['warnings']} warnings")
    return report
