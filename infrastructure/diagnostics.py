"""
VARSCOPE DIAGNOSTICS - Per-Query Phase Timing

Fast diagnosis of slow or surprising scope queries:
- Duration of each pipeline phase (accessor, enumerate, order, materialize, flatten)
- Counts recorded by the phases (nodes, edges, predecessors, tokens)

A QueryDiagnostics lives for exactly one query. Nothing is kept between
calls, so the object can be dropped with the result.

Usage:
    from infrastructure.diagnostics import QueryDiagnostics

    dx = QueryDiagnostics(target="12")
    with dx.phase("enumerate") as phase:
        discovery = enumerate_predecessors(index, "12")
        phase.count("predecessors", len(discovery))
    dx.log_summary()
    result.diagnostics = dx.to_dict()
"""
import time
import logging
from typing import Optional, Dict, Any, List, Iterator
from dataclasses import dataclass, field
from contextlib import contextmanager

logger = logging.getLogger(__name__)


# =============================================================================
# PHASE TIMING
# =============================================================================

@dataclass
class PhaseMetric:
    """Metrics for one pipeline phase."""
    phase_name: str
    start_time: float
    end_time: Optional[float] = None
    counts: Dict[str, int] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0
        return (self.end_time - self.start_time) * 1000

    def count(self, name: str, value: int) -> None:
        self.counts[name] = value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase_name,
            "duration_ms": round(self.duration_ms, 3),
            "counts": dict(self.counts),
            "success": self.success,
            "error": self.error,
        }


# =============================================================================
# QUERY DIAGNOSTICS
# =============================================================================

class QueryDiagnostics:
    """
    Timing and counts for one query.

    Phases are recorded in the order they run; a phase that raises is
    recorded as failed and the exception propagates unchanged.
    """

    def __init__(self, target: Optional[str] = None, query: str = "previous_args"):
        self.target = target
        self.query = query
        self._phases: List[PhaseMetric] = []
        self._start = time.perf_counter()

    @property
    def phases(self) -> List[PhaseMetric]:
        return list(self._phases)

    @property
    def total_ms(self) -> float:
        return sum(p.duration_ms for p in self._phases)

    @contextmanager
    def phase(self, name: str) -> Iterator[PhaseMetric]:
        metric = PhaseMetric(phase_name=name, start_time=time.perf_counter())
        self._phases.append(metric)
        try:
            yield metric
        except Exception as e:
            metric.success = False
            metric.error = str(e)
            raise
        finally:
            metric.end_time = time.perf_counter()

    def get_phase(self, name: str) -> Optional[PhaseMetric]:
        for metric in self._phases:
            if metric.phase_name == name:
                return metric
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "target": self.target,
            "total_ms": round(self.total_ms, 3),
            "phases": [p.to_dict() for p in self._phases],
        }

    def log_summary(self) -> None:
        """Emit one DEBUG line per query."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        parts = []
        for metric in self._phases:
            counts = ",".join(f"{k}={v}" for k, v in metric.counts.items())
            parts.append(f"{metric.phase_name}={metric.duration_ms:.2f}ms" + (f"[{counts}]" if counts else ""))
        logger.debug(f"[DIAG] {self.query}({self.target}) {self.total_ms:.2f}ms " + " ".join(parts))
