"""
VARSCOPE DATA LOADER - Snapshots In, Report Frames Out

This module handles the two edges of the core:
1. INGESTION: Decode editor JSON (file, bytes or text) into a WorkflowGraph
   with msgspec, failing loudly with GraphLoadError on bad input
2. REPORTING: Render query results as Polars DataFrames for tables,
   filtering and export in the delete/rename confirmation flow

Architecture:
- load_graph: One entry point for every snapshot source
- references_frame: Graph-wide reverse references, one row per occurrence
- arg_map_frame: An argMap, one row per token
"""
import logging
from pathlib import Path
from typing import Dict, Sequence, Union

import msgspec
import polars as pl

from core.schemas import ArgDef, GraphReference, WorkflowGraph, decode_graph
from core.tokens import parse_variable_reference

logger = logging.getLogger(__name__)


# =============================================================================
# FRAME SCHEMAS
# =============================================================================

REFERENCES_SCHEMA = {
    "node_id": pl.Utf8,
    "field": pl.Utf8,
    "token": pl.Utf8,
}

ARG_MAP_SCHEMA = {
    "token": pl.Utf8,
    "node_id": pl.Utf8,
    "name": pl.Utf8,
    "data_type": pl.Utf8,
    "system_variable": pl.Boolean,
    "sub_args": pl.Int64,
}


# =============================================================================
# LOAD ERRORS
# =============================================================================

class DataLoadError(Exception):
    """Base exception for data loading errors."""
    pass


class GraphLoadError(DataLoadError):
    """Raised when a snapshot can't be read or decoded."""
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to load graph from {source}: {reason}")


# =============================================================================
# INGESTION
# =============================================================================

def load_graph(source: Union[str, Path, bytes]) -> WorkflowGraph:
    """
    Load a snapshot.

    Args:
        source: Path to a JSON file, raw JSON bytes, or JSON text
            (a str starting with "{" is treated as text, anything else as a path)

    Raises:
        GraphLoadError: File unreadable, not JSON, or not a valid snapshot
    """
    if isinstance(source, bytes):
        label, data = "<bytes>", source
    elif isinstance(source, str) and source.lstrip().startswith("{"):
        label, data = "<text>", source
    else:
        path = Path(source)
        label = str(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning(f"Cannot read snapshot {label}: {e}")
            raise GraphLoadError(label, str(e)) from e

    try:
        graph = decode_graph(data)
    except (msgspec.ValidationError, msgspec.DecodeError) as e:
        logger.warning(f"Invalid snapshot {label}: {e}")
        raise GraphLoadError(label, str(e)) from e

    logger.debug(f"Loaded {len(graph.nodes)} nodes from {label}")
    return graph


# =============================================================================
# REPORT FRAMES
# =============================================================================

def references_frame(references: Sequence[GraphReference]) -> pl.DataFrame:
    """One row per reference occurrence (node_id, field, token)."""
    return pl.DataFrame(
        {
            "node_id": [ref.node_id for ref in references],
            "field": [ref.field for ref in references],
            "token": [ref.token for ref in references],
        },
        schema=REFERENCES_SCHEMA,
    )


def arg_map_frame(arg_map: Dict[str, ArgDef]) -> pl.DataFrame:
    """One row per token of an argMap, in map order."""
    tokens = list(arg_map)
    parsed = [parse_variable_reference(token) for token in tokens]
    return pl.DataFrame(
        {
            "token": tokens,
            "node_id": [p.node_id if p else None for p in parsed],
            "name": [arg_map[t].name for t in tokens],
            "data_type": [arg_map[t].data_type for t in tokens],
            "system_variable": [arg_map[t].system_variable for t in tokens],
            "sub_args": [len(arg_map[t].sub_args) for t in tokens],
        },
        schema=ARG_MAP_SCHEMA,
    )


def summarize_references(references: Sequence[GraphReference]) -> pl.DataFrame:
    """Reference count per referencing node, most references first."""
    frame = references_frame(references)
    return (
        frame.lazy()
        .group_by("node_id", maintain_order=True)
        .agg(pl.len().alias("references"))
        .sort("references", descending=True, maintain_order=True)
        .collect()
    )
