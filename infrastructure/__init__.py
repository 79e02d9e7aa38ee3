"""
VARSCOPE INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: TOML-backed resolver configuration
- data_loader: msgspec snapshot loading and Polars report frames
- diagnostics: Per-query phase timing
"""

from infrastructure.config import (
    ConfigError,
    ResolverConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)
from infrastructure.data_loader import (
    DataLoadError,
    GraphLoadError,
    arg_map_frame,
    load_graph,
    references_frame,
)
from infrastructure.diagnostics import QueryDiagnostics

__all__ = [
    "ConfigError",
    "ResolverConfig",
    "get_config",
    "load_config",
    "reset_config",
    "set_config",
    "DataLoadError",
    "GraphLoadError",
    "arg_map_frame",
    "load_graph",
    "references_frame",
    "QueryDiagnostics",
]
