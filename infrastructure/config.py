"""
VARSCOPE CONFIG - Resolver Configuration

Configuration is loaded once from config/varscope.toml (or the file named by
VARSCOPE_CONFIG) into a frozen ResolverConfig. Queries take the config as an
explicit argument; get_config() only supplies the default.

Nothing about the graph is cached here: a snapshot is always an explicit
argument of each query.

Usage:
    from infrastructure.config import get_config, load_config

    config = get_config()                       # process default
    config = load_config(Path("custom.toml"))   # explicit file
    config = ResolverConfig(follow_exception_edges=False)
"""
import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import msgspec

from core.ontology import (
    DEFAULT_SYSTEM_VARIABLES,
    SYSTEM_VARIABLE_PREFIX,
    ExceptionHandleType,
)


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "varscope.toml"
CONFIG_ENV_VAR = "VARSCOPE_CONFIG"


class ConfigError(Exception):
    """Raised when a configuration file holds invalid values."""
    pass


# =============================================================================
# CONFIG SCHEMA
# =============================================================================

class SystemVariableConfig(msgspec.Struct, kw_only=True, frozen=True):
    """One always-available variable exposed by Start."""
    name: str
    data_type: str = "String"
    description: str = ""


def _default_system_variables() -> Tuple[SystemVariableConfig, ...]:
    return tuple(
        SystemVariableConfig(name=name, data_type=data_type, description=description)
        for name, (data_type, description) in DEFAULT_SYSTEM_VARIABLES.items()
    )


class ResolverConfig(msgspec.Struct, kw_only=True, frozen=True):
    """
    Settings of the variable-reference resolver.

    Defaults reproduce the editor's behaviour; a config file only needs to
    name what it changes.
    """
    system_variables: Tuple[SystemVariableConfig, ...] = msgspec.field(
        default_factory=_default_system_variables
    )
    follow_exception_edges: bool = True
    exception_flow_modes: Tuple[str, ...] = (ExceptionHandleType.EXECUTE_EXCEPTION_FLOW.value,)
    # NodeType value -> free-text fields to scan, replacing the variant's own list
    template_fields: Dict[str, Tuple[str, ...]] = msgspec.field(default_factory=dict)

    def __post_init__(self):
        if not self.system_variables:
            raise ConfigError("At least one system variable is required")
        for variable in self.system_variables:
            if not variable.name.startswith(SYSTEM_VARIABLE_PREFIX):
                raise ConfigError(
                    f"System variable {variable.name!r} must start with {SYSTEM_VARIABLE_PREFIX!r}"
                )

    def template_fields_for(self, node_type: str) -> Optional[Tuple[str, ...]]:
        return self.template_fields.get(node_type)


# =============================================================================
# LOADING
# =============================================================================

def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the raw TOML document.

    Returns:
        Dict with all configuration sections ({} if the file can't be read)
    """
    try:
        import tomllib
        config_path = path or Path(os.getenv(CONFIG_ENV_VAR, str(DEFAULT_CONFIG_PATH)))

        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        warnings.warn(f"Failed to load config from TOML: {e}")
        return {}


def config_from_dict(data: Dict[str, Any]) -> ResolverConfig:
    """
    Build a ResolverConfig from the [resolver] section of a config document.

    Raises:
        ConfigError: If a value has the wrong type or fails validation
    """
    section = data.get("resolver", {})
    try:
        return msgspec.convert(section, type=ResolverConfig)
    except msgspec.ValidationError as e:
        raise ConfigError(f"Invalid [resolver] config: {e}") from e


def load_config(path: Optional[Path] = None) -> ResolverConfig:
    return config_from_dict(load_toml_config(path))


# =============================================================================
# PROCESS DEFAULT
# =============================================================================

_config_instance: Optional[ResolverConfig] = None


def get_config() -> ResolverConfig:
    """Get the process-wide default config, loading it on first use."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def set_config(config: Optional[ResolverConfig]) -> None:
    """
    Set the process-wide default config.

    Useful for testing or for embedding with settings from elsewhere.
    """
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    set_config(None)
