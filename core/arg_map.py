"""
Arg Map Builder and Reference Validator.

The arg map is a flat table from "<nodeId>.<argName>" to the ArgDef a
predecessor exposes. Only first-level names are keys: nested Object fields
are reached through the ArgDef's subArgs by the picker, not through extra
keys. Namespacing by node id makes collisions between nodes impossible.

Maps are rebuilt per query and never cached across graph edits.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from core.schemas import ArgDef, PreviousNode, node_key
from core.tokens import make_token, parse_variable_reference

logger = logging.getLogger(__name__)

ArgMap = Dict[str, ArgDef]


# =============================================================================
# BUILDING
# =============================================================================

def prefix_arg_keys(node_id, args: Sequence[ArgDef], parent_path: Sequence[str] = ()) -> None:
    """
    Stamp each argument (and its nested subArgs) with its full token as `key`.

    Mutates the given ArgDefs; callers pass copies, never snapshot objects.
    """
    for arg in args:
        path = list(parent_path) + [arg.identifier]
        arg.key = make_token(node_key(node_id), ".".join(path))
        if arg.sub_args:
            prefix_arg_keys(node_id, arg.sub_args, path)


def index_args(node_id, args: Iterable[ArgDef], arg_map: ArgMap) -> ArgMap:
    """Add one node's first-level arguments to a map; the first name wins."""
    key = node_key(node_id)
    for arg in args:
        if not arg.identifier:
            continue
        token = make_token(key, arg.identifier)
        if token in arg_map:
            logger.debug(f"Duplicate argument {token}, keeping the first")
            continue
        arg_map[token] = arg
    return arg_map


def build_arg_map(*groups: Sequence[PreviousNode]) -> ArgMap:
    """Flatten the exposed arguments of every previous node into one map."""
    arg_map: ArgMap = {}
    for group in groups:
        for previous in group:
            index_args(previous.id, previous.output_args, arg_map)
    return arg_map


# =============================================================================
# VALIDATION
# =============================================================================

def is_valid_reference(token: Optional[str], arg_map: ArgMap) -> bool:
    """
    Check whether a token names an argument in scope.

    An empty binding is not a reference and is valid; a malformed token is
    invalid.
    """
    if not token:
        return True
    if parse_variable_reference(token) is None:
        return False
    return token in arg_map


def get_referenced_arg(token: Optional[str], arg_map: ArgMap) -> Optional[ArgDef]:
    """The ArgDef a token names, or None."""
    if not token:
        return None
    return arg_map.get(token)


def tokens_for_node(node_id, arg_map: ArgMap) -> List[str]:
    """Every token in a map that belongs to one node."""
    prefix = make_token(node_key(node_id), "")
    return [token for token in arg_map if token.startswith(prefix)]
