"""
Reference token grammar.

A token is "<nodeId>.<argPath>". It appears either as a structured
bindValue (Reference mode) or embedded as {{token}} inside free text.
"""
import re
from typing import List, NamedTuple, Optional

from core.ontology import TEMPLATE_PATTERN, TOKEN_SEPARATOR

_TEMPLATE_RE = re.compile(TEMPLATE_PATTERN)


class ParsedReference(NamedTuple):
    node_id: str
    path: List[str]
    full_path: str


def parse_variable_reference(token: str) -> Optional[ParsedReference]:
    """
    Split a token into node id and argument path.

    Returns None for anything that is not "<nodeId>.<argPath>" with both
    parts non-empty.
    """
    if not token or not isinstance(token, str):
        return None
    parts = token.strip().split(TOKEN_SEPARATOR)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return ParsedReference(
        node_id=parts[0],
        path=parts[1:],
        full_path=TOKEN_SEPARATOR.join(parts[1:]),
    )


def token_node_id(token: str) -> Optional[str]:
    """Node id a token points at, or None for a malformed token."""
    parsed = parse_variable_reference(token)
    return parsed.node_id if parsed else None


def extract_tokens(text: Optional[str]) -> List[str]:
    """Every {{token}} embedded in a text, in order of appearance."""
    if not text:
        return []
    return [match.strip() for match in _TEMPLATE_RE.findall(text)]


def make_token(node_id, arg_name: str) -> str:
    return f"{node_id}{TOKEN_SEPARATOR}{arg_name}"
