"""
VARSCOPE ONTOLOGY - The Dictionary of the Workflow Graph

If schemas.py is the Grammar (how a snapshot is structured),
ontology.py is the Dictionary (the words a snapshot may use).

This module defines:
- Enums: The vocabulary (NodeType, BindValueType, ScalarKind, EdgeKind, ...)
- Constants: Synthetic variable names and the reference token grammar pieces

Key Principle: The node type set is CLOSED. Every node in a snapshot is one of
the NodeType values below; anything else is rejected at load time, never
guessed at during a query.
"""
from typing import Dict, FrozenSet, Tuple
from enum import Enum


# =============================================================================
# ENUMS (The Vocabulary)
# =============================================================================

class NodeType(str, Enum):
    """Types of nodes in a workflow graph."""
    # Flow control
    START = "Start"
    END = "End"
    CONDITION = "Condition"
    INTENT_RECOGNITION = "IntentRecognition"
    LOOP = "Loop"
    LOOP_BREAK = "LoopBreak"
    LOOP_CONTINUE = "LoopContinue"
    # Computation
    LLM = "LLM"
    CODE = "Code"
    HTTP_REQUEST = "HTTPRequest"
    KNOWLEDGE = "Knowledge"
    DATABASE = "Database"
    PLUGIN = "Plugin"
    WORKFLOW = "Workflow"
    VARIABLE = "Variable"
    TEXT_PROCESSING = "TextProcessing"
    DOCUMENT_EXTRACTION = "DocumentExtraction"
    # Interaction
    OUTPUT = "Output"
    QA = "QA"
    LONG_TERM_MEMORY = "LongTermMemory"


class BindValueType(str, Enum):
    """How an argument receives its value."""
    INPUT = "Input"              # Literal (may embed {{token}} templates)
    REFERENCE = "Reference"      # bindValue is a reference token


class ExceptionHandleType(str, Enum):
    """What a node does when it fails."""
    INTERRUPT = "INTERRUPT"                        # Stop the run
    SPECIFIC_CONTENT = "SPECIFIC_CONTENT"          # Return canned output
    EXECUTE_EXCEPTION_FLOW = "EXECUTE_EXCEPTION_FLOW"  # Follow exceptionHandleNodeIds


class VariableConfigType(str, Enum):
    """Mode of a Variable node."""
    SET_VARIABLE = "SET_VARIABLE"
    GET_VARIABLE = "GET_VARIABLE"


class EdgeKind(str, Enum):
    """
    Why a forward edge exists.

    NORMAL and BRANCH edges form the normal flow. EXCEPTION edges are
    alternate successors taken only on failure. BODY edges wire a Loop to
    the entry of its own body.
    """
    NORMAL = "normal"
    BRANCH = "branch"
    EXCEPTION = "exception"
    BODY = "body"


class ScalarKind(str, Enum):
    """Leaf data types an argument may carry."""
    STRING = "String"
    INTEGER = "Integer"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    FILE_DEFAULT = "File_Default"
    FILE = "File"
    FILE_IMAGE = "File_Image"
    FILE_PPT = "File_PPT"
    FILE_DOC = "File_Doc"
    FILE_PDF = "File_PDF"
    FILE_TXT = "File_Txt"
    FILE_ZIP = "File_Zip"
    FILE_EXCEL = "File_Excel"
    FILE_VIDEO = "File_Video"
    FILE_AUDIO = "File_Audio"
    FILE_VOICE = "File_Voice"
    FILE_CODE = "File_Code"
    FILE_SVG = "File_Svg"


# =============================================================================
# DATA TYPE TAGS
# =============================================================================

OBJECT_TAG = "Object"
ARRAY_PREFIX = "Array_"

SCALAR_TAGS: FrozenSet[str] = frozenset(kind.value for kind in ScalarKind)


# =============================================================================
# SYNTHETIC VARIABLES
# =============================================================================

# Per-iteration index a Loop exposes to its own body
INDEX_VARIABLE = "INDEX"

# Suffix of the per-iteration element variable: "<arrayArg>_item"
ITEM_SUFFIX = "_item"

# Prefix every Start system variable must carry
SYSTEM_VARIABLE_PREFIX = "SYS_"

# Output a SET_VARIABLE node always exposes
VARIABLE_SUCCESS_OUTPUT = "isSuccess"

# Default Start system variables: name -> (data type tag, description)
DEFAULT_SYSTEM_VARIABLES: Dict[str, Tuple[str, str]] = {
    "SYS_USER_ID": (ScalarKind.STRING.value, "System user ID"),
}


# =============================================================================
# REFERENCE TOKENS
# =============================================================================

# "<nodeId>.<argPath>"
TOKEN_SEPARATOR = "."

# Free-text embedding: "{{<nodeId>.<argPath>}}"
TEMPLATE_PATTERN = r"\{\{([^}]+)\}\}"


# =============================================================================
# HELPERS
# =============================================================================

def is_valid_node_type(type_str: str) -> bool:
    """Check if a string is a valid NodeType value."""
    return type_str in {nt.value for nt in NodeType}


def follows_exception_flow(mode, flow_modes) -> bool:
    """
    Check whether an exception handle mode routes to exceptionHandleNodeIds.

    A missing mode counts as routing: a node that lists exception targets
    without saying why still has those targets wired on the canvas.
    """
    if mode is None:
        return True
    return mode in flow_modes
