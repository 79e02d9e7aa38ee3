"""
VARSCOPE SCHEMAS - The Grammar of a Workflow Snapshot

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how a snapshot is structured).

This module defines the records that flow through a query:
- ArgDef: Typed description of one input/output a node exposes
- NodeConfig: The per-node configuration payload ("nodeConfig" on the wire)
- Node variants: One tagged msgspec.Struct per NodeType
- WorkflowGraph: The read-only snapshot a query runs against
- PreviousNode / NodePreviousArgs / Reference: Query results
- Serialization helpers for the editor's JSON

Design Principles:
1. WIRE NAMES STAY CAMELCASE: rename="camel" maps snake_case attributes onto
   the editor's JSON keys, so snapshots decode without a translation layer
2. TAGGED VARIANTS: "type" selects the node class at decode time; each class
   declares exactly which of its fields may carry references
3. UNKNOWN KEYS ARE IGNORED: the canvas stores geometry, icons and other
   presentational fields this core never reads
4. NULL MEANS EMPTY: a JSON null in a list field decodes as an empty list
5. SNAPSHOTS ARE READ-ONLY: queries copy ArgDefs before changing them
"""
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import msgspec

from core.datatypes import DataType, parse_data_type
from core.ontology import (
    BindValueType,
    NodeType,
    VariableConfigType,
    follows_exception_flow,
)
from core.tokens import extract_tokens


NodeId = Union[int, str]


def node_key(node_id: NodeId) -> str:
    """Canonical string form of a node id (editor ids may be ints or strings)."""
    return str(node_id).strip()


def _fill_empty(struct: msgspec.Struct, *attrs: str) -> None:
    """Replace JSON nulls in list fields with empty lists."""
    for attr in attrs:
        if getattr(struct, attr) is None:
            setattr(struct, attr, [])


# =============================================================================
# ARGUMENT DEFINITIONS
# =============================================================================

class ArgDef(msgspec.Struct, kw_only=True, rename="camel"):
    """
    One input/output argument.

    `data_type` keeps the editor's tag on the wire; use `dtype` to get the
    parsed DataType. Object and Array<Object> arguments describe their
    fields in `sub_args`.
    """
    name: Optional[str] = ""
    data_type: Optional[str] = None
    description: Optional[str] = None
    required: Optional[bool] = msgspec.field(default=False, name="require")
    system_variable: Optional[bool] = False
    bind_value_type: Optional[str] = None
    bind_value: Any = None
    key: Optional[str] = None
    sub_args: Optional[List["ArgDef"]] = msgspec.field(default_factory=list)
    # Older snapshots call subArgs "children"; merged into sub_args on decode
    children: Optional[List["ArgDef"]] = None
    # Type before a loop collected it into an array
    origin_data_type: Optional[str] = None

    def __post_init__(self):
        self.name = self.name or ""
        self.required = bool(self.required)
        self.system_variable = bool(self.system_variable)
        if not self.sub_args:
            self.sub_args = self.children or []
        self.children = None

    @property
    def dtype(self) -> DataType:
        return parse_data_type(self.data_type, self.sub_args)

    @property
    def is_reference(self) -> bool:
        return self.bind_value_type == BindValueType.REFERENCE.value

    @property
    def reference_token(self) -> Optional[str]:
        """The bound token when this argument binds by Reference."""
        if self.is_reference and isinstance(self.bind_value, str) and self.bind_value.strip():
            return self.bind_value.strip()
        return None

    @property
    def identifier(self) -> str:
        return self.name or self.key or ""


def clone_arg(arg: ArgDef, **changes: Any) -> ArgDef:
    """Deep copy of an ArgDef (including its subArgs tree), with overrides."""
    copied = msgspec.convert(msgspec.to_builtins(arg), type=ArgDef)
    if changes:
        copied = msgspec.structs.replace(copied, **changes)
    return copied


def clone_args(args: Sequence[ArgDef]) -> List[ArgDef]:
    return [clone_arg(arg) for arg in args]


# =============================================================================
# NODE CONFIGURATION
# =============================================================================

class ExceptionHandleConfig(msgspec.Struct, kw_only=True, rename="camel"):
    """What a node does on failure; the node ids are alternate successors."""
    exception_handle_type: Optional[str] = None
    exception_handle_node_ids: Optional[List[NodeId]] = msgspec.field(default_factory=list)

    def __post_init__(self):
        _fill_empty(self, "exception_handle_node_ids")


class ConditionArg(msgspec.Struct, kw_only=True, rename="camel"):
    """One comparison inside a condition branch."""
    first_arg: Optional[ArgDef] = None
    second_arg: Optional[ArgDef] = None
    compare_type: Optional[str] = None


class BranchConfig(msgspec.Struct, kw_only=True, rename="camel"):
    """
    One outgoing branch of a Condition, IntentRecognition or QA node.

    The same shape covers conditionBranchConfigs, intentConfigs and QA
    options; fields a branch kind doesn't use stay empty.
    """
    next_node_ids: Optional[List[NodeId]] = msgspec.field(default_factory=list)
    condition_args: Optional[List[ConditionArg]] = msgspec.field(default_factory=list)
    uuid: Optional[str] = None

    def __post_init__(self):
        _fill_empty(self, "next_node_ids", "condition_args")


class NodeConfig(msgspec.Struct, kw_only=True, rename="camel"):
    """The configuration payload of a node ("nodeConfig" on the wire)."""
    # === Arguments ===
    input_args: Optional[List[ArgDef]] = msgspec.field(default_factory=list)
    output_args: Optional[List[ArgDef]] = msgspec.field(default_factory=list)
    variable_args: Optional[List[ArgDef]] = msgspec.field(default_factory=list)

    # === Extra successors ===
    exception_handle_config: Optional[ExceptionHandleConfig] = None
    condition_branch_configs: Optional[List[BranchConfig]] = msgspec.field(default_factory=list)
    intent_configs: Optional[List[BranchConfig]] = msgspec.field(default_factory=list)
    options: Optional[List[BranchConfig]] = msgspec.field(default_factory=list)

    # === Loop body ===
    inner_nodes: Optional[List["AnyNode"]] = msgspec.field(default_factory=list)

    # === Mode flags ===
    config_type: Optional[str] = None

    # === Free-text template fields ===
    system_prompt: Optional[str] = None
    user_prompt: Optional[str] = None
    extra_prompt: Optional[str] = None
    question: Optional[str] = None
    url: Optional[str] = None
    body: Optional[str] = None
    text: Optional[str] = None
    content: Optional[str] = None
    sql: Optional[str] = None

    def __post_init__(self):
        _fill_empty(
            self,
            "input_args",
            "output_args",
            "variable_args",
            "condition_branch_configs",
            "intent_configs",
            "options",
            "inner_nodes",
        )

    def template_value(self, field_name: str) -> Optional[str]:
        """Value of a free-text field by its wire name (e.g. "systemPrompt")."""
        attr = _CONFIG_WIRE_NAMES.get(field_name)
        if attr is None:
            return None
        value = getattr(self, attr)
        return value if isinstance(value, str) else None


# =============================================================================
# NODE VARIANTS (Tagged Union on "type")
# =============================================================================

# Free-text fields the editor may fill on any node type
COMMON_TEMPLATE_FIELDS: Tuple[str, ...] = (
    "systemPrompt",
    "userPrompt",
    "question",
    "url",
    "text",
    "content",
)


class Node(msgspec.Struct, kw_only=True, rename="camel", tag_field="type"):
    """
    Base of every node variant.

    Edges are inline: `next_node_ids` lists normal successors; branch and
    exception successors live in the config. `loop_node_id` names the Loop
    whose body contains this node.
    """
    NODE_TYPE: ClassVar[NodeType]
    # Free-text config fields that may embed {{token}} references
    TEMPLATE_FIELDS: ClassVar[Tuple[str, ...]] = COMMON_TEMPLATE_FIELDS

    id: NodeId
    name: Optional[str] = ""
    next_node_ids: Optional[List[NodeId]] = msgspec.field(default_factory=list)
    loop_node_id: Optional[NodeId] = None
    config: Optional[NodeConfig] = msgspec.field(default_factory=NodeConfig, name="nodeConfig")

    def __post_init__(self):
        self.name = self.name or ""
        _fill_empty(self, "next_node_ids")
        if self.config is None:
            self.config = NodeConfig()

    @property
    def key(self) -> str:
        return node_key(self.id)

    @property
    def node_type(self) -> NodeType:
        return self.NODE_TYPE

    @property
    def loop_key(self) -> Optional[str]:
        if self.loop_node_id is None or node_key(self.loop_node_id) == "":
            return None
        return node_key(self.loop_node_id)

    def branch_targets(self) -> List[NodeId]:
        """Successors reached through branch configs."""
        return []

    def exception_targets(self, flow_modes: Sequence[str]) -> List[NodeId]:
        """Successors taken when this node fails."""
        handle = self.config.exception_handle_config
        if handle is None or not handle.exception_handle_node_ids:
            return []
        if not follows_exception_flow(handle.exception_handle_type, flow_modes):
            return []
        return list(handle.exception_handle_node_ids)

    def scan(self, template_fields: Optional[Sequence[str]] = None) -> Iterator[Tuple[str, str]]:
        """
        Yield (field, token) for every reference this node carries.

        Structured bindings (inputs and outputs) yield their bound token;
        free-text fields yield every {{token}} they embed. `template_fields`
        overrides the variant's own TEMPLATE_FIELDS.
        """
        for index, arg in enumerate(self.config.input_args):
            yield from _scan_arg(f"inputArgs[{index}].{arg.identifier}", arg)
        for index, arg in enumerate(self.config.output_args):
            yield from _scan_arg(f"outputArgs[{index}].{arg.identifier}", arg)
        fields = self.TEMPLATE_FIELDS if template_fields is None else template_fields
        for field_name in fields:
            for token in extract_tokens(self.config.template_value(field_name)):
                yield field_name, token


class StartNode(Node, tag=NodeType.START.value):
    NODE_TYPE = NodeType.START


class EndNode(Node, tag=NodeType.END.value):
    NODE_TYPE = NodeType.END


class LLMNode(Node, tag=NodeType.LLM.value):
    NODE_TYPE = NodeType.LLM


class CodeNode(Node, tag=NodeType.CODE.value):
    NODE_TYPE = NodeType.CODE


class ConditionNode(Node, tag=NodeType.CONDITION.value):
    NODE_TYPE = NodeType.CONDITION

    def branch_targets(self) -> List[NodeId]:
        return [nid for branch in self.config.condition_branch_configs for nid in branch.next_node_ids]

    def scan(self, template_fields=None):
        yield from Node.scan(self, template_fields)
        for b_index, branch in enumerate(self.config.condition_branch_configs):
            for c_index, cond in enumerate(branch.condition_args):
                prefix = f"conditionBranchConfigs[{b_index}].conditionArgs[{c_index}]"
                if cond.first_arg is not None:
                    yield from _scan_arg(f"{prefix}.firstArg", cond.first_arg)
                if cond.second_arg is not None:
                    yield from _scan_arg(f"{prefix}.secondArg", cond.second_arg)


class IntentRecognitionNode(Node, tag=NodeType.INTENT_RECOGNITION.value):
    NODE_TYPE = NodeType.INTENT_RECOGNITION
    TEMPLATE_FIELDS = COMMON_TEMPLATE_FIELDS + ("extraPrompt",)

    def branch_targets(self) -> List[NodeId]:
        return [nid for intent in self.config.intent_configs for nid in intent.next_node_ids]


class LoopNode(Node, tag=NodeType.LOOP.value):
    """
    A loop over one or more arrays.

    The body is the set of nodes whose loop_node_id is this Loop. The editor
    may also ship body nodes nested in `innerNodes` (node level or config
    level); the Graph Accessor merges both.
    """
    NODE_TYPE = NodeType.LOOP

    inner_nodes: Optional[List["AnyNode"]] = msgspec.field(default_factory=list)
    inner_start_node_id: Optional[NodeId] = None
    inner_end_node_id: Optional[NodeId] = None

    def __post_init__(self):
        Node.__post_init__(self)
        _fill_empty(self, "inner_nodes")

    def declared_body(self) -> List["Node"]:
        return list(self.inner_nodes) + list(self.config.inner_nodes)

    def scan(self, template_fields=None):
        yield from Node.scan(self, template_fields)
        for index, arg in enumerate(self.config.variable_args):
            yield from _scan_arg(f"variableArgs[{index}].{arg.identifier}", arg)


class LoopBreakNode(Node, tag=NodeType.LOOP_BREAK.value):
    NODE_TYPE = NodeType.LOOP_BREAK


class LoopContinueNode(Node, tag=NodeType.LOOP_CONTINUE.value):
    NODE_TYPE = NodeType.LOOP_CONTINUE


class HTTPRequestNode(Node, tag=NodeType.HTTP_REQUEST.value):
    NODE_TYPE = NodeType.HTTP_REQUEST
    TEMPLATE_FIELDS = COMMON_TEMPLATE_FIELDS + ("body",)


class KnowledgeNode(Node, tag=NodeType.KNOWLEDGE.value):
    NODE_TYPE = NodeType.KNOWLEDGE


class DatabaseNode(Node, tag=NodeType.DATABASE.value):
    NODE_TYPE = NodeType.DATABASE
    TEMPLATE_FIELDS = COMMON_TEMPLATE_FIELDS + ("sql",)


class PluginNode(Node, tag=NodeType.PLUGIN.value):
    NODE_TYPE = NodeType.PLUGIN


class WorkflowNode(Node, tag=NodeType.WORKFLOW.value):
    NODE_TYPE = NodeType.WORKFLOW


class VariableNode(Node, tag=NodeType.VARIABLE.value):
    NODE_TYPE = NodeType.VARIABLE

    @property
    def sets_variable(self) -> bool:
        return self.config.config_type == VariableConfigType.SET_VARIABLE.value


class TextProcessingNode(Node, tag=NodeType.TEXT_PROCESSING.value):
    NODE_TYPE = NodeType.TEXT_PROCESSING


class DocumentExtractionNode(Node, tag=NodeType.DOCUMENT_EXTRACTION.value):
    NODE_TYPE = NodeType.DOCUMENT_EXTRACTION


class OutputNode(Node, tag=NodeType.OUTPUT.value):
    NODE_TYPE = NodeType.OUTPUT


class QANode(Node, tag=NodeType.QA.value):
    NODE_TYPE = NodeType.QA

    def branch_targets(self) -> List[NodeId]:
        return [nid for option in self.config.options for nid in option.next_node_ids]


class LongTermMemoryNode(Node, tag=NodeType.LONG_TERM_MEMORY.value):
    NODE_TYPE = NodeType.LONG_TERM_MEMORY


AnyNode = Union[
    StartNode,
    EndNode,
    LLMNode,
    CodeNode,
    ConditionNode,
    IntentRecognitionNode,
    LoopNode,
    LoopBreakNode,
    LoopContinueNode,
    HTTPRequestNode,
    KnowledgeNode,
    DatabaseNode,
    PluginNode,
    WorkflowNode,
    VariableNode,
    TextProcessingNode,
    DocumentExtractionNode,
    OutputNode,
    QANode,
    LongTermMemoryNode,
]

NODE_CLASSES: Dict[NodeType, type] = {cls.NODE_TYPE: cls for cls in AnyNode.__args__}


def _scan_arg(field_path: str, arg: ArgDef) -> Iterator[Tuple[str, str]]:
    token = arg.reference_token
    if token is not None:
        yield field_path, token
    elif isinstance(arg.bind_value, str):
        for embedded in extract_tokens(arg.bind_value):
            yield field_path, embedded


_CONFIG_WIRE_NAMES: Dict[str, str] = {
    info.encode_name: info.name for info in msgspec.structs.fields(NodeConfig)
}


# =============================================================================
# WORKFLOW SNAPSHOT
# =============================================================================

class EdgeRef(msgspec.Struct, kw_only=True):
    """One canvas edge. Ids are strings on the canvas, possibly with port suffixes."""
    source: str
    target: str


class WorkflowGraph(msgspec.Struct, kw_only=True, rename="camel"):
    """
    A read-only snapshot of the editor graph.

    `nodes` is the node arena; edges are inline id lists on each node.
    `edges` optionally repeats the canvas edge list; `system_variables`
    overrides the configured Start system variables when present.
    """
    nodes: Optional[List[AnyNode]] = msgspec.field(default_factory=list)
    edges: Optional[List[EdgeRef]] = msgspec.field(default_factory=list)
    system_variables: Optional[List[ArgDef]] = msgspec.field(default_factory=list)

    def __post_init__(self):
        _fill_empty(self, "nodes", "edges", "system_variables")


# =============================================================================
# QUERY RESULTS
# =============================================================================

class PreviousNode(msgspec.Struct, kw_only=True, rename="camel"):
    """A predecessor and the arguments it exposes to the target."""
    id: NodeId
    name: str
    type: str
    output_args: List[ArgDef] = msgspec.field(default_factory=list)
    # True when the node precedes the target only through exception edges
    via_exception: bool = False
    loop_node_id: Optional[NodeId] = None


class NodePreviousArgs(msgspec.Struct, kw_only=True, rename="camel"):
    previous_nodes: List[PreviousNode] = msgspec.field(default_factory=list)
    inner_previous_nodes: List[PreviousNode] = msgspec.field(default_factory=list)
    arg_map: Dict[str, ArgDef] = msgspec.field(default_factory=dict)
    diagnostics: Optional[Dict[str, Any]] = None


class Reference(msgspec.Struct, frozen=True):
    """One occurrence of a token inside a node's fields."""
    field: str
    token: str


class GraphReference(msgspec.Struct, frozen=True, rename="camel"):
    """A Reference located in a specific node of a graph."""
    node_id: str
    field: str
    token: str


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

# Pre-compiled encoders/decoders; reuse to avoid recompilation costs
_encoder = msgspec.json.Encoder()
_graph_decoder = msgspec.json.Decoder(type=WorkflowGraph)
_node_decoder = msgspec.json.Decoder(type=AnyNode)


def decode_graph(data: Union[bytes, str]) -> WorkflowGraph:
    """
    Decode editor JSON into a WorkflowGraph.

    Raises:
        msgspec.ValidationError: Unknown node type or wrong field types
        msgspec.DecodeError: Not JSON
    """
    return _graph_decoder.decode(data)


def decode_node(data: Union[bytes, str]) -> Node:
    return _node_decoder.decode(data)


def encode(obj: Any) -> bytes:
    """Encode any schema object (or builtins thereof) to JSON bytes."""
    return _encoder.encode(obj)


def graph_from_builtins(obj: Dict[str, Any]) -> WorkflowGraph:
    """Build a WorkflowGraph from already-parsed JSON (dicts and lists)."""
    return msgspec.convert(obj, type=WorkflowGraph)
