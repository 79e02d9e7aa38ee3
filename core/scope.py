"""
VARSCOPE SCOPE MATERIALIZER - What Each Predecessor Exposes

For every ordered predecessor, decide which ArgDefs the target may reference:

- Start: inputArgs (bindings cleared), outputArgs, then the SYS_ variables
- Loop seen from inside its own body: <arr>_item per array input, INDEX,
  then the loop-carried variableArgs
- Loop seen from outside: its declared outputArgs only
- Variable in SET_VARIABLE mode: outputArgs plus isSuccess
- Everything else: outputArgs verbatim (nested subArgs untouched)

Visibility follows loop scopes: a predecessor is visible only when every
Loop enclosing it also encloses the target. Body nodes never leak out.

Every exposed ArgDef is a copy; the snapshot is never mutated.
"""
import logging
from typing import List, Optional, Sequence

from core.arg_map import ArgMap, index_args, prefix_arg_keys
from core.datatypes import (
    ObjectOf,
    element_type,
    format_data_type,
    is_array,
    wrap_array,
)
from core.graph_accessor import WorkflowGraphIndex
from core.ontology import (
    INDEX_VARIABLE,
    ITEM_SUFFIX,
    VARIABLE_SUCCESS_OUTPUT,
    NodeType,
    ScalarKind,
)
from core.schemas import (
    ArgDef,
    LoopNode,
    Node,
    NodeId,
    PreviousNode,
    VariableNode,
    clone_arg,
    clone_args,
    node_key,
)

logger = logging.getLogger(__name__)


INDEX_DESCRIPTION = "Array index"


def index_arg() -> ArgDef:
    """The per-iteration INDEX a Loop exposes to its own body."""
    return ArgDef(
        name=INDEX_VARIABLE,
        data_type=ScalarKind.INTEGER.value,
        description=INDEX_DESCRIPTION,
        system_variable=True,
        sub_args=[],
    )


def to_previous_node(node: Node, args: List[ArgDef], via_exception: bool = False) -> PreviousNode:
    return PreviousNode(
        id=node.id,
        name=node.name,
        type=node.node_type.value,
        output_args=args,
        via_exception=via_exception,
        loop_node_id=node.loop_node_id,
    )


class ScopeMaterializer:
    """
    Computes exposed arguments for one target.

    Predecessors must be passed to expose() in dependency order: a Loop
    looks up the arrays it iterates in the arguments exposed so far.

    Usage:
        scope = ScopeMaterializer(index, "5", system_variables)
        for key in ordered:
            if scope.is_visible(key):
                args = scope.expose(index.get_node(key))
    """

    def __init__(
        self,
        index: WorkflowGraphIndex,
        target_id: NodeId,
        system_variables: Sequence[ArgDef] = (),
    ):
        self._index = index
        self.target = node_key(target_id)
        self._system_variables = list(system_variables)
        self._target_chain = index.loop_chain(self.target)
        self._seen: ArgMap = {}

    @property
    def target_loop_chain(self) -> List[str]:
        return list(self._target_chain)

    @property
    def seen(self) -> ArgMap:
        """Arguments exposed so far, keyed by token."""
        return dict(self._seen)

    def is_visible(self, node_id: NodeId) -> bool:
        """A predecessor is visible when its loop chain is a subset of the target's."""
        chain = self._index.loop_chain(node_id)
        visible = set(chain) <= set(self._target_chain)
        if not visible:
            logger.debug(f"{node_key(node_id)} is scoped to {chain}, hidden from {self.target}")
        return visible

    def inside(self, loop_id: NodeId) -> bool:
        """Check if the target lives (at any depth) in the body of a Loop."""
        return node_key(loop_id) in self._target_chain

    # =========================================================================
    # EXPOSURE
    # =========================================================================

    def expose(self, node: Node) -> List[ArgDef]:
        """Keyed copies of the ArgDefs a predecessor exposes to the target."""
        if node.node_type == NodeType.START:
            args = self._start_args(node)
        elif isinstance(node, LoopNode) and self.inside(node.key):
            args = self._loop_body_args(node)
        else:
            args = self.declared_outputs(node)

        prefix_arg_keys(node.key, args)
        index_args(node.key, args, self._seen)
        return args

    def declared_outputs(self, node: Node) -> List[ArgDef]:
        args = clone_args(node.config.output_args)
        if isinstance(node, VariableNode) and node.sets_variable:
            if not any(arg.name == VARIABLE_SUCCESS_OUTPUT for arg in args):
                args.append(ArgDef(
                    name=VARIABLE_SUCCESS_OUTPUT,
                    data_type=ScalarKind.BOOLEAN.value,
                    description="Whether the variable was set",
                ))
        return args

    def _start_args(self, node: Node) -> List[ArgDef]:
        args = [
            clone_arg(arg, bind_value_type=None, bind_value=None)
            for arg in node.config.input_args
        ]
        args.extend(clone_args(node.config.output_args))
        declared = {arg.name for arg in args}
        for variable in self._system_variables:
            if variable.name in declared:
                continue
            args.append(clone_arg(variable, system_variable=True))
        return args

    def _loop_body_args(self, loop: LoopNode) -> List[ArgDef]:
        args: List[ArgDef] = []
        for arg in loop.config.input_args:
            item = self._item_arg(arg)
            if item is not None:
                args.append(item)
        args.append(index_arg())
        args.extend(self._loop_variables(loop))
        return args

    def _item_arg(self, arg: ArgDef) -> Optional[ArgDef]:
        """`<arr>_item` for an array input, None for anything else."""
        if not arg.name:
            return None
        source = arg
        referenced = self._seen.get(arg.reference_token) if arg.reference_token else None
        if referenced is not None and is_array(referenced.dtype):
            source = referenced
        elif not is_array(arg.dtype):
            logger.debug(f"Loop input {arg.name} is not an array, no item variable")
            return None

        element = element_type(source.dtype)
        sub_args = list(element.fields) if isinstance(element, ObjectOf) else []
        return ArgDef(
            name=f"{arg.name}{ITEM_SUFFIX}",
            data_type=format_data_type(element),
            description=arg.description,
            sub_args=clone_args(sub_args),
        )

    def _loop_variables(self, loop: LoopNode) -> List[ArgDef]:
        variables = []
        for variable in loop.config.variable_args:
            copied = clone_arg(variable)
            token = variable.reference_token
            if token is not None and token in self._seen:
                copied.sub_args = clone_args(self._seen[token].sub_args)
            variables.append(copied)
        return variables

    # =========================================================================
    # LOOP TARGET
    # =========================================================================

    def inner_previous_nodes(self, loop: LoopNode) -> List[PreviousNode]:
        """
        Body members of a Loop target, with outputs collected into arrays.

        Members without outputs are skipped. The Loop's own variableArgs
        follow as an entry for the Loop itself.
        """
        result: List[PreviousNode] = []
        for member_key in self._index.body_order(loop.key):
            member = self._index.get_node(member_key)
            outputs = self.declared_outputs(member)
            if not outputs:
                continue
            collected = [_collect(arg) for arg in outputs]
            prefix_arg_keys(member.key, collected)
            result.append(to_previous_node(member, collected))

        variables = self._loop_variables(loop)
        if variables:
            prefix_arg_keys(loop.key, variables)
            result.append(to_previous_node(loop, variables))
        return result


def _collect(arg: ArgDef) -> ArgDef:
    """Copy of an output as the array of its per-iteration values."""
    return clone_arg(
        arg,
        data_type=format_data_type(wrap_array(arg.dtype)),
        origin_data_type=arg.data_type or ScalarKind.STRING.value,
    )
