"""Abstract interpretation of script bytecode into a pseudo-C AST.

The :class:`Machine` splits a decoded script into functions, discovers each
function's basic blocks and then walks the blocks from the entry, running one
handler per instruction kind against a persistent operand stack.  Handlers are
plain functions looked up in :data:`OPCODE_HANDLERS`; kinds without a handler
are kept as comments so partially understood bytecode still decompiles.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple

from ..ast_nodes import (
    AssignStmt,
    BinaryExpr,
    Call,
    CallStmt,
    Comment,
    DataType,
    Expr,
    GotoStmt,
    IfStmt,
    Immediate,
    ReturnStmt,
    Stmt,
    UnaryExpr,
    Variable,
    VariableRef,
)
from ..vm import stack as node_stack
from ..vm.instructions import (
    COMPARE_JUMPS,
    COMPARISON_OPS,
    FLOAT_BINARY_OPS,
    INT_BINARY_OPS,
    UNARY_OPS,
    CALL,
    DROP,
    DUP,
    ENTER,
    GLOBAL_LOAD,
    GLOBAL_STORE,
    J,
    JZ,
    LEAVE,
    LOCAL_LOAD,
    LOCAL_STORE,
    NATIVE,
    NOP,
    PUSH,
    STATIC_LOAD,
    STATIC_STORE,
    CallOperands,
    EnterOperands,
    Instruction,
    LocalOperands,
    NativeOperands,
    PushOperands,
    RetOperands,
)
from ..vm.stack import StackRef
from .cfg import BasicBlock, discover_blocks
from .function import Declarations, Function, ScriptFile

LOGGER = logging.getLogger(__name__)

__all__ = ["LiftState", "Machine", "OPCODE_HANDLERS", "CalleeInfo"]


@dataclass
class CalleeInfo:
    name: str
    num_args: int
    num_returns: int


@dataclass
class LiftState:
    """Interpretation state for the block currently being lifted."""

    machine: "Machine"
    function: Function
    block: BasicBlock
    stack: StackRef = None

    def push(self, node: Expr) -> None:
        self.stack = node_stack.push(self.stack, node)

    def pop(self) -> Expr:
        node, self.stack = node_stack.pop(self.stack)
        return node

    def pop_many(self, count: int) -> List[Expr]:
        nodes, self.stack = node_stack.pop_many(self.stack, count)
        return nodes

    def peek(self) -> Expr:
        return node_stack.peek(self.stack)

    def emit(self, stmt: Stmt) -> None:
        self.block.emit(stmt)


OpcodeHandler = Callable[[LiftState, Instruction], None]


# ---------------------------------------------------------------------------
# Stack manipulation and loads


def handle_nop(state: LiftState, instr: Instruction) -> None:
    return None


def handle_push(state: LiftState, instr: Instruction) -> None:
    operands = instr.operands
    assert isinstance(operands, PushOperands)
    for value in operands.values:
        state.push(Immediate(value))


def handle_dup(state: LiftState, instr: Instruction) -> None:
    state.push(state.peek())


def handle_drop(state: LiftState, instr: Instruction) -> None:
    node = state.pop()
    if isinstance(node, Call):
        state.emit(CallStmt(node))


def handle_local_load(state: LiftState, instr: Instruction) -> None:
    state.push(VariableRef(_local(state, instr)))


def handle_local_store(state: LiftState, instr: Instruction) -> None:
    _store(state, _local(state, instr))


def handle_static_load(state: LiftState, instr: Instruction) -> None:
    state.push(VariableRef(state.machine.static(_slot(instr))))


def handle_static_store(state: LiftState, instr: Instruction) -> None:
    _store(state, state.machine.static(_slot(instr)))


def handle_global_load(state: LiftState, instr: Instruction) -> None:
    state.push(VariableRef(state.machine.global_var(_slot(instr))))


def handle_global_store(state: LiftState, instr: Instruction) -> None:
    _store(state, state.machine.global_var(_slot(instr)))


def _slot(instr: Instruction) -> int:
    operands = instr.operands
    assert isinstance(operands, LocalOperands)
    return operands.index


def _local(state: LiftState, instr: Instruction) -> Variable:
    return state.function.variable_by_index(_slot(instr))


def _store(state: LiftState, variable: Variable) -> None:
    value = state.pop()
    variable.infer_type(value.data_type)
    state.emit(AssignStmt(VariableRef(variable), value))


# ---------------------------------------------------------------------------
# Arithmetic


def _binary(op: str, data_type: DataType) -> OpcodeHandler:
    def handler(state: LiftState, instr: Instruction) -> None:
        right = state.pop()
        left = state.pop()
        state.push(BinaryExpr(left, op, right, data_type))

    return handler


def _unary(op: str, data_type: DataType) -> OpcodeHandler:
    def handler(state: LiftState, instr: Instruction) -> None:
        state.push(UnaryExpr(op, state.pop(), data_type))

    return handler


_UNARY_TYPES = {
    "INOT": DataType.BOOL,
    "INEG": DataType.INT,
    "FNEG": DataType.FLOAT,
    "I2F": DataType.FLOAT,
    "F2I": DataType.INT,
}


# ---------------------------------------------------------------------------
# Calls and returns


def handle_native(state: LiftState, instr: Instruction) -> None:
    operands = instr.operands
    assert isinstance(operands, NativeOperands)
    name = operands.name or f"native_0x{operands.hash:016X}"
    data_type = DataType.from_name(operands.result_type) if operands.num_returns else DataType.VOID
    _call(state, name, operands.num_args, operands.num_returns, data_type)


def handle_call(state: LiftState, instr: Instruction) -> None:
    operands = instr.operands
    assert isinstance(operands, CallOperands)
    callee = state.machine.callee(operands.target)
    if callee is None:
        LOGGER.warning("call to unknown function at 0x%X", operands.target)
        state.emit(Comment(f"call to unknown function at 0x{operands.target:X}"))
        return
    _call(state, callee.name, callee.num_args, callee.num_returns, DataType.UNKNOWN)


def _call(state: LiftState, name: str, num_args: int, num_returns: int, data_type: DataType) -> None:
    call = Call(name, state.pop_many(num_args), data_type)
    if num_returns == 0:
        state.emit(CallStmt(call))
        return
    if num_returns > 1:
        LOGGER.debug("%s returns %d values, folding into one expression", name, num_returns)
    state.push(call)


def handle_enter(state: LiftState, instr: Instruction) -> None:
    return None


def handle_leave(state: LiftState, instr: Instruction) -> None:
    operands = instr.operands
    assert isinstance(operands, RetOperands)
    if operands.num_returns > 1:
        state.function.infer_return_type(operands.num_returns)
    values = state.pop_many(operands.num_returns)
    state.function.infer_return_type(operands.num_returns, values[-1] if values else None)
    state.emit(ReturnStmt(values))


# ---------------------------------------------------------------------------
# Control flow


def handle_jump(state: LiftState, instr: Instruction) -> None:
    target = instr.branch_target
    assert target is not None
    state.emit(GotoStmt(target))


def handle_jz(state: LiftState, instr: Instruction) -> None:
    _branch(state, instr, state.pop())


def _compare_jump(op: str) -> OpcodeHandler:
    def handler(state: LiftState, instr: Instruction) -> None:
        right = state.pop()
        left = state.pop()
        _branch(state, instr, BinaryExpr(left, op, right, DataType.BOOL))

    return handler


def _branch(state: LiftState, instr: Instruction, condition: Expr) -> None:
    """Emit an ``if`` for a jump taken when ``condition`` is false."""

    block = state.block
    target = instr.branch_target
    assert target is not None
    then_block = block.fallthrough
    if then_block is None:
        state.emit(Comment(f"conditional jump to 0x{target:X} at end of function"))
        state.emit(GotoStmt(target))
        return
    else_block, join = _else_branch(state.function, then_block, target)
    state.emit(IfStmt(condition, then_block, join, else_block))
    block.continuation = join


def _else_branch(function: Function, then_block: int, target: int) -> Tuple[Optional[int], int]:
    # then-part ending in a forward jump past ``target`` means ``target`` is
    # the else-part and the jump destination is the join.
    index = function.stream.index_of(target)
    if index is None or index == 0:
        return None, target
    previous = function.stream.state(index - 1).instruction
    jump_target = previous.branch_target
    if (
        previous.kind == J
        and jump_target is not None
        and jump_target > target
        and previous.address >= then_block
        and function.stream.index_of(jump_target) is not None
    ):
        return target, jump_target
    return None, target


OPCODE_HANDLERS: Dict[str, OpcodeHandler] = {
    NOP: handle_nop,
    PUSH: handle_push,
    DUP: handle_dup,
    DROP: handle_drop,
    LOCAL_LOAD: handle_local_load,
    LOCAL_STORE: handle_local_store,
    STATIC_LOAD: handle_static_load,
    STATIC_STORE: handle_static_store,
    GLOBAL_LOAD: handle_global_load,
    GLOBAL_STORE: handle_global_store,
    NATIVE: handle_native,
    CALL: handle_call,
    ENTER: handle_enter,
    LEAVE: handle_leave,
    J: handle_jump,
    JZ: handle_jz,
}
OPCODE_HANDLERS.update({kind: _binary(op, DataType.INT) for kind, op in INT_BINARY_OPS.items()})
OPCODE_HANDLERS.update({kind: _binary(op, DataType.FLOAT) for kind, op in FLOAT_BINARY_OPS.items()})
OPCODE_HANDLERS.update({kind: _binary(op, DataType.BOOL) for kind, op in COMPARISON_OPS.items()})
OPCODE_HANDLERS.update({kind: _unary(op, _UNARY_TYPES[kind]) for kind, op in UNARY_OPS.items()})
OPCODE_HANDLERS.update({kind: _compare_jump(op) for kind, op in COMPARE_JUMPS.items()})


class Machine:
    """Drives CFG discovery and abstract interpretation for a script."""

    def __init__(
        self,
        code: Sequence[Instruction],
        *,
        name: str = "script",
        handlers: Optional[Dict[str, OpcodeHandler]] = None,
    ) -> None:
        self.code = list(code)
        self.name = name
        self.handlers = dict(OPCODE_HANDLERS if handlers is None else handlers)
        self._callees: Dict[int, CalleeInfo] = {}
        self._statics: Dict[int, Variable] = {}
        self._globals: Dict[int, Variable] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def decompile(self) -> ScriptFile:
        functions = self.split_functions()
        for function in functions:
            self.decompile_function(function)
        return ScriptFile(self.name, functions)

    def decompile_function(self, function: Function) -> Function:
        discover_blocks(function)
        self._interpret(function)
        return function

    def split_functions(self) -> List[Function]:
        """Cut the instruction list into functions at every ``ENTER``."""

        chunks: List[List[Instruction]] = []
        for instruction in self.code:
            if instruction.kind == ENTER or not chunks:
                chunks.append([])
            chunks[-1].append(instruction)

        functions: List[Function] = []
        for chunk in chunks:
            enter = chunk[0].operands if chunk[0].kind == ENTER else None
            identifier = f"func_{len(functions)}"
            inputs = Declarations()
            if isinstance(enter, EnterOperands):
                identifier = enter.name or identifier
                inputs = Declarations(Variable(f"arg_{i}") for i in range(enter.num_args))
            function = Function(identifier, chunk, inputs=inputs)
            self._callees[function.address] = CalleeInfo(
                identifier, len(inputs), _declared_returns(chunk)
            )
            functions.append(function)
        return functions

    def callee(self, address: int) -> Optional[CalleeInfo]:
        return self._callees.get(address)

    def static(self, index: int) -> Variable:
        return self._statics.setdefault(index, Variable(f"static_{index}"))

    def global_var(self, index: int) -> Variable:
        return self._globals.setdefault(index, Variable(f"global_{index}"))

    # ------------------------------------------------------------------
    # Interpretation
    # ------------------------------------------------------------------

    def _interpret(self, function: Function) -> None:
        entry = function.entry_block
        if entry is None:
            return
        entry.entry_stack = node_stack.EMPTY
        entry.seeded = True

        function.reset_visited()
        worklist: Deque[int] = deque([entry.start_address])
        while worklist:
            address = worklist.popleft()
            if address in function.visited:
                continue
            function.visited.add(address)
            block = function.blocks[address]
            stack = self._run_block(function, block)
            for successor_address in block.successors:
                successor = function.blocks[successor_address]
                self._seed(successor, stack, block)
                if successor_address not in function.visited:
                    worklist.append(successor_address)
        function.reset_visited()

    def _run_block(self, function: Function, block: BasicBlock) -> StackRef:
        state = LiftState(self, function, block, block.entry_stack)
        stream = block.stream
        stream.reset()
        while not stream.at_end:
            instr = stream.next(state.stack)
            handler = self.handlers.get(instr.kind)
            if handler is None:
                LOGGER.warning("%s: unhandled instruction %s", function.identifier, instr)
                block.emit_comment("unhandled instruction %s", instr)
                continue
            handler(state, instr)
        stream.finish(state.stack)
        return state.stack

    def _seed(self, successor: BasicBlock, stack: StackRef, predecessor: BasicBlock) -> None:
        if not successor.seeded:
            successor.entry_stack = stack
            successor.seeded = True
            return
        expected = node_stack.depth(successor.entry_stack)
        incoming = node_stack.depth(stack)
        if expected != incoming:
            LOGGER.warning(
                "stack mismatch at join 0x%X: depth %d from 0x%X, expected %d",
                successor.start_address,
                incoming,
                predecessor.start_address,
                expected,
            )


def _declared_returns(chunk: Sequence[Instruction]) -> int:
    for instruction in chunk:
        if instruction.kind == LEAVE and isinstance(instruction.operands, RetOperands):
            return instruction.operands.num_returns
    return 0
