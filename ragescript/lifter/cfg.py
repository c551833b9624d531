"""Basic blocks and control-flow graph discovery for a single function."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Deque, List, Optional, Sequence, Set

from ..ast_nodes import Comment, Stmt
from ..vm.instructions import J, LEAVE, Instruction
from ..vm.stack import StackRef
from ..vm.stream import InstructionStream

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .function import Function

LOGGER = logging.getLogger(__name__)

__all__ = [
    "BasicBlock",
    "collect_leaders",
    "discover_blocks",
    "link",
]


@dataclass(eq=False)
class BasicBlock:
    """A run of instructions with a single entry and a single exit.

    Blocks are owned by their function's ``blocks`` map; edges are plain
    addresses into that map.
    """

    start_address: int
    stream: InstructionStream = field(default_factory=InstructionStream)
    statements: List[Stmt] = field(default_factory=list)
    ins: Set[int] = field(default_factory=set)
    outs: Set[int] = field(default_factory=set)
    successors: List[int] = field(default_factory=list)
    in_edges: int = 0
    fallthrough: Optional[int] = None
    continuation: Optional[int] = None
    entry_stack: StackRef = None
    seeded: bool = False

    @property
    def empty(self) -> bool:
        return self.stream.empty

    @property
    def last_instruction(self) -> Optional[Instruction]:
        return self.stream.last

    def emit(self, stmt: Stmt) -> None:
        self.statements.append(stmt)

    def emit_comment(self, text: str, *args: object) -> None:
        self.emit(Comment(text % args if args else text))

    def __repr__(self) -> str:
        return (
            f"BasicBlock(start=0x{self.start_address:X}, instructions={len(self.stream)}, "
            f"outs={sorted(self.outs)})"
        )


def link(predecessor: BasicBlock, successor: BasicBlock) -> None:
    """Connect two blocks, always updating both sides of the edge."""

    predecessor.outs.add(successor.start_address)
    successor.ins.add(predecessor.start_address)
    predecessor.successors.append(successor.start_address)
    successor.in_edges += 1


def collect_leaders(instructions: Sequence[Instruction], entry: int) -> Set[int]:
    """Return every address that must start a block."""

    leaders: Set[int] = {entry}
    for index, instruction in enumerate(instructions):
        target = instruction.branch_target
        if target is not None:
            leaders.add(target)
        if instruction.is_control_transfer and index + 1 < len(instructions):
            leaders.add(instructions[index + 1].address)
    return leaders


def discover_blocks(function: "Function") -> List[int]:
    """Split ``function`` into basic blocks and link them.

    The traversal starts at the function's entry address and follows branch
    targets and fall-through successors.  Each address is processed once, so
    back-edges simply link to the existing block.  Any blocks from an earlier
    discovery are dropped first.  Returns the start addresses in discovery
    order.
    """

    stream = function.stream
    order: List[int] = []
    if stream.empty:
        return order

    function.blocks.clear()
    instructions = list(stream)
    leaders = collect_leaders(instructions, function.address)
    function.reset_visited()
    worklist: Deque[int] = deque([function.address])
    while worklist:
        address = worklist.popleft()
        if address in function.visited:
            continue
        function.visited.add(address)
        order.append(address)
        block = function.block_at(address)
        for successor in _fill_block(block, stream, leaders):
            if stream.index_of(successor) is None:
                LOGGER.warning(
                    "%s: branch from 0x%X leaves the function (0x%X)",
                    function.identifier,
                    address,
                    successor,
                )
                continue
            link(block, function.block_at(successor))
            if successor not in function.visited:
                worklist.append(successor)
    function.reset_visited()
    LOGGER.debug("%s: discovered %d blocks", function.identifier, len(order))
    return order


def _fill_block(block: BasicBlock, stream: InstructionStream, leaders: Set[int]) -> List[int]:
    index = stream.index_of(block.start_address)
    assert index is not None
    count = len(stream)
    while index < count:
        instruction = stream.state(index).instruction
        block.stream.append(instruction)
        index += 1
        if instruction.is_control_transfer:
            break
        if index < count and stream.state(index).instruction.address in leaders:
            break

    last = block.last_instruction
    assert last is not None
    next_address = stream.state(index).instruction.address if index < count else None
    if last.kind == LEAVE:
        return []
    if last.kind == J:
        return [last.branch_target] if last.branch_target is not None else []
    block.fallthrough = next_address
    if last.is_conditional:
        targets = [next_address] if next_address is not None else []
        if last.branch_target is not None:
            targets.append(last.branch_target)
        return targets
    block.continuation = next_address
    return [next_address] if next_address is not None else []
