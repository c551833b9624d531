"""Position-tracked access to a run of decoded instructions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from ..exceptions import EndOfStreamError
from .instructions import Instruction
from .stack import StackRef


@dataclass
class InstructionState:
    """An instruction paired with the operand stack left behind by it."""

    instruction: Instruction
    stack: StackRef = None


class InstructionStream:
    """Cursor over instructions that snapshots the operand stack as it moves.

    Every call to :meth:`next` first stores the caller's current stack on the
    instruction returned by the previous call, so after a full pass each
    :class:`InstructionState` knows the stack in effect when the following
    instruction began.  :meth:`reset` rewinds without dropping those
    snapshots.
    """

    def __init__(self, instructions: Iterable[Instruction] = ()) -> None:
        self._code: List[InstructionState] = []
        self._by_address: Dict[int, int] = {}
        self._idx = 0
        for instruction in instructions:
            self.append(instruction)

    def append(self, instruction: Instruction) -> None:
        self._by_address.setdefault(instruction.address, len(self._code))
        self._code.append(InstructionState(instruction))

    def __len__(self) -> int:
        return len(self._code)

    def __iter__(self) -> Iterator[Instruction]:
        return (state.instruction for state in self._code)

    @property
    def position(self) -> int:
        return self._idx

    @property
    def at_end(self) -> bool:
        return self._idx >= len(self._code)

    @property
    def empty(self) -> bool:
        return not self._code

    def peek(self) -> Instruction:
        if self.at_end:
            raise EndOfStreamError(f"eof when peeking instruction {self._idx}")
        return self._code[self._idx].instruction

    def next(self, stack: StackRef = None) -> Instruction:
        self._record_previous(stack)
        instruction = self.peek()
        self._idx += 1
        return instruction

    def finish(self, stack: StackRef) -> None:
        """Record ``stack`` as the exit state of the last returned instruction."""

        self._record_previous(stack)

    def reset(self) -> None:
        self._idx = 0

    def _record_previous(self, stack: StackRef) -> None:
        if self._idx <= 0:
            return
        self._code[self._idx - 1].stack = stack

    # ------------------------------------------------------------------
    # Random access
    # ------------------------------------------------------------------

    def index_of(self, address: int) -> Optional[int]:
        return self._by_address.get(address)

    def state(self, index: int) -> InstructionState:
        return self._code[index]

    def state_at(self, address: int) -> Optional[InstructionState]:
        index = self.index_of(address)
        return None if index is None else self._code[index]

    def snapshot(self, index: int) -> StackRef:
        return self._code[index].stack

    @property
    def first(self) -> Optional[Instruction]:
        return self._code[0].instruction if self._code else None

    @property
    def last(self) -> Optional[Instruction]:
        return self._code[-1].instruction if self._code else None


__all__ = ["InstructionState", "InstructionStream"]
