from __future__ import annotations

import pytest

from ragescript.ast_nodes import Immediate
from ragescript.exceptions import EndOfStreamError
from ragescript.vm import stack
from ragescript.vm.stream import InstructionStream


def test_next_records_stack_on_previous_instruction(asm) -> None:
    asm.push(1).push(2).op("IADD")
    stream = InstructionStream(asm.code)
    one = stack.push(stack.EMPTY, Immediate(1))
    two = stack.push(one, Immediate(2))

    stream.next(stack.EMPTY)
    stream.next(one)
    stream.next(two)
    stream.finish(one)

    assert stream.snapshot(0) is one
    assert stream.snapshot(1) is two
    assert stream.snapshot(2) is one


def test_peek_and_next_raise_at_end(asm) -> None:
    stream = InstructionStream(asm.push(1).code)
    stream.next()

    assert stream.at_end
    with pytest.raises(EndOfStreamError):
        stream.peek()
    with pytest.raises(EndOfStreamError):
        stream.next()


def test_reset_rewinds_but_keeps_snapshots(asm) -> None:
    stream = InstructionStream(asm.push(1).push(2).code)
    marker = stack.push(stack.EMPTY, Immediate(9))
    stream.next()
    stream.next(marker)

    stream.reset()

    assert stream.position == 0
    assert stream.peek().address == 0
    assert stream.snapshot(0) is marker


def test_address_lookup(asm) -> None:
    asm.address = 0x20
    stream = InstructionStream(asm.push(1).ret(0).code)

    assert stream.index_of(0x21) == 1
    assert stream.index_of(0x99) is None
    assert stream.state_at(0x20).instruction.kind == "PUSH"
    assert stream.first.address == 0x20
    assert stream.last.kind == "LEAVE"
    assert not stream.empty
    assert InstructionStream().empty
