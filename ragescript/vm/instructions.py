"""Decoded instruction representation shared by the decoder and the lifter.

Instructions are produced once by :mod:`ragescript.vm.disassembler` (or built
directly in tests) and never mutated afterwards.  The ``kind`` of an
instruction is a plain mnemonic string so new kinds can be introduced without
touching the lifter; kinds the lifter has no handler for are tolerated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

# Mnemonics understood by the lifter.  Decoders are free to emit others.
NOP = "NOP"
PUSH = "PUSH"
DUP = "DUP"
DROP = "DROP"
LOCAL_LOAD = "LOCAL_LOAD"
LOCAL_STORE = "LOCAL_STORE"
STATIC_LOAD = "STATIC_LOAD"
STATIC_STORE = "STATIC_STORE"
GLOBAL_LOAD = "GLOBAL_LOAD"
GLOBAL_STORE = "GLOBAL_STORE"
NATIVE = "NATIVE"
CALL = "CALL"
ENTER = "ENTER"
LEAVE = "LEAVE"
J = "J"
JZ = "JZ"

INT_BINARY_OPS: Dict[str, str] = {
    "IADD": "+",
    "ISUB": "-",
    "IMUL": "*",
    "IDIV": "/",
    "IMOD": "%",
    "IAND": "&",
    "IOR": "|",
    "IXOR": "^",
}

FLOAT_BINARY_OPS: Dict[str, str] = {
    "FADD": "+",
    "FSUB": "-",
    "FMUL": "*",
    "FDIV": "/",
    "FMOD": "%",
}

COMPARISON_OPS: Dict[str, str] = {
    "IEQ": "==",
    "INE": "!=",
    "IGT": ">",
    "IGE": ">=",
    "ILT": "<",
    "ILE": "<=",
    "FEQ": "==",
    "FNE": "!=",
    "FGT": ">",
    "FGE": ">=",
    "FLT": "<",
    "FLE": "<=",
}

# Fused compare-and-branch kinds: jump when the comparison is false.
COMPARE_JUMPS: Dict[str, str] = {
    "IEQ_JZ": "==",
    "INE_JZ": "!=",
    "IGT_JZ": ">",
    "IGE_JZ": ">=",
    "ILT_JZ": "<",
    "ILE_JZ": "<=",
}

UNARY_OPS: Dict[str, str] = {
    "INOT": "!",
    "INEG": "-",
    "FNEG": "-",
    "I2F": "(float)",
    "F2I": "(int)",
}

CONDITIONAL_JUMPS = frozenset({JZ, *COMPARE_JUMPS})
CONTROL_TRANSFERS = frozenset({J, LEAVE, *CONDITIONAL_JUMPS})


@dataclass(frozen=True)
class NoOperands:
    """Payload for instructions without operands."""


@dataclass(frozen=True)
class PushOperands:
    """One or more immediate values pushed in order."""

    values: Tuple[Union[int, float, str], ...]


@dataclass(frozen=True)
class LocalOperands:
    """Slot index of a local, static or global variable."""

    index: int


@dataclass(frozen=True)
class BranchOperands:
    """Absolute target address of a jump."""

    target: int


@dataclass(frozen=True)
class RetOperands:
    num_args: int
    num_returns: int


@dataclass(frozen=True)
class EnterOperands:
    num_args: int
    num_locals: int
    name: str = ""


@dataclass(frozen=True)
class NativeOperands:
    num_args: int
    num_returns: int
    hash: int
    name: Optional[str] = None
    result_type: Optional[str] = None


@dataclass(frozen=True)
class CallOperands:
    target: int


OperandPayload = Union[
    NoOperands,
    PushOperands,
    LocalOperands,
    BranchOperands,
    RetOperands,
    EnterOperands,
    NativeOperands,
    CallOperands,
]


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction at ``address``."""

    address: int
    kind: str
    operands: OperandPayload = field(default_factory=NoOperands)

    @property
    def is_control_transfer(self) -> bool:
        return self.kind in CONTROL_TRANSFERS

    @property
    def is_conditional(self) -> bool:
        return self.kind in CONDITIONAL_JUMPS

    @property
    def branch_target(self) -> Optional[int]:
        if isinstance(self.operands, BranchOperands):
            return self.operands.target
        return None

    def __str__(self) -> str:
        return f"{self.address:06X}: {self.kind} {_describe(self.operands)}".rstrip()


def _describe(operands: OperandPayload) -> str:
    if isinstance(operands, NoOperands):
        return ""
    if isinstance(operands, PushOperands):
        return ", ".join(repr(value) for value in operands.values)
    if isinstance(operands, (BranchOperands, CallOperands)):
        return f"@{operands.target:06X}"
    if isinstance(operands, NativeOperands):
        return operands.name or f"0x{operands.hash:016X}"
    return " ".join(f"{key}={value}" for key, value in vars(operands).items())


__all__ = [
    "Instruction",
    "OperandPayload",
    "NoOperands",
    "PushOperands",
    "LocalOperands",
    "BranchOperands",
    "RetOperands",
    "EnterOperands",
    "NativeOperands",
    "CallOperands",
    "INT_BINARY_OPS",
    "FLOAT_BINARY_OPS",
    "COMPARISON_OPS",
    "COMPARE_JUMPS",
    "UNARY_OPS",
    "CONDITIONAL_JUMPS",
    "CONTROL_TRANSFERS",
    "NOP",
    "PUSH",
    "DUP",
    "DROP",
    "LOCAL_LOAD",
    "LOCAL_STORE",
    "STATIC_LOAD",
    "STATIC_STORE",
    "GLOBAL_LOAD",
    "GLOBAL_STORE",
    "NATIVE",
    "CALL",
    "ENTER",
    "LEAVE",
    "J",
    "JZ",
]
