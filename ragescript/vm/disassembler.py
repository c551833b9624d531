"""Decoder turning a script region into :class:`Instruction` objects.

The script region (see :mod:`ragescript.io.container`) starts with a small
header in the architecture's byte order::

    code_size     u32
    native_count  u32
    natives       native_count x u64 hashes

followed by ``code_size`` bytes of code.  Each instruction is one opcode byte
plus fixed-size operands; branch offsets are relative to the next instruction
and are resolved to absolute addresses here so the lifter never deals with
encodings.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..config import Arch
from ..exceptions import DecodeError
from ..io.container import Container
from ..io.natives import NativeDB
from . import instructions as ops
from .instructions import (
    BranchOperands,
    CallOperands,
    EnterOperands,
    Instruction,
    LocalOperands,
    NativeOperands,
    NoOperands,
    OperandPayload,
    PushOperands,
    RetOperands,
)

LOGGER = logging.getLogger(__name__)

__all__ = [
    "OPCODE_TABLE",
    "OpcodeSpec",
    "Script",
    "decode_code",
]


class _Reader:
    """Bounds-checked cursor over the code bytes."""

    def __init__(self, data: bytes, arch: Arch) -> None:
        self.data = data
        self.pos = 0
        self.prefix = arch.struct_prefix

    def _unpack(self, fmt: str, size: int) -> Tuple:
        if self.pos + size > len(self.data):
            raise DecodeError(f"truncated operand at 0x{self.pos:X}")
        values = struct.unpack_from(self.prefix + fmt, self.data, self.pos)
        self.pos += size
        return values

    def u8(self) -> int:
        return self._unpack("B", 1)[0]

    def u16(self) -> int:
        return self._unpack("H", 2)[0]

    def s16(self) -> int:
        return self._unpack("h", 2)[0]

    def u24(self) -> int:
        raw = self._unpack("3s", 3)[0]
        return int.from_bytes(raw, "big" if self.prefix == ">" else "little")

    def u32(self) -> int:
        return self._unpack("I", 4)[0]

    def f32(self) -> float:
        return self._unpack("f", 4)[0]

    def raw(self, size: int) -> bytes:
        return self._unpack(f"{size}s", size)[0]


@dataclass(frozen=True)
class _DecodeContext:
    natives: Sequence[int]
    native_db: Optional[NativeDB]


OperandDecoder = Callable[[_Reader, _DecodeContext], OperandPayload]


@dataclass(frozen=True)
class OpcodeSpec:
    kind: str
    decode: OperandDecoder


def _none(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
    return NoOperands()


def _push(*readers: Callable[[_Reader], object]) -> OperandDecoder:
    def decode(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
        return PushOperands(tuple(read(reader) for read in readers))  # type: ignore[misc]

    return decode


def _push_const(value: object) -> OperandDecoder:
    def decode(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
        return PushOperands((value,))  # type: ignore[arg-type]

    return decode


def _slot(read: Callable[[_Reader], int]) -> OperandDecoder:
    def decode(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
        return LocalOperands(read(reader))

    return decode


def _branch(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
    offset = reader.s16()
    return BranchOperands(reader.pos + offset)


def _call(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
    return CallOperands(reader.u24())


def _enter(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
    num_args = reader.u8()
    num_locals = reader.u16()
    name_length = reader.u8()
    name = reader.raw(name_length).decode("ascii", errors="replace") if name_length else ""
    return EnterOperands(num_args, num_locals, name)


def _leave(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
    num_args = reader.u8()
    return RetOperands(num_args, reader.u8())


def _native(reader: _Reader, ctx: _DecodeContext) -> OperandPayload:
    packed = reader.u8()
    index = reader.u16()
    if index >= len(ctx.natives):
        raise DecodeError(f"native index {index} out of range ({len(ctx.natives)} natives)")
    native_hash = ctx.natives[index]
    name = result_type = None
    if ctx.native_db is not None:
        info = ctx.native_db.lookup(native_hash)
        if info is not None:
            name, result_type = info.name, info.result_type
    return NativeOperands(packed >> 2, packed & 0x3, native_hash, name, result_type)


_u8 = _Reader.u8
_u16 = _Reader.u16


OPCODE_TABLE: Dict[int, OpcodeSpec] = {
    0: OpcodeSpec(ops.NOP, _none),
    1: OpcodeSpec("IADD", _none),
    2: OpcodeSpec("ISUB", _none),
    3: OpcodeSpec("IMUL", _none),
    4: OpcodeSpec("IDIV", _none),
    5: OpcodeSpec("IMOD", _none),
    6: OpcodeSpec("INOT", _none),
    7: OpcodeSpec("INEG", _none),
    8: OpcodeSpec("IEQ", _none),
    9: OpcodeSpec("INE", _none),
    10: OpcodeSpec("IGT", _none),
    11: OpcodeSpec("IGE", _none),
    12: OpcodeSpec("ILT", _none),
    13: OpcodeSpec("ILE", _none),
    14: OpcodeSpec("FADD", _none),
    15: OpcodeSpec("FSUB", _none),
    16: OpcodeSpec("FMUL", _none),
    17: OpcodeSpec("FDIV", _none),
    18: OpcodeSpec("FMOD", _none),
    19: OpcodeSpec("FNEG", _none),
    20: OpcodeSpec("FEQ", _none),
    21: OpcodeSpec("FNE", _none),
    22: OpcodeSpec("FGT", _none),
    23: OpcodeSpec("FGE", _none),
    24: OpcodeSpec("FLT", _none),
    25: OpcodeSpec("FLE", _none),
    31: OpcodeSpec("IAND", _none),
    32: OpcodeSpec("IOR", _none),
    33: OpcodeSpec("IXOR", _none),
    34: OpcodeSpec("I2F", _none),
    35: OpcodeSpec("F2I", _none),
    37: OpcodeSpec(ops.PUSH, _push(_u8)),
    38: OpcodeSpec(ops.PUSH, _push(_u8, _u8)),
    39: OpcodeSpec(ops.PUSH, _push(_u8, _u8, _u8)),
    40: OpcodeSpec(ops.PUSH, _push(_Reader.u32)),
    41: OpcodeSpec(ops.PUSH, _push(_Reader.f32)),
    42: OpcodeSpec(ops.DUP, _none),
    43: OpcodeSpec(ops.DROP, _none),
    44: OpcodeSpec(ops.NATIVE, _native),
    45: OpcodeSpec(ops.ENTER, _enter),
    46: OpcodeSpec(ops.LEAVE, _leave),
    56: OpcodeSpec(ops.LOCAL_LOAD, _slot(_u8)),
    57: OpcodeSpec(ops.LOCAL_STORE, _slot(_u8)),
    59: OpcodeSpec(ops.STATIC_LOAD, _slot(_u8)),
    60: OpcodeSpec(ops.STATIC_STORE, _slot(_u8)),
    67: OpcodeSpec(ops.PUSH, _push(_Reader.s16)),
    77: OpcodeSpec(ops.LOCAL_LOAD, _slot(_u16)),
    78: OpcodeSpec(ops.LOCAL_STORE, _slot(_u16)),
    80: OpcodeSpec(ops.STATIC_LOAD, _slot(_u16)),
    81: OpcodeSpec(ops.STATIC_STORE, _slot(_u16)),
    83: OpcodeSpec(ops.GLOBAL_LOAD, _slot(_u16)),
    84: OpcodeSpec(ops.GLOBAL_STORE, _slot(_u16)),
    85: OpcodeSpec(ops.J, _branch),
    86: OpcodeSpec(ops.JZ, _branch),
    87: OpcodeSpec("IEQ_JZ", _branch),
    88: OpcodeSpec("INE_JZ", _branch),
    89: OpcodeSpec("IGT_JZ", _branch),
    90: OpcodeSpec("IGE_JZ", _branch),
    91: OpcodeSpec("ILT_JZ", _branch),
    92: OpcodeSpec("ILE_JZ", _branch),
    93: OpcodeSpec(ops.CALL, _call),
    109: OpcodeSpec(ops.PUSH, _push_const(-1)),
}
OPCODE_TABLE.update({110 + n: OpcodeSpec(ops.PUSH, _push_const(n)) for n in range(8)})
OPCODE_TABLE[118] = OpcodeSpec(ops.PUSH, _push_const(-1.0))
OPCODE_TABLE.update({119 + n: OpcodeSpec(ops.PUSH, _push_const(float(n))) for n in range(8)})


def decode_code(
    code: bytes,
    arch: Arch,
    *,
    natives: Sequence[int] = (),
    native_db: Optional[NativeDB] = None,
    emit: Optional[Callable[[Instruction], None]] = None,
) -> List[Instruction]:
    """Decode ``code`` and return the instructions in address order."""

    reader = _Reader(code, arch)
    ctx = _DecodeContext(natives, native_db)
    decoded: List[Instruction] = []
    while reader.pos < len(code):
        address = reader.pos
        opcode = reader.u8()
        spec = OPCODE_TABLE.get(opcode)
        if spec is None:
            raise DecodeError(f"unknown opcode {opcode} at 0x{address:X}")
        instruction = Instruction(address, spec.kind, spec.decode(reader, ctx))
        decoded.append(instruction)
        if emit is not None:
            emit(instruction)
    LOGGER.debug("decoded %d instructions (%d bytes)", len(decoded), len(code))
    return decoded


class Script:
    """Script header reader and decoder for one container."""

    def __init__(self, name: str, size: int, arch: Arch) -> None:
        self.name = name
        self.size = size
        self.arch = arch
        self.native_db: Optional[NativeDB] = None
        self.natives: List[int] = []

    def load_native_db(self, natives_path: Path, translation_path: Path) -> None:
        self.native_db = NativeDB.load(natives_path, translation_path)

    def unpack(self, container: Container, emit: Callable[[Instruction], None]) -> None:
        region = container.region
        prefix = self.arch.struct_prefix
        if len(region) < 8:
            raise DecodeError(f"{self.name}: script header truncated")
        code_size, native_count = struct.unpack_from(prefix + "II", region, 0)
        code_start = 8 + native_count * 8
        if code_start + code_size > len(region):
            raise DecodeError(
                f"{self.name}: header declares {native_count} natives and {code_size} code bytes "
                f"but the region holds {len(region)} bytes"
            )
        self.natives = list(struct.unpack_from(f"{prefix}{native_count}Q", region, 8))
        code = region[code_start : code_start + code_size]
        decode_code(code, self.arch, natives=self.natives, native_db=self.native_db, emit=emit)
