"""Pseudo-C AST nodes and their renderers.

Expressions render to a single string via ``render()``.  Statements render to a
list of lines via :func:`render_statement`, which needs a
:class:`RenderContext` because conditionals and jumps refer to basic blocks by
start address and the owning function decides how those blocks are laid out.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Union

LOGGER = logging.getLogger(__name__)

INDENT = "    "


class DataType(Enum):
    VOID = "void"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STRING = "char*"
    UNKNOWN = "var"

    def c_string(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: Optional[str]) -> "DataType":
        """Map a type name from the native database onto a :class:`DataType`."""

        if not name:
            return cls.UNKNOWN
        lowered = name.strip().lower()
        for member in cls:
            if member.value == lowered or member.name.lower() == lowered:
                return member
        if lowered in {"const char*", "string"}:
            return cls.STRING
        if lowered in {"any", "hash", "entity", "ped", "vehicle", "object", "player"}:
            return cls.INT
        return cls.UNKNOWN


def data_type_of(value: object) -> DataType:
    if isinstance(value, bool):
        return DataType.BOOL
    if isinstance(value, int):
        return DataType.INT
    if isinstance(value, float):
        return DataType.FLOAT
    if isinstance(value, str):
        return DataType.STRING
    return DataType.UNKNOWN


@dataclass(eq=False)
class Variable:
    """A named, typed storage location.

    ``data_type`` starts as :attr:`DataType.UNKNOWN` and is set in place by the
    first inference rule that has something to say about it, so every
    :class:`VariableRef` sees the update.
    """

    identifier: str
    data_type: DataType = DataType.UNKNOWN

    def infer_type(self, data_type: DataType) -> bool:
        """Record ``data_type``; return ``True`` when the type changed.

        A conflicting second inference keeps the first type.
        """

        if data_type is DataType.UNKNOWN or data_type is self.data_type:
            return False
        if self.data_type is DataType.UNKNOWN:
            self.data_type = data_type
            return True
        LOGGER.debug(
            "keeping %s for %s, ignoring %s",
            self.data_type.c_string(),
            self.identifier,
            data_type.c_string(),
        )
        return False

    def c_string(self) -> str:
        return f"{self.data_type.c_string()} {self.identifier}"

    def declaration(self) -> "Declaration":
        return Declaration(self)


# ---------------------------------------------------------------------------
# Expression nodes


class Expr:
    """Base class for expression nodes."""

    data_type: DataType

    def render(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError


@dataclass(slots=True)
class Immediate(Expr):
    value: Union[int, float, str, bool]
    data_type: DataType = DataType.UNKNOWN
    hex: bool = False

    def __post_init__(self) -> None:
        if self.data_type is DataType.UNKNOWN:
            self.data_type = data_type_of(self.value)

    def render(self) -> str:
        value = self.value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return json.dumps(value)
        if isinstance(value, float):
            return f"{value!r}f"
        if self.hex:
            return f"0x{value:X}"
        return str(value)


@dataclass(slots=True)
class VariableRef(Expr):
    variable: Variable

    @property
    def data_type(self) -> DataType:  # type: ignore[override]
        return self.variable.data_type

    def render(self) -> str:
        return self.variable.identifier


@dataclass(slots=True)
class BinaryExpr(Expr):
    left: Expr
    op: str
    right: Expr
    data_type: DataType = DataType.UNKNOWN

    def render(self) -> str:
        return f"{_operand(self.left)} {self.op} {_operand(self.right)}"


@dataclass(slots=True)
class UnaryExpr(Expr):
    op: str
    operand: Expr
    data_type: DataType = DataType.UNKNOWN

    def render(self) -> str:
        return f"{self.op}{_operand(self.operand)}"


@dataclass(slots=True)
class Call(Expr):
    name: str
    args: List[Expr] = field(default_factory=list)
    data_type: DataType = DataType.UNKNOWN

    def render(self) -> str:
        args = ", ".join(arg.render() for arg in self.args)
        return f"{self.name}({args})"


def _operand(expr: Expr) -> str:
    if isinstance(expr, BinaryExpr):
        return f"({expr.render()})"
    return expr.render()


# Marker pushed in place of a value when the operand stack underflows.
STACK_UNDERFLOW = Immediate(0xBABE, DataType.UNKNOWN, hex=True)


# ---------------------------------------------------------------------------
# Statement nodes


class RenderContext(Protocol):
    """Lays out the blocks that compound statements refer to."""

    def render_region(self, address: int, indent: int, stop: Optional[int]) -> List[str]:
        ...

    def is_rendered(self, address: int) -> bool:
        ...

    def label_for(self, address: int) -> str:
        ...


class Stmt:
    """Base class for statement nodes."""

    terminated = True

    def render(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError


@dataclass(slots=True)
class AssignStmt(Stmt):
    target: VariableRef
    value: Expr

    def render(self) -> str:
        return f"{self.target.render()} = {self.value.render()}"


@dataclass(slots=True)
class CallStmt(Stmt):
    call: Call

    def render(self) -> str:
        return self.call.render()


@dataclass(slots=True)
class ReturnStmt(Stmt):
    values: List[Expr] = field(default_factory=list)

    def render(self) -> str:
        if not self.values:
            return "return"
        return "return " + ", ".join(value.render() for value in self.values)


@dataclass(slots=True)
class Declaration(Stmt):
    variable: Variable

    def render(self) -> str:
        return self.variable.c_string()


@dataclass(slots=True)
class Comment(Stmt):
    text: str

    terminated = False

    def render(self) -> str:
        return f"// {self.text}"


@dataclass(slots=True)
class IfStmt(Stmt):
    """Conditional whose branches are blocks of the owning function.

    ``join`` is the address where both branches meet again; rendering of the
    branches stops there and the enclosing region continues from it.
    """

    condition: Expr
    then_block: int
    join: Optional[int]
    else_block: Optional[int] = None

    terminated = False

    def render(self) -> str:
        return f"if ({self.condition.render()})"


@dataclass(slots=True)
class GotoStmt(Stmt):
    """Unconditional transfer to the block at ``target``."""

    target: int

    def render(self) -> str:
        return f"goto label_{self.target:X}"


Node = Union[Expr, Stmt]


def render_statement(
    stmt: Stmt, ctx: RenderContext, indent: int, stop: Optional[int] = None
) -> List[str]:
    pad = INDENT * indent
    if isinstance(stmt, IfStmt):
        lines = [f"{pad}{stmt.render()} {{"]
        lines.extend(ctx.render_region(stmt.then_block, indent + 1, stmt.join))
        if stmt.else_block is not None:
            lines.append(f"{pad}}} else {{")
            lines.extend(ctx.render_region(stmt.else_block, indent + 1, stmt.join))
        lines.append(f"{pad}}}")
        return lines
    if isinstance(stmt, GotoStmt):
        if stmt.target == stop:
            return []
        if not ctx.is_rendered(stmt.target):
            return ctx.render_region(stmt.target, indent, stop)
        return [f"{pad}goto {ctx.label_for(stmt.target)};"]
    text = stmt.render()
    if stmt.terminated:
        text += ";"
    return [pad + text]


def render_statements(
    statements: Sequence[Stmt], ctx: RenderContext, indent: int, stop: Optional[int] = None
) -> List[str]:
    lines: List[str] = []
    for stmt in statements:
        lines.extend(render_statement(stmt, ctx, indent, stop))
    return lines


__all__ = [
    "INDENT",
    "DataType",
    "data_type_of",
    "Variable",
    "Expr",
    "Immediate",
    "VariableRef",
    "BinaryExpr",
    "UnaryExpr",
    "Call",
    "STACK_UNDERFLOW",
    "RenderContext",
    "Stmt",
    "AssignStmt",
    "CallStmt",
    "ReturnStmt",
    "Declaration",
    "Comment",
    "IfStmt",
    "GotoStmt",
    "Node",
    "render_statement",
    "render_statements",
]
