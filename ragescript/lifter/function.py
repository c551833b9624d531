"""Functions, their declarations and the rendering of a whole function."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Set

from ..ast_nodes import INDENT, DataType, Expr, Variable, render_statements
from ..exceptions import InferenceError
from ..vm.instructions import Instruction
from ..vm.stream import InstructionStream
from .cfg import BasicBlock

LOGGER = logging.getLogger(__name__)

__all__ = ["Declarations", "Function", "ScriptFile"]


class Declarations:
    """Ordered variables addressable by identifier or by slot position."""

    def __init__(self, variables: Iterable[Variable] = ()) -> None:
        self.vars: List[Variable] = list(variables)

    def __len__(self) -> int:
        return len(self.vars)

    def __iter__(self) -> Iterator[Variable]:
        return iter(self.vars)

    def add(self, variable: Variable) -> Variable:
        self.vars.append(variable)
        return variable

    def variable_by_name(self, identifier: str) -> Optional[Variable]:
        for variable in self.vars:
            if variable.identifier == identifier:
                return variable
        return None

    def variable_by_index(self, index: int) -> Optional[Variable]:
        if 0 <= index < len(self.vars):
            return self.vars[index]
        return None


class Function:
    """A decompiled function: declarations, the block arena and its rendering.

    ``visited`` is scratch state for graph walks (block discovery,
    interpretation, rendering).  Every walk resets it before and after use.
    """

    def __init__(
        self,
        identifier: str,
        instructions: Iterable[Instruction] = (),
        *,
        address: Optional[int] = None,
        inputs: Optional[Declarations] = None,
        local_vars: Optional[Declarations] = None,
    ) -> None:
        self.identifier = identifier
        self.stream = InstructionStream(instructions)
        first = self.stream.first
        if address is None:
            address = first.address if first is not None else 0
        self.address = address
        self.inputs = inputs if inputs is not None else Declarations()
        self.locals = local_vars if local_vars is not None else Declarations()
        self.output: Optional[Variable] = None
        self.blocks: Dict[int, BasicBlock] = {}
        self.visited: Set[int] = set()
        self._return_arity: Optional[int] = None
        self._placeholders: Set[int] = set()
        self._labels: Set[int] = set()
        self._goto_targets: Set[int] = set()

    def __repr__(self) -> str:
        return f"Function({self.identifier!r}, address=0x{self.address:X}, blocks={len(self.blocks)})"

    # ------------------------------------------------------------------
    # Block arena
    # ------------------------------------------------------------------

    @property
    def entry_block(self) -> Optional[BasicBlock]:
        return self.blocks.get(self.address)

    def block_at(self, address: int) -> BasicBlock:
        """Return the block starting at ``address``, creating it on first use."""

        block = self.blocks.get(address)
        if block is None:
            block = BasicBlock(start_address=address)
            self.blocks[address] = block
        return block

    def reset_visited(self) -> None:
        self.visited = set()

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def variable_by_name(self, identifier: str) -> Optional[Variable]:
        return self.inputs.variable_by_name(identifier) or self.locals.variable_by_name(identifier)

    def variable_by_index(self, slot: int) -> Variable:
        """Resolve a bytecode local slot: inputs first, then locals.

        Slots past the declared locals are synthesised as ``local_<slot>``;
        any skipped positions are filled with placeholders that stay
        undeclared until something references them.
        """

        if slot < len(self.inputs):
            return self.inputs.vars[slot]
        position = slot - len(self.inputs)
        while len(self.locals) <= position:
            filler = self.locals.add(Variable(f"local_{len(self.inputs) + len(self.locals)}"))
            self._placeholders.add(id(filler))
        variable = self.locals.vars[position]
        self._placeholders.discard(id(variable))
        return variable

    @property
    def declared_locals(self) -> List[Variable]:
        return [var for var in self.locals if id(var) not in self._placeholders]

    # ------------------------------------------------------------------
    # Type inference
    # ------------------------------------------------------------------

    def infer_return_type(self, num_returns: int, top: Optional[Expr] = None) -> None:
        """Infer the output type from a return site.

        Zero values means ``void``; one value takes the type of ``top``.
        Multiple return values are not supported.  The first return site
        fixes the arity and type; later sites that disagree are logged and
        otherwise ignored.
        """

        if num_returns == 0:
            data_type = DataType.VOID
        elif num_returns == 1:
            data_type = top.data_type if top is not None else DataType.UNKNOWN
        else:
            raise InferenceError(
                f"unable to infer return value of function {self.identifier}: "
                f"{num_returns} return values"
            )
        if self._return_arity is not None and self._return_arity != num_returns:
            LOGGER.warning(
                "%s returns both %d and %d values, keeping %d",
                self.identifier,
                self._return_arity,
                num_returns,
                self._return_arity,
            )
            return
        self._return_arity = num_returns
        if self.output is None:
            self.output = Variable("result")
        current = self.output.data_type
        if current is not DataType.UNKNOWN and data_type not in (DataType.UNKNOWN, current):
            LOGGER.warning(
                "%s returns both %s and %s, keeping %s",
                self.identifier,
                current.c_string(),
                data_type.c_string(),
                current.c_string(),
            )
            return
        self.output.infer_type(data_type)

    @property
    def return_type(self) -> DataType:
        if self.output is None:
            return DataType.VOID
        return self.output.data_type

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def c_string(self) -> str:
        # The first pass only finds which blocks are jumped back to so the
        # second pass can label them.
        self._labels = set()
        self._goto_targets = set()
        self._render_body()
        self._labels = set(self._goto_targets)
        body = self._render_body()

        params = ", ".join(var.c_string() for var in self.inputs)
        parts = [f"{self.return_type.c_string()} {self.identifier}({params}) {{"]
        declarations = self.declared_locals
        if declarations:
            parts.extend(render_statements([var.declaration() for var in declarations], self, 1))
            parts.append("")
        parts.extend(body)
        parts.append("}")
        return "\n".join(parts)

    def _render_body(self) -> List[str]:
        self.reset_visited()
        try:
            if self.entry_block is None:
                return []
            return self.render_region(self.address, 1, None)
        finally:
            self.reset_visited()

    def render_region(self, address: int, indent: int, stop: Optional[int]) -> List[str]:
        """Render blocks from ``address`` until ``stop`` or a dead end."""

        lines: List[str] = []
        current: Optional[int] = address
        while current is not None and current != stop:
            block = self.blocks.get(current)
            if block is None or current in self.visited:
                lines.append(f"{INDENT * indent}goto {self.label_for(current)};")
                break
            self.visited.add(current)
            if current in self._labels:
                lines.append(f"{INDENT * max(indent - 1, 0)}{self.label_for(current)}:")
            lines.extend(render_statements(block.statements, self, indent, stop))
            current = block.continuation
        return lines

    def is_rendered(self, address: int) -> bool:
        return address in self.visited

    def label_for(self, address: int) -> str:
        self._goto_targets.add(address)
        return f"label_{address:X}"


class ScriptFile:
    """All functions decompiled from one script, in address order."""

    def __init__(self, name: str, functions: Iterable[Function] = ()) -> None:
        self.name = name
        self.functions: List[Function] = list(functions)

    def function_at(self, address: int) -> Optional[Function]:
        for function in self.functions:
            if function.address == address:
                return function
        return None

    def c_string(self) -> str:
        header = f"// {self.name}"
        return "\n\n".join([header, *(fn.c_string() for fn in self.functions)])
