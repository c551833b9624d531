"""Persistent operand stack used during abstract interpretation.

A stack is represented by a reference to its top :class:`Link` (``None`` for
the empty stack).  Pushing allocates a new head that points at the old one and
never touches existing cells, so any number of blocks and instruction
snapshots can hold on to the same tail without copying.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from ..ast_nodes import STACK_UNDERFLOW, Expr

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Link:
    node: Expr
    next: Optional["Link"] = None


StackRef = Optional[Link]

EMPTY: StackRef = None


def push(ref: StackRef, node: Expr) -> StackRef:
    return Link(node, ref)


def pop(ref: StackRef) -> Tuple[Expr, StackRef]:
    """Return the top node and the remaining stack.

    An empty stack yields :data:`STACK_UNDERFLOW` and stays empty.
    """

    if ref is None:
        LOGGER.warning("node stack underflow")
        return STACK_UNDERFLOW, None
    return ref.node, ref.next


def peek(ref: StackRef) -> Expr:
    if ref is None:
        LOGGER.warning("node stack underflow")
        return STACK_UNDERFLOW
    return ref.node


def pop_many(ref: StackRef, count: int) -> Tuple[list, StackRef]:
    """Pop ``count`` nodes, returned in push order (deepest first)."""

    nodes = []
    for _ in range(count):
        node, ref = pop(ref)
        nodes.append(node)
    nodes.reverse()
    return nodes, ref


def iter_nodes(ref: StackRef) -> Iterator[Expr]:
    """Yield nodes from the top of the stack downwards."""

    while ref is not None:
        yield ref.node
        ref = ref.next


def depth(ref: StackRef) -> int:
    return sum(1 for _ in iter_nodes(ref))


__all__ = [
    "Link",
    "StackRef",
    "EMPTY",
    "push",
    "pop",
    "peek",
    "pop_many",
    "iter_nodes",
    "depth",
]
