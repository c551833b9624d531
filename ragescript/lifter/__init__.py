"""Block discovery, abstract interpretation and function rendering."""

from __future__ import annotations

from .cfg import BasicBlock, discover_blocks
from .function import Declarations, Function, ScriptFile
from .machine import Machine

__all__ = [
    "BasicBlock",
    "Declarations",
    "Function",
    "Machine",
    "ScriptFile",
    "discover_blocks",
]
