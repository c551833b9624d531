"""Run configuration threaded through the container, decoder and driver."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError

DEFAULT_NATIVES_PATH = Path("natives.json")
DEFAULT_TRANSLATION_PATH = Path("native_translation.dat")


class Arch(Enum):
    """Target architecture of a compiled script."""

    CONSOLE = "xsc"
    PC = "ysc"

    @property
    def byte_order(self) -> str:
        return "big" if self is Arch.CONSOLE else "little"

    @property
    def struct_prefix(self) -> str:
        return ">" if self is Arch.CONSOLE else "<"


def arch_for_path(path: str | Path) -> Arch:
    """Select the architecture from a marker substring in ``path``."""

    text = str(path)
    if Arch.CONSOLE.value in text:
        return Arch.CONSOLE
    if Arch.PC.value in text:
        return Arch.PC
    raise ConfigurationError(f"unknown architecture, path: {text}")


@dataclass(frozen=True)
class DecompileConfig:
    """Options for a single decompilation run."""

    arch: Arch
    natives_path: Path = DEFAULT_NATIVES_PATH
    translation_path: Path = DEFAULT_TRANSLATION_PATH
    dot_dir: Optional[Path] = None

    @classmethod
    def for_input(cls, path: str | Path, **overrides: object) -> "DecompileConfig":
        return cls(arch=arch_for_path(path), **overrides)  # type: ignore[arg-type]


__all__ = [
    "Arch",
    "DecompileConfig",
    "arch_for_path",
    "DEFAULT_NATIVES_PATH",
    "DEFAULT_TRANSLATION_PATH",
]
