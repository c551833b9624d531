"""Custom exception hierarchy for the decompiler."""

from __future__ import annotations


class DecompileError(Exception):
    """Base class for all decompilation related errors."""


class ConfigurationError(DecompileError):
    """Raised when the run cannot be configured (e.g. unknown architecture)."""


class ContainerFormatError(DecompileError):
    """Raised when a resource container is corrupt or unrecognised."""


class DecodeError(DecompileError):
    """Raised when raw bytecode cannot be decoded into instructions."""


class EndOfStreamError(DecompileError):
    """Raised when an instruction stream is read past its last instruction.

    This means CFG discovery and interpretation disagree about where a block
    ends, so the lifted AST cannot be trusted.
    """


class InferenceError(DecompileError):
    """Raised when type inference hits an unsupported or conflicting case."""


__all__ = [
    "DecompileError",
    "ConfigurationError",
    "ContainerFormatError",
    "DecodeError",
    "EndOfStreamError",
    "InferenceError",
]
