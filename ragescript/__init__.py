"""Decompiler for compiled game scripts (.xsc / .ysc) producing pseudo-C."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
