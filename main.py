#!/usr/bin/env python3
"""Compat shim that forwards to :mod:`ragescript.main`.

Lets the decompiler run straight from a checkout (``python main.py
script.ysc``) without installing the ``rage-decompile`` entry point.
"""

from __future__ import annotations

import sys

from ragescript import main as _cli


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``python main.py``."""

    return _cli.main(sys.argv[1:] if argv is None else argv)


if __name__ == "__main__":  # pragma: no cover - thin CLI shim
    raise SystemExit(main())
