"""Command line interface: decompile one compiled script to pseudo-C."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .config import DEFAULT_NATIVES_PATH, DEFAULT_TRANSLATION_PATH, DecompileConfig
from .exceptions import DecompileError
from .io.container import Container
from .lifter.function import ScriptFile
from .lifter.machine import Machine
from .tools.visualize_cfg_dot import write_cfg_visualisation
from .vm.disassembler import Script
from .vm.instructions import Instruction

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rage-decompile",
        description="Decompile compiled game scripts (.xsc console, .ysc PC) into pseudo-C",
    )
    parser.add_argument("path", type=Path, help="Compiled script file")
    parser.add_argument(
        "--natives",
        type=Path,
        default=DEFAULT_NATIVES_PATH,
        help="Native name database (default: ./natives.json)",
    )
    parser.add_argument(
        "--translation",
        type=Path,
        default=DEFAULT_TRANSLATION_PATH,
        help="Native hash translation table (default: ./native_translation.dat)",
    )
    parser.add_argument(
        "--dot",
        type=Path,
        default=None,
        metavar="DIR",
        help="Write a DOT/SVG control-flow graph per function into DIR",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def decompile_file(config: DecompileConfig, path: Path) -> ScriptFile:
    """Run the whole pipeline for ``path`` and return the decompiled script."""

    LOGGER.info("Decompiling %s", path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise DecompileError(f"unable to read {path}: {exc}") from exc

    container = Container.unpack(data, path.name, len(data), config.arch)
    script = Script(path.name, len(data), config.arch)
    try:
        script.load_native_db(config.natives_path, config.translation_path)
    except (OSError, ValueError) as exc:
        LOGGER.warning("Unable to load hash dictionary (%s). Lookups will be unavailable", exc)

    code: List[Instruction] = []
    script.unpack(container, code.append)

    machine = Machine(code, name=path.name)
    script_file = machine.decompile()
    if config.dot_dir is not None:
        for function in script_file.functions:
            write_cfg_visualisation(function, config.dot_dir)
    return script_file


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    try:
        config = DecompileConfig.for_input(
            args.path,
            natives_path=args.natives,
            translation_path=args.translation,
            dot_dir=args.dot,
        )
        script_file = decompile_file(config, args.path)
    except DecompileError as exc:
        LOGGER.error("%s", exc)
        return 1

    print(script_file.c_string())
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
