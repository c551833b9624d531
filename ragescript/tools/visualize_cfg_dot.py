"""Control-flow graph visualisation helpers.

This module converts the basic-block graph of a decompiled :class:`Function`
into DOT text and, when possible, an SVG image rendered with Graphviz.  Node
labels list the instructions of each block so the graph can be read next to
the pseudocode without cross-referencing a disassembly.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from graphviz import ExecutableNotFound, Source

from ..lifter.cfg import BasicBlock
from ..lifter.function import Function

LOGGER = logging.getLogger(__name__)

__all__ = [
    "render_cfg_dot",
    "write_cfg_visualisation",
]


def _escape_label(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\"", "\\\"")


def _summarise_block(block: BasicBlock) -> List[str]:
    lines = [f"block_{block.start_address:X}"]
    lines.extend(str(instruction) for instruction in block.stream)
    return lines


def render_cfg_dot(function: Function, *, title: Optional[str] = None) -> str:
    """Render the block graph of *function* as DOT text."""

    lines = ["digraph CFG {"]
    lines.append("  graph [rankdir=TB, splines=true, nodesep=0.6, fontname=Helvetica, fontsize=10];")
    lines.append("  node [shape=box, style=rounded, fontname=Courier, fontsize=9];")
    lines.append("  edge [fontname=Helvetica, fontsize=8];")
    lines.append(f'  label="{_escape_label(title or function.identifier)}";')
    lines.append("  labelloc=\"t\";")
    for address in sorted(function.blocks):
        block = function.blocks[address]
        label_text = "\\l".join(_escape_label(line) for line in _summarise_block(block)) + "\\l"
        attrs: List[str] = [f'label="{label_text}"']
        if address == function.address:
            attrs.extend(["peripheries=2"])
        elif len(block.ins) > 1:
            attrs.append("color=\"#2a6f97\"")
        lines.append(f'  "b{address:X}" [' + ", ".join(attrs) + "];")
        for successor in sorted(block.outs):
            style = " [style=dashed]" if successor <= address else ""
            lines.append(f'  "b{address:X}" -> "b{successor:X}"{style};')
    lines.append("}")
    return "\n".join(lines) + "\n"


def _try_render_with_graphviz(dot: str, destination: Path) -> bool:
    try:
        svg_bytes = Source(dot).pipe(format="svg")
    except ExecutableNotFound as exc:
        LOGGER.warning("Graphviz 'dot' executable not found, skipping SVG: %s", exc)
        return False
    except (OSError, subprocess.CalledProcessError) as exc:
        LOGGER.debug("dot command failed: %s", exc)
        return False
    destination.write_bytes(svg_bytes)
    return True


def write_cfg_visualisation(
    function: Function, output_dir: Path, *, render_svg: bool = True
) -> Tuple[Path, Optional[Path]]:
    """Write DOT (and SVG when Graphviz is usable) for *function*."""

    output_dir.mkdir(parents=True, exist_ok=True)
    dot_path = output_dir / f"{function.identifier}.dot"
    svg_path = output_dir / f"{function.identifier}.svg"

    dot_text = render_cfg_dot(function)
    dot_path.write_text(dot_text, encoding="utf-8")
    LOGGER.debug("wrote %s", dot_path)

    if render_svg and _try_render_with_graphviz(dot_text, svg_path):
        return dot_path, svg_path
    return dot_path, None
