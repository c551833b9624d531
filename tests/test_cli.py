from __future__ import annotations

import json
import logging
import struct
from pathlib import Path

from ragescript import main as cli
from ragescript.config import Arch
from ragescript.io.container import pack_container

# ENTER main; PUSH 1; PUSH 2; IADD; LEAVE 0 1
CODE = bytes([45, 0, 2, 0, 4]) + b"main" + bytes([111, 112, 1, 46, 0, 1])


def _write_script(path: Path, arch: Arch = Arch.PC, natives=()) -> Path:
    prefix = arch.struct_prefix
    region = struct.pack(prefix + "II", len(CODE), len(natives))
    region += b"".join(struct.pack(prefix + "Q", value) for value in natives)
    path.write_bytes(pack_container(region + CODE, arch))
    return path


def _db_args(tmp_path: Path) -> list:
    natives = tmp_path / "natives.json"
    natives.write_text(json.dumps({"SYSTEM": {}}), encoding="utf-8")
    table = tmp_path / "native_translation.dat"
    table.write_bytes(b"")
    return ["--natives", str(natives), "--translation", str(table)]


def test_cli_prints_pseudocode(tmp_path: Path, capsys) -> None:
    script = _write_script(tmp_path / "demo.ysc")

    exit_code = cli.main([str(script), *_db_args(tmp_path)])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert out.startswith("// demo.ysc\n")
    assert "int main() {\n    return 1 + 2;\n}" in out


def test_cli_console_script(tmp_path: Path, capsys) -> None:
    script = _write_script(tmp_path / "demo.xsc", Arch.CONSOLE)

    assert cli.main([str(script), *_db_args(tmp_path)]) == 0
    assert "return 1 + 2;" in capsys.readouterr().out


def test_missing_native_database_is_not_fatal(tmp_path: Path, capsys, caplog) -> None:
    script = _write_script(tmp_path / "demo.ysc")
    missing = tmp_path / "missing"

    with caplog.at_level(logging.WARNING):
        exit_code = cli.main(
            [str(script), "--natives", str(missing), "--translation", str(missing)]
        )

    assert exit_code == 0
    assert "Unable to load hash dictionary" in caplog.text
    assert "return 1 + 2;" in capsys.readouterr().out


def test_unknown_architecture_is_fatal(tmp_path: Path, capsys, caplog) -> None:
    script = _write_script(tmp_path / "demo.bin")

    with caplog.at_level(logging.ERROR):
        exit_code = cli.main([str(script)])

    assert exit_code == 1
    assert "unknown architecture" in caplog.text
    assert capsys.readouterr().out == ""


def test_unreadable_input_is_fatal(tmp_path: Path, caplog) -> None:
    with caplog.at_level(logging.ERROR):
        exit_code = cli.main([str(tmp_path / "absent.ysc")])

    assert exit_code == 1
    assert "unable to read" in caplog.text


def test_corrupt_container_is_fatal(tmp_path: Path, caplog) -> None:
    script = tmp_path / "corrupt.ysc"
    script.write_bytes(b"NOPE" + bytes(20))

    with caplog.at_level(logging.ERROR):
        exit_code = cli.main([str(script), *_db_args(tmp_path)])

    assert exit_code == 1
    assert "bad resource magic" in caplog.text


def test_dot_output_written_per_function(tmp_path: Path, capsys) -> None:
    script = _write_script(tmp_path / "demo.ysc")
    dot_dir = tmp_path / "graphs"

    exit_code = cli.main([str(script), "--dot", str(dot_dir), *_db_args(tmp_path)])

    assert exit_code == 0
    dot_text = (dot_dir / "main.dot").read_text(encoding="utf-8")
    assert dot_text.startswith("digraph CFG {")
    capsys.readouterr()


def test_build_parser_defaults() -> None:
    args = cli.build_parser().parse_args(["x.ysc"])

    assert args.natives == Path("natives.json")
    assert args.translation == Path("native_translation.dat")
    assert args.dot is None
    assert args.verbose is False


def test_root_shim_forwards_to_cli(tmp_path: Path, capsys) -> None:
    import main as shim

    script = _write_script(tmp_path / "demo.ysc")

    assert shim.main([str(script), *_db_args(tmp_path)]) == 0
    assert "int main()" in capsys.readouterr().out
