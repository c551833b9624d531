from __future__ import annotations

from pathlib import Path

import pytest

from ragescript.config import Arch, DecompileConfig, arch_for_path
from ragescript.exceptions import ConfigurationError


@pytest.mark.parametrize(
    ("path", "arch"),
    [
        ("scripts/main.xsc", Arch.CONSOLE),
        ("scripts/main.ysc", Arch.PC),
        ("dump/xsc/ysc_copy.bin", Arch.CONSOLE),
    ],
)
def test_arch_selected_from_path_marker(path: str, arch: Arch) -> None:
    assert arch_for_path(path) is arch


def test_unknown_marker_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="unknown architecture"):
        arch_for_path("scripts/main.bin")


def test_byte_order_follows_architecture() -> None:
    assert Arch.CONSOLE.byte_order == "big"
    assert Arch.PC.struct_prefix == "<"


def test_config_for_input_applies_overrides(tmp_path: Path) -> None:
    config = DecompileConfig.for_input("a.ysc", natives_path=tmp_path / "n.json", dot_dir=tmp_path)

    assert config.arch is Arch.PC
    assert config.natives_path == tmp_path / "n.json"
    assert config.translation_path == Path("native_translation.dat")
    assert config.dot_dir == tmp_path
