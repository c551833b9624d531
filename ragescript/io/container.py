"""Resource container unpacking.

A compiled script is wrapped in a 16-byte resource header::

    magic          4 bytes   b"RSC7" (PC) or b"RSC\\x85" (console)
    version        u32
    virtual_flags  u32
    physical_flags u32

followed by the script region.  The header words use the architecture's byte
order.  A region that starts with a zlib stream header and inflates cleanly
is replaced by its inflated bytes; otherwise it is used as is.
"""

from __future__ import annotations

import logging
import struct
import zlib
from dataclasses import dataclass

from ..config import Arch
from ..exceptions import ContainerFormatError

LOGGER = logging.getLogger(__name__)

HEADER_SIZE = 0x10

RESOURCE_MAGIC = {
    Arch.PC: b"RSC7",
    Arch.CONSOLE: b"RSC\x85",
}

_ZLIB_HEADERS = (b"\x78\x01", b"\x78\x5e", b"\x78\x9c", b"\x78\xda")

__all__ = ["Container", "HEADER_SIZE", "RESOURCE_MAGIC", "pack_container"]


@dataclass(frozen=True)
class Container:
    """A validated resource holding one script region."""

    name: str
    size: int
    arch: Arch
    version: int
    virtual_flags: int
    physical_flags: int
    region: bytes

    @classmethod
    def unpack(cls, data: bytes, name: str, size: int, arch: Arch) -> "Container":
        if size > len(data):
            raise ContainerFormatError(f"{name}: declared size {size} exceeds {len(data)} bytes")
        if size < HEADER_SIZE:
            raise ContainerFormatError(f"{name}: {size} bytes is too small for a resource header")

        magic = bytes(data[:4])
        expected = RESOURCE_MAGIC[arch]
        if magic != expected:
            raise ContainerFormatError(
                f"{name}: bad resource magic {magic!r}, expected {expected!r} for {arch.name}"
            )
        version, virtual_flags, physical_flags = struct.unpack_from(
            arch.struct_prefix + "III", data, 4
        )
        region = _inflate(bytes(data[HEADER_SIZE:size]), name)
        return cls(
            name=name,
            size=size,
            arch=arch,
            version=version,
            virtual_flags=virtual_flags,
            physical_flags=physical_flags,
            region=region,
        )


def _inflate(region: bytes, name: str) -> bytes:
    # A region with a zlib-looking prefix that does not inflate is returned unchanged.
    if region[:2] not in _ZLIB_HEADERS:
        return region
    try:
        inflated = zlib.decompress(region)
    except zlib.error as exc:
        LOGGER.debug("%s: region is not a zlib stream (%s), reading it raw", name, exc)
        return region
    LOGGER.debug("%s: inflated script region to %d bytes", name, len(inflated))
    return inflated


def pack_container(
    region: bytes,
    arch: Arch,
    *,
    version: int = 10,
    virtual_flags: int = 0,
    physical_flags: int = 0,
    compress: bool = False,
) -> bytes:
    """Wrap ``region`` in a resource header (used by fixtures and tooling)."""

    body = zlib.compress(region) if compress else region
    header = RESOURCE_MAGIC[arch] + struct.pack(
        arch.struct_prefix + "III", version, virtual_flags, physical_flags
    )
    return header + body
