"""Native function name lookup.

Two files feed the database:

* ``natives.json`` maps a namespace to ``{"0xHASH": {"name": ..., "results": ...}}``.
* ``native_translation.dat`` is a flat run of little-endian ``u64`` pairs that
  translate the hash stored in a script into the canonical hash used by
  ``natives.json``.
"""

from __future__ import annotations

import json
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

LOGGER = logging.getLogger(__name__)

_PAIR = struct.Struct("<QQ")

__all__ = ["NativeInfo", "NativeDB", "parse_natives", "parse_translation"]


@dataclass(frozen=True)
class NativeInfo:
    hash: int
    name: str
    namespace: str = ""
    result_type: Optional[str] = None


def _coerce_hash(key: object) -> Optional[int]:
    try:
        return int(str(key), 0)
    except (TypeError, ValueError):
        return None


def parse_natives(payload: Mapping[str, object]) -> Dict[int, NativeInfo]:
    natives: Dict[int, NativeInfo] = {}
    for namespace, entries in payload.items():
        if not isinstance(entries, Mapping):
            continue
        for key, entry in entries.items():
            native_hash = _coerce_hash(key)
            if native_hash is None or not isinstance(entry, Mapping):
                LOGGER.debug("skipping malformed native entry %s.%s", namespace, key)
                continue
            name = entry.get("name")
            if not name:
                continue
            results = entry.get("results")
            natives[native_hash] = NativeInfo(
                hash=native_hash,
                name=str(name),
                namespace=str(namespace),
                result_type=str(results) if results else None,
            )
    return natives


def parse_translation(data: bytes) -> Dict[int, int]:
    if len(data) % _PAIR.size:
        raise ValueError(f"translation table length {len(data)} is not a multiple of {_PAIR.size}")
    return {old: new for old, new in _PAIR.iter_unpack(data)}


class NativeDB:
    """Resolves native hashes to readable names."""

    def __init__(
        self,
        natives: Optional[Mapping[int, NativeInfo]] = None,
        translation: Optional[Mapping[int, int]] = None,
    ) -> None:
        self._natives = dict(natives or {})
        self._translation = dict(translation or {})

    def __len__(self) -> int:
        return len(self._natives)

    @classmethod
    def load(cls, natives_path: Path, translation_path: Path) -> "NativeDB":
        """Load both database files.

        Raises :class:`OSError` when a file cannot be read and
        :class:`ValueError` when its contents are malformed.
        """

        payload = json.loads(Path(natives_path).read_text(encoding="utf-8"))
        if not isinstance(payload, Mapping):
            raise ValueError(f"{natives_path}: expected an object of namespaces")
        natives = parse_natives(payload)
        translation = parse_translation(Path(translation_path).read_bytes())
        LOGGER.debug("loaded %d natives, %d translations", len(natives), len(translation))
        return cls(natives, translation)

    def lookup(self, native_hash: int) -> Optional[NativeInfo]:
        canonical = self._translation.get(native_hash, native_hash)
        return self._natives.get(canonical)

    def name_for(self, native_hash: int) -> Optional[str]:
        info = self.lookup(native_hash)
        return info.name if info is not None else None
