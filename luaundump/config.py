"""Format constants and target-platform configuration for Lua 5.3 chunks."""

from __future__ import annotations

import json
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping

__all__ = [
    "LUA_SIGNATURE",
    "LUAC_DATA",
    "LUAC_FORMAT",
    "LUAC_INT",
    "LUAC_NUM",
    "LUAC_VERSION",
    "LUA_VERSION_MAJOR",
    "LUA_VERSION_MINOR",
    "MAX_NESTING",
    "DEFAULT_PLATFORM",
    "Platform",
]

LUA_VERSION_MAJOR = 5
LUA_VERSION_MINOR = 3

# <ESC>Lua; ESC cannot start a source file, so it marks precompiled chunks.
LUA_SIGNATURE = b"\x1bLua"
LUAC_VERSION = LUA_VERSION_MAJOR * 16 + LUA_VERSION_MINOR
LUAC_FORMAT = 0  # official PUC-Rio format
LUAC_DATA = b"\x19\x93\r\n\x1a\n"
LUAC_INT = 0x5678
LUAC_NUM = 370.5

# Deepest function nesting accepted; luac itself stops at LUAI_MAXCCALLS.
MAX_NESTING = 200

_INT_FORMATS = {1: "b", 2: "h", 4: "i", 8: "q"}
_FLOAT_FORMATS = {4: "f", 8: "d"}
_BYTEORDERS = {"little": "<", "big": ">"}


@dataclass(frozen=True)
class Platform:
    """Sizes and byte order of the machine that produced a chunk.

    The header of every chunk records the widths below; the loader compares
    them against this description before reading any payload.
    """

    int_size: int = 4
    size_t_size: int = 8
    instruction_size: int = 4
    integer_size: int = 8
    number_size: int = 8
    byteorder: str = "little"

    def __post_init__(self) -> None:
        for name in ("int_size", "size_t_size", "instruction_size", "integer_size"):
            value = getattr(self, name)
            if value not in _INT_FORMATS:
                raise ValueError(f"{name} must be one of {sorted(_INT_FORMATS)}, got {value!r}")
        if self.number_size not in _FLOAT_FORMATS:
            raise ValueError(
                f"number_size must be one of {sorted(_FLOAT_FORMATS)}, got {self.number_size!r}"
            )
        if self.byteorder == "native":
            object.__setattr__(self, "byteorder", sys.byteorder)
        if self.byteorder not in _BYTEORDERS:
            raise ValueError(f"byteorder must be 'little', 'big' or 'native', got {self.byteorder!r}")

    @property
    def prefix(self) -> str:
        """``struct`` byte-order prefix."""

        return _BYTEORDERS[self.byteorder]

    def int_format(self, size: int, *, signed: bool = True) -> str:
        code = _INT_FORMATS[size]
        return self.prefix + (code if signed else code.upper())

    def float_format(self, size: int) -> str:
        return self.prefix + _FLOAT_FORMATS[size]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Platform":
        if not isinstance(payload, Mapping):
            raise TypeError("Platform configuration must be a mapping")
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown platform option(s): {', '.join(unknown)}")
        values: Dict[str, Any] = {}
        for key, value in payload.items():
            values[key] = str(value) if key == "byteorder" else int(value)
        return cls(**values)

    @classmethod
    def from_json(cls, path: Path) -> "Platform":
        with Path(path).open("r", encoding="utf8") as fh:
            return cls.from_dict(json.load(fh))


DEFAULT_PLATFORM = Platform()
