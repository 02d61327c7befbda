"""Chunk reading and writing."""

from importlib import import_module
from typing import Any

__all__ = ["BinaryReader", "ChunkWriter", "check_header", "dump", "load", "load_file"]

_EXPORTS = {
    "BinaryReader": ".reader",
    "ChunkWriter": ".writer",
    "dump": ".writer",
    "check_header": ".loader",
    "load": ".loader",
    "load_file": ".loader",
}


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegator
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name], __name__)
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
