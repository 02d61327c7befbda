"""Loader for precompiled Lua 5.3 bytecode chunks."""

from __future__ import annotations

from .config import DEFAULT_PLATFORM, Platform
from .exceptions import (
    BufferNotEmptyError,
    BufferNotReadableError,
    InvalidConstantTypeError,
    InvalidOpCodeError,
    InvalidSourceNameError,
    InvalidTypeError,
    InvalidUpvalueIndexError,
    InvalidVerificationError,
    UndumpError,
)
from .io.writer import dump
from .io.loader import load, load_file
from .objects import LocVar, LuaType, Proto, Upvalue, Value

__version__ = "0.3.0"

__all__ = [
    "DEFAULT_PLATFORM",
    "BufferNotEmptyError",
    "BufferNotReadableError",
    "InvalidConstantTypeError",
    "InvalidOpCodeError",
    "InvalidSourceNameError",
    "InvalidTypeError",
    "InvalidUpvalueIndexError",
    "InvalidVerificationError",
    "LocVar",
    "LuaType",
    "Platform",
    "Proto",
    "UndumpError",
    "Upvalue",
    "Value",
    "dump",
    "load",
    "load_file",
]
