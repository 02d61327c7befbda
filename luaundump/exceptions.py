"""Custom exception hierarchy for chunk loading."""

from __future__ import annotations

from typing import Optional


class UndumpError(Exception):
    """Base class for all chunk loading errors."""


class BufferNotReadableError(UndumpError):
    """Raised when fewer bytes remain than a read demanded."""

    def __init__(self, name: str, position: int, requested: int, available: int):
        self.name = name
        self.position = position
        self.requested = requested
        self.available = available
        super().__init__(
            f"no values read from buffer: {name} "
            f"(wanted {requested} byte(s) at offset {position}, {available} left)"
        )


class BufferNotEmptyError(UndumpError):
    """Raised when bytes remain after a complete chunk was parsed."""

    def __init__(self, name: str, remaining: int):
        self.name = name
        self.remaining = remaining
        super().__init__(f"bytes left over from buffer: {name} ({remaining} trailing byte(s))")


class InvalidVerificationError(UndumpError):
    """Raised when a header literal, size or sample value does not match."""

    def __init__(self, field: str, detail: str, *, name: Optional[str] = None):
        self.field = field
        self.detail = detail
        self.name = name
        where = f" in {name}" if name else ""
        super().__init__(f"error verifying {field}{where}: {detail}")


class InvalidTypeError(UndumpError):
    """Raised when a type byte does not name any known value type."""

    def __init__(self, value: int):
        self.value = value
        super().__init__(f"invalid type parameter loaded: {value}")


class InvalidConstantTypeError(UndumpError):
    """Raised when a known value type cannot appear in a constant pool."""

    def __init__(self, tag: object):
        self.tag = tag
        super().__init__(f"bad value for constant: {tag!r}")


class InvalidUpvalueIndexError(UndumpError):
    """Raised when a debug upvalue name has no upvalue to attach to."""

    def __init__(self, index: int, count: int):
        self.index = index
        self.count = count
        super().__init__(f"could not find upvalue index: {index} (function has {count})")


class InvalidSourceNameError(UndumpError):
    """Raised when a function source name is not valid UTF-8."""

    def __init__(self, raw: bytes):
        self.raw = raw
        super().__init__(f"could not match source name from UTF8: {raw[:32]!r}")


class InvalidOpCodeError(UndumpError):
    """Raised when an instruction word carries an unassigned opcode."""

    def __init__(self, opcode: int, *, word: Optional[int] = None, pc: Optional[int] = None):
        self.opcode = opcode
        self.word = word
        self.pc = pc
        message = f"opcode is not valid: {opcode}"
        if word is not None:
            message += f" (word 0x{word:08x}"
            message += f" at pc {pc})" if pc is not None else ")"
        super().__init__(message)


__all__ = [
    "UndumpError",
    "BufferNotReadableError",
    "BufferNotEmptyError",
    "InvalidVerificationError",
    "InvalidTypeError",
    "InvalidConstantTypeError",
    "InvalidUpvalueIndexError",
    "InvalidSourceNameError",
    "InvalidOpCodeError",
]
