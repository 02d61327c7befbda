"""Cursor over the bytes of a precompiled chunk."""

from __future__ import annotations

import struct
from typing import Optional

from ..config import DEFAULT_PLATFORM, Platform
from ..exceptions import BufferNotReadableError, InvalidVerificationError

__all__ = ["BinaryReader", "LONG_STRING_MARKER"]

# A length byte of 0xFF announces a full size_t length.
LONG_STRING_MARKER = 0xFF


class BinaryReader:
    """Consume a byte buffer strictly left to right.

    Multi-byte values are unpacked with the widths and byte order of
    ``platform``; the chunk loader only trusts those after the header has
    confirmed them.  ``name`` appears in error messages only.
    """

    def __init__(self, data: bytes, name: str = "?", platform: Optional[Platform] = None):
        self._data = memoryview(bytes(data))
        self._pos = 0
        self.name = name
        self.platform = platform or DEFAULT_PLATFORM

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def finished(self) -> bool:
        return self._pos >= len(self._data)

    def read_bytes(self, count: int) -> bytes:
        """Return exactly ``count`` bytes or raise; never a short read."""

        if count < 0:
            raise ValueError("count must be non-negative")
        if count > self.remaining:
            raise BufferNotReadableError(self.name, self._pos, count, self.remaining)
        start = self._pos
        self._pos += count
        return self._data[start : self._pos].tobytes()

    def read_byte(self) -> int:
        return self.read_bytes(1)[0]

    def _unpack(self, fmt: str, size: int):
        return struct.unpack(fmt, self.read_bytes(size))[0]

    def read_int(self) -> int:
        size = self.platform.int_size
        return self._unpack(self.platform.int_format(size), size)

    def read_size_t(self) -> int:
        size = self.platform.size_t_size
        return self._unpack(self.platform.int_format(size, signed=False), size)

    def read_integer(self) -> int:
        size = self.platform.integer_size
        return self._unpack(self.platform.int_format(size), size)

    def read_number(self) -> float:
        size = self.platform.number_size
        return self._unpack(self.platform.float_format(size), size)

    def read_instruction(self) -> int:
        size = self.platform.instruction_size
        return self._unpack(self.platform.int_format(size, signed=False), size)

    def read_string(self) -> bytes:
        """Read a length-prefixed string.

        The stored length is the payload length plus one so that ``0`` can
        mean "no string"; both absent and empty strings come back as ``b""``.
        """

        size = self.read_byte()
        if size == LONG_STRING_MARKER:
            size = self.read_size_t()
        if size == 0:
            return b""
        return self.read_bytes(size - 1)

    def check_literal(self, expected: bytes, what: str) -> None:
        literal = self.read_bytes(len(expected))
        if literal != expected:
            raise InvalidVerificationError(
                what, f"literal mismatch: expected {expected!r}, got {literal!r}", name=self.name
            )

    def check_byte(self, expected: int, what: str) -> None:
        value = self.read_byte()
        if value != expected:
            raise InvalidVerificationError(
                what, f"{what} mismatch: expected 0x{expected:02x}, got 0x{value:02x}", name=self.name
            )

    def check_size(self, expected: int, what: str) -> None:
        size = self.read_byte()
        if size != expected:
            raise InvalidVerificationError(
                what, f"size mismatch: {what} is {size} byte(s), expected {expected}", name=self.name
            )
