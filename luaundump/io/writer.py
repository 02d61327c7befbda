"""Serialise :class:`~luaundump.objects.Proto` trees back into binary chunks.

The writer emits fields in exactly the order :mod:`luaundump.io.loader`
consumes them, so ``load(dump(proto))`` reproduces every field a chunk can
carry.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Optional

from ..config import (
    DEFAULT_PLATFORM,
    LUA_SIGNATURE,
    LUAC_DATA,
    LUAC_FORMAT,
    LUAC_INT,
    LUAC_NUM,
    LUAC_VERSION,
    Platform,
)
from ..objects import LuaType, Proto, Value
from ..vm.instruction import encode
from .reader import LONG_STRING_MARKER

__all__ = ["ChunkWriter", "dump"]


@dataclass
class ChunkWriter:
    """Append chunk primitives to a byte buffer using ``platform`` widths."""

    platform: Platform = DEFAULT_PLATFORM
    buf: bytearray = field(default_factory=bytearray)

    def write_u8(self, value: int) -> None:
        if value < 0 or value > 0xFF:
            raise ValueError("write_u8 expects an unsigned byte")
        self.buf.append(value)

    def write_bytes(self, data: bytes) -> None:
        self.buf.extend(data)

    def _pack(self, fmt: str, value) -> None:
        try:
            self.buf.extend(struct.pack(fmt, value))
        except struct.error as exc:
            raise ValueError(f"cannot pack {value!r} as {fmt!r}: {exc}") from exc

    def write_int(self, value: int) -> None:
        self._pack(self.platform.int_format(self.platform.int_size), value)

    def write_size_t(self, value: int) -> None:
        self._pack(self.platform.int_format(self.platform.size_t_size, signed=False), value)

    def write_integer(self, value: int) -> None:
        self._pack(self.platform.int_format(self.platform.integer_size), value)

    def write_number(self, value: float) -> None:
        self._pack(self.platform.float_format(self.platform.number_size), value)

    def write_instruction(self, word: int) -> None:
        self._pack(self.platform.int_format(self.platform.instruction_size, signed=False), word)

    def write_string(self, data: Optional[bytes]) -> None:
        """Write ``data`` length-prefixed; ``None`` writes the absent marker."""

        if data is None:
            self.write_u8(0)
            return
        size = len(data) + 1
        if size < LONG_STRING_MARKER:
            self.write_u8(size)
        else:
            self.write_u8(LONG_STRING_MARKER)
            self.write_size_t(size)
        self.write_bytes(data)

    def write_header(self) -> None:
        self.write_bytes(LUA_SIGNATURE)
        self.write_u8(LUAC_VERSION)
        self.write_u8(LUAC_FORMAT)
        self.write_bytes(LUAC_DATA)
        self.write_u8(self.platform.int_size)
        self.write_u8(self.platform.size_t_size)
        self.write_u8(self.platform.instruction_size)
        self.write_u8(self.platform.integer_size)
        self.write_u8(self.platform.number_size)
        self.write_integer(LUAC_INT)
        self.write_number(LUAC_NUM)

    def write_constant(self, constant: Value) -> None:
        self.write_u8(int(constant.type))
        if constant.type is LuaType.NIL:
            return
        if constant.type is LuaType.BOOLEAN:
            self.write_u8(1 if constant.value else 0)
        elif constant.type is LuaType.NUMFLT:
            self.write_number(constant.value)
        elif constant.type is LuaType.NUMINT:
            self.write_integer(constant.value)
        elif constant.is_string:
            self.write_string(constant.value)
        else:
            raise ValueError(f"{constant.type.name} values cannot be stored as constants")

    def write_function(self, proto: Proto, parent_source: Optional[str], *, strip: bool) -> None:
        if strip or not proto.source or proto.source == parent_source:
            self.write_string(None)
        else:
            self.write_string(proto.source.encode("utf-8"))
        self.write_int(proto.line_defined)
        self.write_int(proto.last_line_defined)
        self.write_u8(proto.numparams)
        self.write_u8(1 if proto.is_vararg else 0)
        self.write_u8(proto.max_stack_size)

        if proto.instructions is not None:
            words = [encode(inst) for inst in proto.instructions]
        else:
            words = list(proto.code)
        self.write_int(len(words))
        for word in words:
            self.write_instruction(word)

        self.write_int(len(proto.constants))
        for constant in proto.constants:
            self.write_constant(constant)

        self.write_int(len(proto.upvalues))
        for upvalue in proto.upvalues:
            self.write_u8(1 if upvalue.instack else 0)
            self.write_u8(upvalue.idx)

        self.write_int(len(proto.protos))
        for child in proto.protos:
            self.write_function(child, proto.source, strip=strip)

        self._write_debug(proto, strip=strip)

    def _write_debug(self, proto: Proto, *, strip: bool) -> None:
        lineinfo = [] if strip else proto.lineinfo
        self.write_int(len(lineinfo))
        for line in lineinfo:
            self.write_int(line)

        locvars = [] if strip else proto.locvars
        self.write_int(len(locvars))
        for local in locvars:
            self.write_string(local.varname)
            self.write_int(local.startpc)
            self.write_int(local.endpc)

        names = [] if strip else [upvalue.name or None for upvalue in proto.upvalues]
        self.write_int(len(names))
        for name in names:
            self.write_string(name)


def dump(
    proto: Proto,
    *,
    platform: Optional[Platform] = None,
    strip: bool = False,
    upvalue_count: Optional[int] = None,
) -> bytes:
    """Return the binary chunk for ``proto`` and its nested functions."""

    writer = ChunkWriter(platform=platform or DEFAULT_PLATFORM)
    writer.write_header()
    writer.write_u8(len(proto.upvalues) if upvalue_count is None else upvalue_count)
    writer.write_function(proto, None, strip=strip)
    return bytes(writer.buf)
