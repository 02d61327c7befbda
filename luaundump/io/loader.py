"""Load precompiled Lua 5.3 chunks into :class:`~luaundump.objects.Proto` trees.

A chunk is a fixed header followed by one function block.  The header is
checked field by field before any payload is interpreted: magic, version,
format, the conversion-check literal, the widths of the producing platform's
types, and finally a sample integer and float that expose byte-order and
floating-point representation mismatches.  Function blocks nest: every
function carries its own children, which are loaded recursively in place.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

from ..config import (
    DEFAULT_PLATFORM,
    LUA_SIGNATURE,
    LUAC_DATA,
    LUAC_FORMAT,
    LUAC_INT,
    LUAC_NUM,
    LUAC_VERSION,
    MAX_NESTING,
    Platform,
)
from ..exceptions import (
    BufferNotEmptyError,
    InvalidConstantTypeError,
    InvalidSourceNameError,
    InvalidUpvalueIndexError,
    InvalidVerificationError,
)
from ..objects import LocVar, LuaType, Proto, Upvalue, Value
from ..vm.instruction import decode_all
from .reader import BinaryReader

LOGGER = logging.getLogger(__name__)

__all__ = ["LoadState", "check_header", "load", "load_file"]

ByteSource = Union[bytes, bytearray, memoryview, BinaryIO]


@dataclass
class LoadState:
    """Everything a single :func:`load` call needs; discarded afterwards."""

    reader: BinaryReader
    decode_instructions: bool = True
    functions: int = 0
    depth: int = 0

    @property
    def name(self) -> str:
        return self.reader.name


def check_header(reader: BinaryReader) -> None:
    """Verify the chunk header against ``reader.platform``."""

    platform = reader.platform
    reader.check_literal(LUA_SIGNATURE, "header")
    reader.check_byte(LUAC_VERSION, "version")
    reader.check_byte(LUAC_FORMAT, "format")
    reader.check_literal(LUAC_DATA, "load order verification")
    reader.check_size(platform.int_size, "int")
    reader.check_size(platform.size_t_size, "size_t")
    reader.check_size(platform.instruction_size, "Instruction")
    reader.check_size(platform.integer_size, "lua_Integer")
    reader.check_size(platform.number_size, "lua_Number")

    raw = reader.read_bytes(platform.integer_size)
    value = struct.unpack(platform.int_format(platform.integer_size), raw)[0]
    if value != LUAC_INT:
        swapped = int.from_bytes(raw[::-1], platform.byteorder, signed=True)
        if swapped == LUAC_INT:
            detail = f"endianness mismatch: chunk is not {platform.byteorder}-endian"
        else:
            detail = f"integer format mismatch: expected 0x{LUAC_INT:x}, got 0x{value & 0xFFFFFFFFFFFFFFFF:x}"
        raise InvalidVerificationError("endianness", detail, name=reader.name)

    number = reader.read_number()
    if number != LUAC_NUM:
        raise InvalidVerificationError(
            "float format", f"float format mismatch: expected {LUAC_NUM!r}, got {number!r}", name=reader.name
        )
    LOGGER.debug("%s: header accepted (%s)", reader.name, platform)


def _read_count(state: LoadState, what: str) -> int:
    position = state.reader.position
    count = state.reader.read_int()
    if count < 0:
        raise InvalidVerificationError(
            what, f"negative count {count} at offset {position}", name=state.name
        )
    return count


def _read_vector(state: LoadState, count: int, size: int, fmt_code: str) -> List[int]:
    if not count:
        return []
    data = state.reader.read_bytes(count * size)
    return list(struct.unpack(f"{state.reader.platform.prefix}{count}{fmt_code}", data))


def _load_source(state: LoadState, parent_source: str) -> str:
    raw = state.reader.read_string()
    if not raw:
        return parent_source
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidSourceNameError(raw) from None


def _load_code(state: LoadState, proto: Proto) -> None:
    platform = state.reader.platform
    count = _read_count(state, "code size")
    code_fmt = platform.int_format(platform.instruction_size, signed=False)[1:]
    proto.code = _read_vector(state, count, platform.instruction_size, code_fmt)
    if state.decode_instructions:
        proto.instructions = decode_all(proto.code)


def _load_constant(reader: BinaryReader) -> Value:
    tag = LuaType.from_byte(reader.read_byte())
    if tag is LuaType.NIL:
        return Value.nil()
    if tag is LuaType.BOOLEAN:
        return Value.boolean(reader.read_byte() != 0)
    if tag is LuaType.NUMFLT:
        return Value.number(reader.read_number())
    if tag is LuaType.NUMINT:
        return Value.integer(reader.read_integer())
    if tag is LuaType.SHRSTR or tag is LuaType.LNGSTR:
        return Value.string(reader.read_string(), long=tag is LuaType.LNGSTR)
    raise InvalidConstantTypeError(tag)


def _load_constants(state: LoadState, proto: Proto) -> None:
    count = _read_count(state, "constant count")
    proto.constants = [_load_constant(state.reader) for _ in range(count)]


def _load_upvalues(state: LoadState, proto: Proto) -> None:
    count = _read_count(state, "upvalue count")
    upvalues = []
    for _ in range(count):
        instack = state.reader.read_byte()
        idx = state.reader.read_byte()
        upvalues.append(Upvalue(instack=bool(instack), idx=idx))
    proto.upvalues = upvalues


def _load_protos(state: LoadState, proto: Proto) -> None:
    count = _read_count(state, "function count")
    if count and state.depth >= MAX_NESTING:
        raise InvalidVerificationError(
            "function nesting",
            f"nesting deeper than {MAX_NESTING} at offset {state.reader.position}",
            name=state.name,
        )
    state.depth += 1
    try:
        proto.protos = [_load_function(state, proto.source) for _ in range(count)]
    finally:
        state.depth -= 1


def _load_debug(state: LoadState, proto: Proto) -> None:
    reader = state.reader
    count = _read_count(state, "line info size")
    int_fmt = reader.platform.int_format(reader.platform.int_size)[1:]
    proto.lineinfo = _read_vector(state, count, reader.platform.int_size, int_fmt)

    count = _read_count(state, "local variable count")
    locvars = []
    for _ in range(count):
        varname = reader.read_string()
        startpc = reader.read_int()
        endpc = reader.read_int()
        locvars.append(LocVar(varname=varname, startpc=startpc, endpc=endpc))
    proto.locvars = locvars

    count = _read_count(state, "upvalue name count")
    for index in range(count):
        name = reader.read_string()
        if index >= len(proto.upvalues):
            raise InvalidUpvalueIndexError(index, len(proto.upvalues))
        proto.upvalues[index].name = name


def _load_function(state: LoadState, parent_source: str) -> Proto:
    reader = state.reader
    start = reader.position
    proto = Proto()
    proto.source = _load_source(state, parent_source)
    proto.line_defined = reader.read_int()
    proto.last_line_defined = reader.read_int()
    proto.numparams = reader.read_byte()
    proto.is_vararg = reader.read_byte() != 0
    proto.max_stack_size = reader.read_byte()
    _load_code(state, proto)
    _load_constants(state, proto)
    _load_upvalues(state, proto)
    _load_protos(state, proto)
    _load_debug(state, proto)
    state.functions += 1
    LOGGER.debug(
        "%s: function <%s:%d,%d> at offset %d: %d instruction(s), %d constant(s), "
        "%d upvalue(s), %d function(s)",
        state.name,
        proto.source,
        proto.line_defined,
        proto.last_line_defined,
        start,
        len(proto.code),
        len(proto.constants),
        len(proto.upvalues),
        len(proto.protos),
    )
    return proto


def load(
    source: ByteSource,
    name: str = "?",
    *,
    platform: Optional[Platform] = None,
    decode_instructions: bool = True,
) -> Proto:
    """Load a binary chunk and return its main function.

    ``source`` may be a bytes-like object or a binary file object; it is read
    fully before parsing.  ``name`` is used in diagnostics only.  Any defect
    raises a :class:`~luaundump.exceptions.UndumpError` subclass and no
    partial result is returned.
    """

    if hasattr(source, "read"):
        data = source.read()  # type: ignore[union-attr]
    else:
        data = source
    reader = BinaryReader(bytes(data), name=name, platform=platform or DEFAULT_PLATFORM)
    state = LoadState(reader=reader, decode_instructions=decode_instructions)

    check_header(reader)
    upvalue_count = reader.read_byte()
    main = _load_function(state, "")
    if not reader.finished():
        raise BufferNotEmptyError(name, reader.remaining)
    LOGGER.debug(
        "%s: loaded %d function(s), main closure has %d upvalue(s)",
        name,
        state.functions,
        upvalue_count,
    )
    return main


def load_file(path: Union[str, Path], **kwargs) -> Proto:
    """Load the chunk stored at ``path``; the path doubles as its name."""

    target = Path(path)
    with target.open("rb") as fh:
        return load(fh, kwargs.pop("name", str(target)), **kwargs)
