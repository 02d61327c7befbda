from __future__ import annotations

import io
import logging
import struct
from pathlib import Path

import pytest

from conftest import HEADER, function_block, make_chunk
from luaundump import (
    BufferNotEmptyError,
    BufferNotReadableError,
    InvalidConstantTypeError,
    InvalidOpCodeError,
    InvalidSourceNameError,
    InvalidTypeError,
    InvalidUpvalueIndexError,
    InvalidVerificationError,
    LuaType,
    Platform,
    Value,
    dump,
    load,
    load_file,
)
from luaundump.config import MAX_NESTING
from luaundump.vm.instruction import Instruction, encode
from luaundump.vm.opcodes import OpCode


def test_minimal_chunk_loads(minimal_chunk: bytes) -> None:
    proto = load(minimal_chunk, "minimal")
    assert proto.source == ""
    assert proto.line_defined == 0 and proto.last_line_defined == 0
    assert proto.numparams == 0
    assert proto.is_vararg is True
    assert proto.max_stack_size == 2
    assert proto.code == [] and proto.instructions == []
    assert proto.constants == [] and proto.upvalues == [] and proto.protos == []
    assert proto.lineinfo == [] and proto.locvars == []


def test_trailing_byte_is_rejected(minimal_chunk: bytes) -> None:
    with pytest.raises(BufferNotEmptyError) as excinfo:
        load(minimal_chunk + b"\x00", "trailing")
    assert excinfo.value.remaining == 1


def test_flipped_endianness_sentinel() -> None:
    header = HEADER[:-16] + struct.pack(">q", 0x5678) + HEADER[-8:]
    with pytest.raises(InvalidVerificationError) as excinfo:
        load(header + b"\x00" + function_block())
    assert excinfo.value.field == "endianness"
    assert "endianness mismatch" in excinfo.value.detail


def test_garbled_integer_sentinel_is_not_reported_as_endianness() -> None:
    header = HEADER[:-16] + struct.pack("<q", 0x1234) + HEADER[-8:]
    with pytest.raises(InvalidVerificationError) as excinfo:
        load(header + b"\x00" + function_block())
    assert "integer format mismatch" in excinfo.value.detail


@pytest.mark.parametrize("cut", [8, 3, 1])
def test_truncated_before_float_sentinel(cut: int) -> None:
    with pytest.raises(BufferNotReadableError):
        load(HEADER[:-cut])


def test_float_sentinel_mismatch() -> None:
    header = HEADER[:-8] + struct.pack("<d", 370.25)
    with pytest.raises(InvalidVerificationError) as excinfo:
        load(header + b"\x00" + function_block())
    assert excinfo.value.field == "float format"


@pytest.mark.parametrize(
    "offset, value, field",
    [
        (1, 0x4D, "header"),
        (4, 0x52, "version"),
        (5, 0x01, "format"),
        (8, 0x00, "load order verification"),
        (12, 0x08, "int"),
        (13, 0x04, "size_t"),
        (14, 0x08, "Instruction"),
        (15, 0x04, "lua_Integer"),
        (16, 0x04, "lua_Number"),
    ],
)
def test_header_fields_are_verified(offset: int, value: int, field: str) -> None:
    chunk = bytearray(make_chunk(function_block()))
    chunk[offset] = value
    with pytest.raises(InvalidVerificationError) as excinfo:
        load(bytes(chunk), "broken")
    assert excinfo.value.field == field
    assert excinfo.value.name == "broken"


def test_constant_tags_select_float_and_integer() -> None:
    constants = (
        bytes([0x03]) + struct.pack("<d", 1.5)
        + bytes([0x13]) + struct.pack("<q", -7)
        + b"\x00"
        + b"\x01\x00"
        + b"\x04\x04abc"
        + b"\x14\x01"
    )
    proto = load(make_chunk(function_block(constants=constants, constant_count=6)))
    assert proto.constants == [
        Value.number(1.5),
        Value.integer(-7),
        Value.nil(),
        Value.boolean(False),
        Value.string(b"abc"),
        Value.string(b"", long=True),
    ]
    assert proto.constants[0].type is LuaType.NUMFLT
    assert isinstance(proto.constants[0].value, float)
    assert proto.constants[1].type is LuaType.NUMINT
    assert isinstance(proto.constants[1].value, int)


def test_non_constant_type_tag_is_rejected() -> None:
    block = function_block(constants=bytes([LuaType.TABLE]), constant_count=1)
    with pytest.raises(InvalidConstantTypeError) as excinfo:
        load(make_chunk(block))
    assert excinfo.value.tag is LuaType.TABLE


def test_unknown_type_tag_is_rejected() -> None:
    block = function_block(constants=b"\x42", constant_count=1)
    with pytest.raises(InvalidTypeError) as excinfo:
        load(make_chunk(block))
    assert excinfo.value.value == 0x42


def test_upvalue_names_attach_by_index() -> None:
    debug = struct.pack("<ii", 0, 0) + struct.pack("<i", 2) + b"\x05_ENV" + b"\x02x"
    block = function_block(upvalues=b"\x01\x00\x00\x03", upvalue_count=2, debug=debug)
    proto = load(make_chunk(block))
    assert [(u.name, u.instack, u.idx) for u in proto.upvalues] == [
        (b"_ENV", True, 0),
        (b"x", False, 3),
    ]


def test_upvalue_name_without_upvalue_is_rejected() -> None:
    debug = struct.pack("<iii", 0, 0, 1) + b"\x05_ENV"
    with pytest.raises(InvalidUpvalueIndexError) as excinfo:
        load(make_chunk(function_block(debug=debug)))
    assert excinfo.value.index == 0
    assert excinfo.value.count == 0


def test_source_name_must_be_utf8() -> None:
    with pytest.raises(InvalidSourceNameError):
        load(make_chunk(function_block(source=b"\x03\xff\xfe")))


def test_debug_sections_are_consumed() -> None:
    debug = (
        struct.pack("<i", 2) + struct.pack("<ii", 10, 11)
        + struct.pack("<i", 1) + b"\x02i" + struct.pack("<ii", 0, 2)
        + struct.pack("<i", 0)
    )
    code = struct.pack("<II", encode(Instruction.abc(OpCode.LOADNIL, 0, 0, 0)), encode(Instruction.abc(OpCode.RETURN, 0, 1, 0)))
    proto = load(make_chunk(function_block(source=b"\x07@x.lua", code=code, code_count=2, debug=debug)))
    assert proto.source == "@x.lua"
    assert proto.lineinfo == [10, 11]
    assert [(v.varname, v.startpc, v.endpc) for v in proto.locvars] == [(b"i", 0, 2)]
    assert [inst.opcode for inst in proto.instructions] == [OpCode.LOADNIL, OpCode.RETURN]


def test_nested_protos_are_loaded_recursively(sample_proto) -> None:
    proto = load(dump(sample_proto), "sample")
    assert len(proto.protos) == 2
    add, scale = proto.protos
    assert add.numparams == 2 and scale.numparams == 1
    assert [inst.opcode for inst in add.instructions] == [OpCode.ADD, OpCode.RETURN, OpCode.RETURN]
    assert add.constants == []
    assert scale.constants == [Value.number(2.5)]
    assert scale.upvalues[0].name == b"greeting"
    assert add.locvars[1].varname == b"b"
    assert add.source == scale.source == "@sample.lua"


def test_child_inherits_parent_source_when_absent() -> None:
    child = function_block()
    root = function_block(source=b"\x07@m.lua", protos=child + child, proto_count=2)
    proto = load(make_chunk(root))
    assert [p.source for p in proto.protos] == ["@m.lua", "@m.lua"]


def test_truncated_nested_function_fails() -> None:
    root = function_block(protos=function_block()[:-4], proto_count=1)
    with pytest.raises(BufferNotReadableError):
        load(make_chunk(root))


def test_too_few_nested_functions_desynchronise_the_cursor() -> None:
    root = function_block(protos=function_block(), proto_count=2)
    with pytest.raises(BufferNotReadableError):
        load(make_chunk(root))


def test_negative_count_is_rejected() -> None:
    block = function_block(code_count=-1)
    with pytest.raises(InvalidVerificationError) as excinfo:
        load(make_chunk(block))
    assert excinfo.value.field == "code size"


def test_invalid_opcode_fails_load_unless_decoding_is_disabled() -> None:
    code = struct.pack("<I", 0x3F)
    chunk = make_chunk(function_block(code=code, code_count=1))
    with pytest.raises(InvalidOpCodeError) as excinfo:
        load(chunk)
    assert excinfo.value.pc == 0
    proto = load(chunk, decode_instructions=False)
    assert proto.code == [0x3F]
    assert proto.instructions is None


def test_big_endian_chunks_need_a_big_endian_platform(sample_proto) -> None:
    platform = Platform(byteorder="big")
    chunk = dump(sample_proto, platform=platform)
    assert load(chunk, platform=platform) == sample_proto
    with pytest.raises(InvalidVerificationError) as excinfo:
        load(chunk)
    assert excinfo.value.field == "endianness"


def test_load_accepts_file_objects_and_paths(tmp_path: Path, minimal_chunk: bytes) -> None:
    assert load(io.BytesIO(minimal_chunk)).max_stack_size == 2
    path = tmp_path / "luac.out"
    path.write_bytes(minimal_chunk)
    assert load_file(path).max_stack_size == 2
    with pytest.raises(BufferNotEmptyError) as excinfo:
        path.write_bytes(minimal_chunk + b"\x00")
        load_file(path)
    assert excinfo.value.name == str(path)


def test_load_logs_progress_at_debug_level(caplog, sample_proto) -> None:
    with caplog.at_level(logging.DEBUG, logger="luaundump"):
        load(dump(sample_proto), "logged")
    messages = [record.getMessage() for record in caplog.records]
    assert any("header accepted" in message for message in messages)
    assert any("loaded 3 function(s)" in message for message in messages)


def _nested_chunk(levels: int) -> bytes:
    block = function_block()
    for _ in range(levels):
        block = function_block(protos=block, proto_count=1)
    return make_chunk(block)


def test_nesting_up_to_the_limit_loads() -> None:
    proto = load(_nested_chunk(MAX_NESTING))
    assert sum(1 for _ in proto.walk()) == MAX_NESTING + 1


def test_excessive_nesting_is_rejected() -> None:
    with pytest.raises(InvalidVerificationError) as excinfo:
        load(_nested_chunk(1000), "deep")
    assert excinfo.value.field == "function nesting"
    assert f"nesting deeper than {MAX_NESTING}" in str(excinfo.value)
    with pytest.raises(InvalidVerificationError):
        load(_nested_chunk(MAX_NESTING + 1))
