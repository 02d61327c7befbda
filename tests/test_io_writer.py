from __future__ import annotations

import struct

import pytest

from conftest import HEADER
from luaundump import Proto, Upvalue, Value, dump, load
from luaundump.io.writer import ChunkWriter
from luaundump.objects import LuaType


def test_dump_then_load_reproduces_the_tree(sample_proto: Proto) -> None:
    chunk = dump(sample_proto)
    assert chunk.startswith(HEADER)
    assert chunk[len(HEADER)] == 1  # main closure upvalue count
    assert load(chunk, "sample") == sample_proto


def test_dump_is_stable_across_a_reload(sample_proto: Proto) -> None:
    chunk = dump(sample_proto)
    assert dump(load(chunk)) == chunk


def test_nested_sources_equal_to_parent_are_written_absent(sample_proto: Proto) -> None:
    child = sample_proto.protos[0]
    chunk = dump(Proto(source="@sample.lua", protos=[child]))
    assert chunk.count(b"@sample.lua") == 1


def test_strip_removes_debug_information(sample_proto: Proto) -> None:
    stripped = load(dump(sample_proto, strip=True))
    for proto in stripped.walk():
        assert proto.source == ""
        assert proto.lineinfo == []
        assert proto.locvars == []
        assert all(upvalue.name == b"" for upvalue in proto.upvalues)
    assert stripped.protos[1].constants == [Value.number(2.5)]
    assert len(dump(sample_proto, strip=True)) < len(dump(sample_proto))


def test_long_strings_use_the_size_t_marker() -> None:
    writer = ChunkWriter()
    writer.write_string(b"y" * 254)
    assert writer.buf[0] == 0xFF
    assert struct.unpack("<Q", bytes(writer.buf[1:9]))[0] == 255
    short = ChunkWriter()
    short.write_string(b"y" * 253)
    assert short.buf[0] == 254
    absent = ChunkWriter()
    absent.write_string(None)
    assert bytes(absent.buf) == b"\x00"


def test_raw_code_is_written_when_instructions_are_absent() -> None:
    proto = Proto(code=[0x3F])
    chunk = dump(proto)
    assert load(chunk, decode_instructions=False).code == [0x3F]


def test_explicit_upvalue_count_byte() -> None:
    proto = Proto(upvalues=[Upvalue(True, 0, b"_ENV")])
    assert dump(proto, upvalue_count=0)[len(HEADER)] == 0


def test_writer_rejects_unrepresentable_values() -> None:
    writer = ChunkWriter()
    with pytest.raises(ValueError):
        writer.write_u8(256)
    with pytest.raises(ValueError):
        writer.write_int(1 << 40)
    with pytest.raises(ValueError):
        writer.write_constant(Value(LuaType.TABLE, {}))


def test_empty_upvalue_names_are_written_absent() -> None:
    proto = Proto(upvalues=[Upvalue(True, 0), Upvalue(False, 1)])
    chunk = dump(proto)
    # line info, local variables, then one absent name per upvalue
    assert chunk.endswith(struct.pack("<iii", 0, 0, 2) + b"\x00\x00")
    assert dump(proto, strip=True).endswith(struct.pack("<iii", 0, 0, 0))
    assert load(chunk).upvalues == proto.upvalues
