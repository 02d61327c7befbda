"""Test configuration ensuring the project source tree is importable."""

from __future__ import annotations

import struct
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
TESTS = ROOT / "tests"

for path in (str(ROOT), str(TESTS)):
    if path not in sys.path:
        sys.path.insert(0, path)

from luaundump import LocVar, Proto, Upvalue, Value  # noqa: E402
from luaundump.vm.instruction import Instruction, encode, rk_as_constant  # noqa: E402
from luaundump.vm.opcodes import OpCode  # noqa: E402

# Header of a chunk built by a 64-bit little-endian luac 5.3.
HEADER = (
    b"\x1bLua"
    + b"\x53"
    + b"\x00"
    + b"\x19\x93\r\n\x1a\n"
    + b"\x04\x08\x04\x08\x08"
    + struct.pack("<q", 0x5678)
    + struct.pack("<d", 370.5)
)


def function_block(
    *,
    source: bytes = b"\x00",
    code: bytes = b"",
    code_count: int = 0,
    constants: bytes = b"",
    constant_count: int = 0,
    upvalues: bytes = b"",
    upvalue_count: int = 0,
    protos: bytes = b"",
    proto_count: int = 0,
    debug: bytes = b"",
) -> bytes:
    """Assemble a function block from raw sections; counts are little-endian ints."""

    return (
        source
        + struct.pack("<ii", 0, 0)
        + b"\x00\x01\x02"
        + struct.pack("<i", code_count)
        + code
        + struct.pack("<i", constant_count)
        + constants
        + struct.pack("<i", upvalue_count)
        + upvalues
        + struct.pack("<i", proto_count)
        + protos
        + (debug or struct.pack("<iii", 0, 0, 0))
    )


def make_chunk(block: bytes, *, upvalue_byte: int = 0) -> bytes:
    return HEADER + bytes([upvalue_byte]) + block


def _proto(source: str, instructions, constants, **kwargs) -> Proto:
    return Proto(
        source=source,
        code=[encode(inst) for inst in instructions],
        instructions=list(instructions),
        constants=list(constants),
        **kwargs,
    )


@pytest.fixture
def minimal_chunk() -> bytes:
    return make_chunk(function_block())


@pytest.fixture
def sample_proto() -> Proto:
    """Main function with two nested functions, each with its own sections."""

    add = _proto(
        "@sample.lua",
        [
            Instruction.abc(OpCode.ADD, 2, 0, 1),
            Instruction.abc(OpCode.RETURN, 2, 2, 0),
            Instruction.abc(OpCode.RETURN, 0, 1, 0),
        ],
        [],
        line_defined=2,
        last_line_defined=4,
        numparams=2,
        max_stack_size=3,
        lineinfo=[3, 3, 4],
        locvars=[LocVar(b"a", 0, 3), LocVar(b"b", 0, 3)],
    )
    scale = _proto(
        "@sample.lua",
        [
            Instruction.abc(OpCode.MUL, 1, 0, rk_as_constant(0)),
            Instruction.abc(OpCode.GETUPVAL, 2, 0, 0),
            Instruction.abc(OpCode.RETURN, 1, 2, 0),
        ],
        [Value.number(2.5)],
        line_defined=6,
        last_line_defined=8,
        numparams=1,
        max_stack_size=3,
        upvalues=[Upvalue(instack=True, idx=0, name=b"greeting")],
        lineinfo=[7, 7, 8],
        locvars=[LocVar(b"x", 0, 3)],
    )
    main = _proto(
        "@sample.lua",
        [
            Instruction.abx(OpCode.LOADK, 0, 0),
            Instruction.abx(OpCode.CLOSURE, 1, 0),
            Instruction.abx(OpCode.CLOSURE, 2, 1),
            Instruction.asbx(OpCode.JMP, 0, 1),
            Instruction.abc(OpCode.LOADNIL, 3, 0, 0),
            Instruction.abc(OpCode.RETURN, 0, 1, 0),
        ],
        [
            Value.string(b"hello"),
            Value.nil(),
            Value.boolean(True),
            Value.integer(42),
            Value.number(-0.5),
            Value.string(b"x" * 300, long=True),
        ],
        is_vararg=True,
        max_stack_size=4,
        upvalues=[Upvalue(instack=True, idx=0, name=b"_ENV")],
        protos=[add, scale],
        lineinfo=[1, 4, 8, 9, 9, 9],
        locvars=[LocVar(b"greeting", 1, 6), LocVar(b"add", 2, 6), LocVar(b"scale", 3, 6)],
    )
    return main
