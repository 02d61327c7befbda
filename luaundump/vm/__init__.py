"""Opcode table and instruction codec for the Lua 5.3 virtual machine."""

from __future__ import annotations

from .instruction import Instruction, decode, decode_all, encode
from .opcodes import OPCODE_TABLE, OpCode, OperandKind, OperandLayout, opcode_from_code

__all__ = [
    "Instruction",
    "OPCODE_TABLE",
    "OpCode",
    "OperandKind",
    "OperandLayout",
    "decode",
    "decode_all",
    "encode",
    "opcode_from_code",
]
