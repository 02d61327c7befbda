"""Opcode table for the Lua 5.3 virtual machine.

Each row of :data:`OPCODE_TABLE` names an operation, its operand layout and the
meaning of each operand it uses.  ``AB`` and ``A`` shaped operations travel in
the ``ABC`` wire layout; the fields they leave unused carry no operand kind.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Tuple

from ..exceptions import InvalidOpCodeError

__all__ = [
    "NUM_OPCODES",
    "OPCODE_TABLE",
    "OpCode",
    "OpSpec",
    "OperandKind",
    "OperandLayout",
    "layout_of",
    "opcode_from_code",
    "opcode_from_name",
    "operand_kinds",
    "spec_of",
]


class OperandLayout(enum.Enum):
    ABC = "iABC"
    ABx = "iABx"
    AsBx = "iAsBx"
    Ax = "iAx"


class OperandKind(enum.Enum):
    """Semantic type of an operand field."""

    REGISTER = "Register"
    CONSTANT = "Constant"
    REGISTER_CONSTANT = "RegisterConstant"
    INTEGER = "Integer"
    SINTEGER = "SInteger"
    BOOL = "Bool"
    UPVALUE = "UpValue"


class OpCode(enum.IntEnum):
    MOVE = 0
    LOADK = 1
    LOADKX = 2
    LOADBOOL = 3
    LOADNIL = 4
    GETUPVAL = 5
    GETTABUP = 6
    GETTABLE = 7
    SETTABUP = 8
    SETUPVAL = 9
    SETTABLE = 10
    NEWTABLE = 11
    SELF = 12
    ADD = 13
    SUB = 14
    MUL = 15
    MOD = 16
    POW = 17
    DIV = 18
    IDIV = 19
    BAND = 20
    BOR = 21
    BXOR = 22
    SHL = 23
    SHR = 24
    UNM = 25
    BNOT = 26
    NOT = 27
    LEN = 28
    CONCAT = 29
    JMP = 30
    EQ = 31
    LT = 32
    LE = 33
    TEST = 34
    TESTSET = 35
    CALL = 36
    TAILCALL = 37
    RETURN = 38
    FORLOOP = 39
    FORPREP = 40
    TFORCALL = 41
    TFORLOOP = 42
    SETLIST = 43
    CLOSURE = 44
    VARARG = 45
    EXTRAARG = 46


@dataclass(frozen=True)
class OpSpec:
    """Static description of a single opcode.

    ``operands`` maps the layout's field names (``a``, ``b``, ``c``, ``bx``,
    ``sbx``, ``ax``) to their :class:`OperandKind`, in listing order.
    """

    opcode: OpCode
    layout: OperandLayout
    operands: Tuple[Tuple[str, OperandKind], ...]

    @property
    def name(self) -> str:
        return self.opcode.name


_R = OperandKind.REGISTER
_K = OperandKind.CONSTANT
_RK = OperandKind.REGISTER_CONSTANT
_I = OperandKind.INTEGER
_S = OperandKind.SINTEGER
_B = OperandKind.BOOL
_U = OperandKind.UPVALUE

_ABC = OperandLayout.ABC
_ABX = OperandLayout.ABx
_ASBX = OperandLayout.AsBx
_AX = OperandLayout.Ax

# name, layout, operand kinds (a, b, c) / (a, bx) / (a, sbx) / (ax)
_DECLARATIONS = (
    ("MOVE", _ABC, (_R, _R)),            # R(A) := R(B)
    ("LOADK", _ABX, (_R, _K)),           # R(A) := Kst(Bx)
    ("LOADKX", _ABX, (_R,)),             # R(A) := Kst(extra arg)
    ("LOADBOOL", _ABC, (_R, _B, _I)),    # R(A) := (Bool)B; if (C) pc++
    ("LOADNIL", _ABC, (_R, _I)),         # R(A), ..., R(A+B) := nil
    ("GETUPVAL", _ABC, (_R, _U)),        # R(A) := UpValue[B]
    ("GETTABUP", _ABC, (_R, _U, _RK)),   # R(A) := UpValue[B][RK(C)]
    ("GETTABLE", _ABC, (_R, _R, _RK)),   # R(A) := R(B)[RK(C)]
    ("SETTABUP", _ABC, (_U, _RK, _RK)),  # UpValue[A][RK(B)] := RK(C)
    ("SETUPVAL", _ABC, (_R, _U)),        # UpValue[B] := R(A)
    ("SETTABLE", _ABC, (_R, _RK, _RK)),  # R(A)[RK(B)] := RK(C)
    ("NEWTABLE", _ABC, (_R, _I, _I)),    # R(A) := {} (size = B,C)
    ("SELF", _ABC, (_R, _R, _RK)),       # R(A+1) := R(B); R(A) := R(B)[RK(C)]
    ("ADD", _ABC, (_R, _RK, _RK)),
    ("SUB", _ABC, (_R, _RK, _RK)),
    ("MUL", _ABC, (_R, _RK, _RK)),
    ("MOD", _ABC, (_R, _RK, _RK)),
    ("POW", _ABC, (_R, _RK, _RK)),
    ("DIV", _ABC, (_R, _RK, _RK)),
    ("IDIV", _ABC, (_R, _RK, _RK)),
    ("BAND", _ABC, (_R, _RK, _RK)),
    ("BOR", _ABC, (_R, _RK, _RK)),
    ("BXOR", _ABC, (_R, _RK, _RK)),
    ("SHL", _ABC, (_R, _RK, _RK)),
    ("SHR", _ABC, (_R, _RK, _RK)),
    ("UNM", _ABC, (_R, _R)),             # R(A) := -R(B)
    ("BNOT", _ABC, (_R, _R)),            # R(A) := ~R(B)
    ("NOT", _ABC, (_R, _R)),             # R(A) := not R(B)
    ("LEN", _ABC, (_R, _R)),             # R(A) := length of R(B)
    ("CONCAT", _ABC, (_R, _R, _R)),      # R(A) := R(B).. ... ..R(C)
    ("JMP", _ASBX, (_I, _S)),            # pc+=sBx; if (A) close upvalues >= R(A - 1)
    ("EQ", _ABC, (_I, _RK, _RK)),        # if ((RK(B) == RK(C)) ~= A) then pc++
    ("LT", _ABC, (_I, _RK, _RK)),
    ("LE", _ABC, (_I, _RK, _RK)),
    ("TEST", _ABC, (_R, None, _I)),      # if not (R(A) <=> C) then pc++
    ("TESTSET", _ABC, (_R, _R, _I)),     # if (R(B) <=> C) then R(A) := R(B) else pc++
    ("CALL", _ABC, (_R, _I, _I)),
    ("TAILCALL", _ABC, (_R, _I, _I)),
    ("RETURN", _ABC, (_R, _I)),          # return R(A), ... ,R(A+B-2)
    ("FORLOOP", _ASBX, (_R, _S)),
    ("FORPREP", _ASBX, (_R, _S)),
    ("TFORCALL", _ABC, (_R, None, _I)),  # R(A+3), ... ,R(A+2+C) := R(A)(R(A+1), R(A+2))
    ("TFORLOOP", _ASBX, (_R, _S)),       # if R(A+1) ~= nil then { R(A)=R(A+1); pc += sBx }
    ("SETLIST", _ABC, (_R, _I, _I)),     # R(A)[(C-1)*FPF+i] := R(A+i), 1 <= i <= B
    ("CLOSURE", _ABX, (_R, _I)),         # R(A) := closure(KPROTO[Bx])
    ("VARARG", _ABC, (_R, _I)),          # R(A), R(A+1), ..., R(A+B-2) = vararg
    ("EXTRAARG", _AX, (_I,)),            # extra (larger) argument for previous opcode
)

_FIELD_NAMES: Dict[OperandLayout, Tuple[str, ...]] = {
    OperandLayout.ABC: ("a", "b", "c"),
    OperandLayout.ABx: ("a", "bx"),
    OperandLayout.AsBx: ("a", "sbx"),
    OperandLayout.Ax: ("ax",),
}


def _build_table() -> Tuple[OpSpec, ...]:
    table = []
    for code, (name, layout, kinds) in enumerate(_DECLARATIONS):
        opcode = OpCode[name]
        if opcode.value != code:
            raise RuntimeError(f"opcode table out of order at {name}")
        operands = tuple(
            (field_name, kind)
            for field_name, kind in zip(_FIELD_NAMES[layout], kinds)
            if kind is not None
        )
        table.append(OpSpec(opcode=opcode, layout=layout, operands=operands))
    return tuple(table)


OPCODE_TABLE: Tuple[OpSpec, ...] = _build_table()
NUM_OPCODES = len(OPCODE_TABLE)


def opcode_from_code(code: int) -> OpCode:
    """Return the :class:`OpCode` for numeric ``code`` or raise."""

    if not 0 <= code < NUM_OPCODES:
        raise InvalidOpCodeError(code)
    return OPCODE_TABLE[code].opcode


def spec_of(opcode: OpCode) -> OpSpec:
    return OPCODE_TABLE[int(opcode)]


def layout_of(opcode: OpCode) -> OperandLayout:
    return OPCODE_TABLE[int(opcode)].layout


def operand_kinds(opcode: OpCode) -> Tuple[Tuple[str, OperandKind], ...]:
    return OPCODE_TABLE[int(opcode)].operands


def opcode_from_name(name: str) -> OpCode:
    """Look up an opcode by mnemonic, ignoring case and an ``OP_`` prefix."""

    cleaned = name.strip().upper()
    if cleaned.startswith("OP_"):
        cleaned = cleaned[3:]
    try:
        return OpCode[cleaned]
    except KeyError as exc:
        raise KeyError(f"Unknown opcode mnemonic: {name!r}") from exc
