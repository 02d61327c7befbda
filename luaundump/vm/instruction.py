"""Bit-level codec for 32-bit Lua 5.3 instruction words.

Word layout, lowest bits on the right::

    |  B (9)  |  C (9)  | A (8) | OP (6) |   iABC
    |      Bx (18)      | A (8) | OP (6) |   iABx
    |     sBx (18)      | A (8) | OP (6) |   iAsBx
    |          Ax (26)          | OP (6) |   iAx

``sBx`` is stored in excess-K form: the unsigned 18-bit field minus
:data:`MAXARG_sBx`.  Register-or-constant operands (``RK``) use the top bit of
a 9-bit field to select the constant pool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ..exceptions import InvalidOpCodeError
from .opcodes import OpCode, OperandKind, OperandLayout, layout_of, opcode_from_code, operand_kinds

__all__ = [
    "FieldConfig",
    "Instruction",
    "MAXARG_A",
    "MAXARG_Ax",
    "MAXARG_B",
    "MAXARG_Bx",
    "MAXARG_C",
    "MAXARG_sBx",
    "BITRK",
    "decode",
    "decode_all",
    "encode",
    "is_constant",
    "rk_as_constant",
    "rk_index",
]

Word = int

SIZE_C = 9
SIZE_B = 9
SIZE_Bx = SIZE_C + SIZE_B
SIZE_A = 8
SIZE_Ax = SIZE_C + SIZE_B + SIZE_A
SIZE_OP = 6

POS_OP = 0
POS_A = POS_OP + SIZE_OP
POS_C = POS_A + SIZE_A
POS_B = POS_C + SIZE_C
POS_Bx = POS_C
POS_Ax = POS_A

WORD_BITS = SIZE_OP + SIZE_Ax
WORD_MASK = (1 << WORD_BITS) - 1

MAXARG_A = (1 << SIZE_A) - 1
MAXARG_B = (1 << SIZE_B) - 1
MAXARG_C = (1 << SIZE_C) - 1
MAXARG_Bx = (1 << SIZE_Bx) - 1
MAXARG_Ax = (1 << SIZE_Ax) - 1
MAXARG_sBx = MAXARG_Bx >> 1

BITRK = 1 << (SIZE_B - 1)
MAXINDEXRK = BITRK - 1


@dataclass(frozen=True)
class FieldConfig:
    """Describe how a single operand field is encoded within a word."""

    mask: int
    shift: int

    @classmethod
    def from_width(cls, width: int, shift: int) -> "FieldConfig":
        return cls(mask=((1 << width) - 1) << shift, shift=shift)

    def extract(self, word: Word) -> int:
        return (word & self.mask) >> self.shift

    def insert(self, word: Word, value: int) -> Word:
        if value < 0 or value > self.limit:
            raise ValueError(f"operand {value} does not fit in {self.width} bit(s)")
        return (word & ~self.mask) | (value << self.shift)

    @property
    def limit(self) -> int:
        return self.mask >> self.shift

    @property
    def width(self) -> int:
        return self.limit.bit_length()


FIELD_OP = FieldConfig.from_width(SIZE_OP, POS_OP)
FIELD_A = FieldConfig.from_width(SIZE_A, POS_A)
FIELD_B = FieldConfig.from_width(SIZE_B, POS_B)
FIELD_C = FieldConfig.from_width(SIZE_C, POS_C)
FIELD_Bx = FieldConfig.from_width(SIZE_Bx, POS_Bx)
FIELD_Ax = FieldConfig.from_width(SIZE_Ax, POS_Ax)


def is_constant(value: int) -> bool:
    """Return ``True`` when an RK operand selects the constant pool."""

    return bool(value & BITRK)


def rk_index(value: int) -> int:
    """Strip the constant flag from an RK operand."""

    return value & ~BITRK


def rk_as_constant(index: int) -> int:
    if not 0 <= index <= MAXINDEXRK:
        raise ValueError(f"constant index {index} is out of RK range")
    return index | BITRK


@dataclass(frozen=True)
class Instruction:
    """Decoded instruction: the opcode plus the operands of its layout.

    Fields that the layout does not define are ``None``.  ``word`` holds the
    source word when the instruction came from :func:`decode`.
    """

    opcode: OpCode
    a: Optional[int] = None
    b: Optional[int] = None
    c: Optional[int] = None
    bx: Optional[int] = None
    sbx: Optional[int] = None
    ax: Optional[int] = None
    word: Optional[Word] = field(default=None, compare=False)

    @property
    def layout(self) -> OperandLayout:
        return layout_of(self.opcode)

    @property
    def name(self) -> str:
        return self.opcode.name

    @classmethod
    def abc(cls, opcode: OpCode, a: int = 0, b: int = 0, c: int = 0) -> "Instruction":
        return cls(opcode=opcode, a=a, b=b, c=c)

    @classmethod
    def abx(cls, opcode: OpCode, a: int = 0, bx: int = 0) -> "Instruction":
        return cls(opcode=opcode, a=a, bx=bx)

    @classmethod
    def asbx(cls, opcode: OpCode, a: int = 0, sbx: int = 0) -> "Instruction":
        return cls(opcode=opcode, a=a, sbx=sbx)

    @classmethod
    def iax(cls, opcode: OpCode, ax: int = 0) -> "Instruction":
        return cls(opcode=opcode, ax=ax)

    def operands(self) -> List[Tuple[str, OperandKind, int]]:
        """Return ``(field, kind, value)`` for every operand the opcode uses."""

        return [(name, kind, getattr(self, name)) for name, kind in operand_kinds(self.opcode)]

    def listing_operands(self) -> List[int]:
        """Operands as ``luac -l`` shows them; constants become ``-1-k``."""

        values = []
        for _name, kind, value in self.operands():
            if kind is OperandKind.REGISTER_CONSTANT and is_constant(value):
                values.append(-1 - rk_index(value))
            elif kind is OperandKind.CONSTANT:
                values.append(-1 - value)
            else:
                values.append(value)
        return values

    def as_dict(self) -> dict:
        payload = {"op": self.name, "layout": self.layout.value}
        for name, _kind, value in self.operands():
            payload[name] = value
        if self.word is not None:
            payload["word"] = self.word
        return payload

    def __str__(self) -> str:
        operands = " ".join(str(value) for value in self.listing_operands())
        return f"{self.name:<9} {operands}".rstrip()


def decode(word: Word) -> Instruction:
    """Decode a 32-bit word into an :class:`Instruction`."""

    word &= WORD_MASK
    opcode = opcode_from_code(FIELD_OP.extract(word))
    layout = layout_of(opcode)
    if layout is OperandLayout.ABC:
        return Instruction(
            opcode=opcode,
            a=FIELD_A.extract(word),
            b=FIELD_B.extract(word),
            c=FIELD_C.extract(word),
            word=word,
        )
    if layout is OperandLayout.ABx:
        return Instruction(opcode=opcode, a=FIELD_A.extract(word), bx=FIELD_Bx.extract(word), word=word)
    if layout is OperandLayout.AsBx:
        return Instruction(
            opcode=opcode,
            a=FIELD_A.extract(word),
            sbx=FIELD_Bx.extract(word) - MAXARG_sBx,
            word=word,
        )
    return Instruction(opcode=opcode, ax=FIELD_Ax.extract(word), word=word)


def encode(instruction: Instruction) -> Word:
    """Pack an :class:`Instruction` back into its 32-bit word."""

    opcode = instruction.opcode
    layout = layout_of(opcode)
    word = FIELD_OP.insert(0, int(opcode))
    if layout is OperandLayout.Ax:
        return FIELD_Ax.insert(word, instruction.ax or 0)
    word = FIELD_A.insert(word, instruction.a or 0)
    if layout is OperandLayout.ABC:
        word = FIELD_B.insert(word, instruction.b or 0)
        return FIELD_C.insert(word, instruction.c or 0)
    if layout is OperandLayout.ABx:
        return FIELD_Bx.insert(word, instruction.bx or 0)
    sbx = instruction.sbx or 0
    if not -MAXARG_sBx <= sbx <= MAXARG_Bx - MAXARG_sBx:
        raise ValueError(f"sBx operand {sbx} is out of range")
    return FIELD_Bx.insert(word, sbx + MAXARG_sBx)


def decode_all(words: Iterable[Word]) -> List[Instruction]:
    """Decode a code section, tagging failures with their pc."""

    instructions: List[Instruction] = []
    for pc, word in enumerate(words):
        try:
            instructions.append(decode(word))
        except InvalidOpCodeError as exc:
            raise InvalidOpCodeError(exc.opcode, word=word, pc=pc) from exc
    return instructions
