"""In-memory representation of loaded Lua 5.3 function prototypes."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from .exceptions import InvalidTypeError
from .vm.instruction import Instruction

__all__ = [
    "LocVar",
    "LuaType",
    "Proto",
    "Upvalue",
    "Value",
    "text",
]

_INT64_MASK = (1 << 64) - 1


class LuaType(enum.IntEnum):
    """Type tags as written in a chunk's constant pool.

    Numbers and strings carry a variant in bits 4-5 of the tag.
    """

    NIL = 0
    BOOLEAN = 1
    LIGHTUSERDATA = 2
    NUMFLT = 3 | (0 << 4)
    SHRSTR = 4 | (0 << 4)
    TABLE = 5
    FUNCTION = 6
    USERDATA = 7
    THREAD = 8
    NUMINT = 3 | (1 << 4)
    LNGSTR = 4 | (1 << 4)
    NUMBER = NUMFLT
    STRING = SHRSTR

    @classmethod
    def from_byte(cls, value: int) -> "LuaType":
        try:
            return cls(value)
        except ValueError:
            raise InvalidTypeError(value) from None


def text(data: bytes) -> str:
    """Decode Lua bytes for display without ever failing."""

    return data.decode("utf-8", errors="backslashreplace")


def _wrap_int64(value: int) -> int:
    value &= _INT64_MASK
    return value - (1 << 64) if value >= (1 << 63) else value


@dataclass(frozen=True)
class Value:
    """A constant-pool entry: ``nil``, boolean, integer, float or string."""

    type: LuaType
    value: Any = None

    @classmethod
    def nil(cls) -> "Value":
        return cls(LuaType.NIL, None)

    @classmethod
    def boolean(cls, value: bool) -> "Value":
        return cls(LuaType.BOOLEAN, bool(value))

    @classmethod
    def integer(cls, value: int) -> "Value":
        return cls(LuaType.NUMINT, _wrap_int64(int(value)))

    @classmethod
    def number(cls, value: float) -> "Value":
        return cls(LuaType.NUMFLT, float(value))

    @classmethod
    def string(cls, value: bytes, *, long: bool = False) -> "Value":
        if isinstance(value, str):
            value = value.encode("utf-8")
        return cls(LuaType.LNGSTR if long else LuaType.SHRSTR, bytes(value))

    @classmethod
    def from_python(cls, obj: Any) -> "Value":
        if obj is None:
            return cls.nil()
        if isinstance(obj, bool):
            return cls.boolean(obj)
        if isinstance(obj, int):
            return cls.integer(obj)
        if isinstance(obj, float):
            return cls.number(obj)
        if isinstance(obj, (str, bytes, bytearray)):
            return cls.string(obj)
        raise TypeError(f"Cannot represent {type(obj).__name__} as a Lua constant")

    @property
    def is_nil(self) -> bool:
        return self.type is LuaType.NIL

    @property
    def is_string(self) -> bool:
        return self.type in (LuaType.SHRSTR, LuaType.LNGSTR)

    def as_python(self) -> Any:
        return self.value

    def as_dict(self) -> Dict[str, Any]:
        if self.is_string:
            payload: Any = text(self.value)
        elif self.type is LuaType.NUMFLT and not math.isfinite(self.value):
            payload = repr(self.value)
        else:
            payload = self.value
        return {"type": self.type.name.lower(), "value": payload}

    def __str__(self) -> str:
        if self.type is LuaType.NIL:
            return "nil"
        if self.type is LuaType.BOOLEAN:
            return "true" if self.value else "false"
        if self.type is LuaType.NUMFLT:
            if self.value.is_integer():
                return f"{self.value:.1f}"
            return repr(self.value)
        if self.is_string:
            return '"' + text(self.value) + '"'
        return str(self.value)


@dataclass
class Upvalue:
    instack: bool
    idx: int
    name: bytes = b""

    def as_dict(self) -> Dict[str, Any]:
        return {"name": text(self.name), "instack": self.instack, "idx": self.idx}


@dataclass
class LocVar:
    """Debug record: a local variable's name and live pc range."""

    varname: bytes
    startpc: int
    endpc: int

    def as_dict(self) -> Dict[str, Any]:
        return {"name": text(self.varname), "startpc": self.startpc, "endpc": self.endpc}


@dataclass
class Proto:
    """A compiled function and, recursively, the functions it defines."""

    source: str = ""
    line_defined: int = 0
    last_line_defined: int = 0
    numparams: int = 0
    is_vararg: bool = False
    max_stack_size: int = 0
    code: List[int] = field(default_factory=list)
    instructions: Optional[List[Instruction]] = None
    constants: List[Value] = field(default_factory=list)
    upvalues: List[Upvalue] = field(default_factory=list)
    protos: List["Proto"] = field(default_factory=list)
    lineinfo: List[int] = field(default_factory=list)
    locvars: List[LocVar] = field(default_factory=list)

    @property
    def is_main(self) -> bool:
        return self.line_defined == 0

    def walk(self) -> Iterator["Proto"]:
        """Yield this prototype and every nested one, depth-first."""

        yield self
        for child in self.protos:
            yield from child.walk()

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "source": self.source,
            "line_defined": self.line_defined,
            "last_line_defined": self.last_line_defined,
            "numparams": self.numparams,
            "is_vararg": self.is_vararg,
            "max_stack_size": self.max_stack_size,
            "code": list(self.code),
            "constants": [constant.as_dict() for constant in self.constants],
            "upvalues": [upvalue.as_dict() for upvalue in self.upvalues],
            "lineinfo": list(self.lineinfo),
            "locvars": [local.as_dict() for local in self.locvars],
            "protos": [child.as_dict() for child in self.protos],
        }
        if self.instructions is not None:
            payload["instructions"] = [inst.as_dict() for inst in self.instructions]
        return payload
