"""Command line listing for precompiled Lua 5.3 chunks.

``python -m luaundump luac.out`` loads the chunk and prints every function in
a ``luac -l -l`` style listing; ``--json`` emits the prototype tree instead.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .config import DEFAULT_PLATFORM, Platform
from .exceptions import UndumpError
from .io.loader import load_file
from .logging_config import close_debug_logger, configure_debug_file_logger
from .objects import Proto, text
from .vm.instruction import Instruction, is_constant, rk_index
from .vm.opcodes import OperandKind

LOGGER = logging.getLogger(__name__)

__all__ = ["format_listing", "main"]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _constant_text(proto: Proto, index: int) -> str:
    if 0 <= index < len(proto.constants):
        return str(proto.constants[index])
    return "?"


def _upvalue_text(proto: Proto, index: int) -> str:
    if 0 <= index < len(proto.upvalues) and proto.upvalues[index].name:
        return text(proto.upvalues[index].name)
    return "-"


def _annotate(proto: Proto, pc: int, inst: Instruction) -> str:
    notes = []
    for _name, kind, value in inst.operands():
        if kind is OperandKind.CONSTANT:
            notes.append(_constant_text(proto, value))
        elif kind is OperandKind.REGISTER_CONSTANT and is_constant(value):
            notes.append(_constant_text(proto, rk_index(value)))
        elif kind is OperandKind.UPVALUE:
            notes.append(_upvalue_text(proto, value))
        elif kind is OperandKind.SINTEGER:
            notes.append(f"to {pc + value + 2}")
    return " ".join(notes)


def _function_header(proto: Proto, *, main_function: bool) -> List[str]:
    source = proto.source or "=?"
    if source[0] in "@=":
        source = source[1:]
    elif source.startswith("\x1b"):
        source = "(bstring)"
    else:
        source = "(string)"
    kind = "main" if main_function else "function"
    lines = [
        f"{kind} <{source}:{proto.line_defined},{proto.last_line_defined}> "
        f"({_plural(len(proto.code), 'instruction')})",
        f"{proto.numparams}{'+' if proto.is_vararg else ''} "
        f"{'param' if proto.numparams == 1 else 'params'}, "
        f"{_plural(proto.max_stack_size, 'slot')}, {_plural(len(proto.upvalues), 'upvalue')}, "
        f"{_plural(len(proto.locvars), 'local')}, {_plural(len(proto.constants), 'constant')}, "
        f"{_plural(len(proto.protos), 'function')}",
    ]
    return lines


def _format_function(proto: Proto, *, main_function: bool, debug: bool) -> List[str]:
    lines = _function_header(proto, main_function=main_function)
    instructions = proto.instructions
    for pc, word in enumerate(proto.code):
        line = f"[{proto.lineinfo[pc]}]" if debug and pc < len(proto.lineinfo) else "[-]"
        if instructions is None:
            lines.append(f"\t{pc + 1}\t{line}\t0x{word:08x}")
            continue
        inst = instructions[pc]
        note = _annotate(proto, pc, inst)
        lines.append(f"\t{pc + 1}\t{line}\t{inst}" + (f"\t; {note}" if note else ""))

    lines.append(f"constants ({len(proto.constants)}):")
    for index, constant in enumerate(proto.constants, 1):
        lines.append(f"\t{index}\t{constant}")
    if debug:
        lines.append(f"locals ({len(proto.locvars)}):")
        for index, local in enumerate(proto.locvars):
            lines.append(f"\t{index}\t{text(local.varname)}\t{local.startpc + 1}\t{local.endpc + 1}")
    lines.append(f"upvalues ({len(proto.upvalues)}):")
    for index, upvalue in enumerate(proto.upvalues):
        name = text(upvalue.name) if debug and upvalue.name else "-"
        lines.append(f"\t{index}\t{name}\t{int(upvalue.instack)}\t{upvalue.idx}")
    return lines


def format_listing(proto: Proto, *, debug: bool = True) -> List[str]:
    """Render ``proto`` and its nested functions as listing lines."""

    lines: List[str] = []
    for index, function in enumerate(proto.walk()):
        if index:
            lines.append("")
        lines.extend(_format_function(function, main_function=index == 0, debug=debug))
    return lines


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="List the contents of a precompiled Lua 5.3 chunk")
    parser.add_argument("input", type=Path, help="Path to the binary chunk (e.g. luac.out)")
    parser.add_argument("--json", action="store_true", help="Print the prototype tree as JSON")
    parser.add_argument("--json-out", type=Path, help="Also write the JSON tree to this path")
    parser.add_argument(
        "--strip-debug",
        action="store_true",
        help="Leave line numbers, locals and upvalue names out of the listing",
    )
    parser.add_argument(
        "--no-decode",
        action="store_true",
        help="Keep instructions as raw words instead of decoding them",
    )
    parser.add_argument(
        "--platform-config",
        type=Path,
        help="JSON file describing the sizes and byte order of the producing platform",
    )
    parser.add_argument("--debug-log", type=Path, help="Write a debug trace of the load to this file")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    debug_logger = None
    if args.debug_log:
        debug_logger = configure_debug_file_logger("luaundump", args.debug_log)

    try:
        platform = Platform.from_json(args.platform_config) if args.platform_config else DEFAULT_PLATFORM
        proto = load_file(args.input, platform=platform, decode_instructions=not args.no_decode)
    except (UndumpError, OSError, ValueError, TypeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if debug_logger is not None:
            close_debug_logger(debug_logger)

    LOGGER.info("Loaded %s: %d function(s)", args.input, sum(1 for _ in proto.walk()))

    if args.json_out:
        args.json_out.parent.mkdir(parents=True, exist_ok=True)
        args.json_out.write_text(json.dumps(proto.as_dict(), indent=2), encoding="utf8")
        LOGGER.info("Wrote JSON tree to %s", args.json_out)

    if args.json:
        print(json.dumps(proto.as_dict(), indent=2))
    else:
        print("\n".join(format_listing(proto, debug=not args.strip_debug)))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
