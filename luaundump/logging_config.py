"""Logging helpers for configuring per-run debug outputs."""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = [
    "configure_debug_file_logger",
    "close_debug_logger",
]


def configure_debug_file_logger(
    name: str,
    path: Path,
    *,
    level: int = logging.DEBUG,
    formatter: logging.Formatter | None = None,
) -> logging.Logger:
    """Return logger ``name`` writing its records to ``path``.

    Handlers installed by an earlier call are replaced, so each run starts a
    fresh trace.  The logger stops propagating until
    :func:`close_debug_logger` runs.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    close_debug_logger(logger)
    logger._undump_saved_state = (logger.level, logger.propagate)  # type: ignore[attr-defined]
    logger.setLevel(level)
    logger.propagate = False

    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler._undump_debug_log = True  # type: ignore[attr-defined]
    if formatter is None:
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def close_debug_logger(logger: logging.Logger) -> None:
    """Tear down handlers installed by :func:`configure_debug_file_logger`."""

    for handler in list(logger.handlers):
        if getattr(handler, "_undump_debug_log", False):
            logger.removeHandler(handler)
            handler.close()
    saved = getattr(logger, "_undump_saved_state", None)
    if saved is not None:
        level, propagate = saved
        logger.setLevel(level)
        logger.propagate = propagate
        del logger._undump_saved_state  # type: ignore[attr-defined]
