"""Process-wide logging setup for the ``imagestream`` logger tree.

Modules log through ``logging.getLogger(__name__)``; ``setup_logging`` is
called once by the CLI. Levels for single modules can be raised or lowered
without touching code::

    IS_LOG_MODULE_LEVELS="relay=DEBUG,media.extract=WARNING" imagestream serve
"""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

ROOT_LOGGER = "imagestream"
MODULE_LEVELS_ENV = "IS_LOG_MODULE_LEVELS"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def _qualify(name: str) -> str:
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return name
    return f"{ROOT_LOGGER}.{name}"


def _split_assignment(part: str) -> Optional[Tuple[str, str]]:
    for sep in ("=", ":"):
        if sep in part:
            name, level = part.split(sep, 1)
            return name.strip(), level.strip().upper()
    return None


def _parse_module_levels(raw: str) -> Dict[str, int]:
    """Turn ``"relay=DEBUG;media:info"`` into ``{logger name: level}``.

    Entries are separated by ``,`` or ``;``; unknown level names and
    entries without ``=``/``:`` are skipped.
    """
    levels: Dict[str, int] = {}
    for part in re.split(r"[;,]+", raw or ""):
        pair = _split_assignment(part.strip())
        if pair is None or not all(pair):
            continue
        name, level_name = pair
        level = logging.getLevelName(level_name)
        if isinstance(level, int):
            levels[_qualify(name)] = level
    return levels


def _handler(handler: logging.Handler, fmt: str) -> logging.Handler:
    # Handlers pass everything; per-logger levels do the filtering.
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
) -> None:
    """Attach a stderr handler (and optionally a file handler) to ``imagestream``.

    Repeated calls are no-ops so library users and the CLI can both call it.
    """
    global _configured
    if _configured:
        return

    fmt = format_string or DEFAULT_FORMAT
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(_handler(logging.StreamHandler(sys.stderr), fmt))

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), fmt))

    logger.propagate = False

    for name, lvl in _parse_module_levels(os.getenv(MODULE_LEVELS_ENV, "")).items():
        logging.getLogger(name).setLevel(lvl)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``imagestream`` tree; bare names are prefixed."""
    return logging.getLogger(_qualify(name))
