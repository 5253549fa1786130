"""Logging setup for turnsense components.

Hook processes share the terminal with the host UI, so nothing here writes to
stdout. Component logs go to <home>/logs/<component>.log.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Set


_DEBUG_VALUES = {"1", "true", "yes", "on"}
_LOG_SETUP: Set[str] = set()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

log = logging.getLogger("turnsense")


def debug_enabled() -> bool:
    """Return True when TURNSENSE_DEBUG is set to a truthy value."""
    return os.environ.get("TURNSENSE_DEBUG", "").strip().lower() in _DEBUG_VALUES


def log_debug(component: str, message: str, exc: Optional[BaseException] = None) -> None:
    """Emit a best-effort debug line, with traceback when ``exc`` is given."""
    logger = logging.getLogger(f"turnsense.{component}")
    if exc is not None:
        logger.debug("%s: %s", message, exc, exc_info=exc)
    else:
        logger.debug(message)


def setup_component_logging(component: str, logs_dir: Path) -> Optional[Path]:
    """Attach a file handler for ``component`` to the turnsense logger tree.

    Safe to call repeatedly; returns the log file path, or None when the log
    directory cannot be created.
    """
    log_file = Path(logs_dir) / f"{component}.log"
    if component in _LOG_SETUP:
        return log_file
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8", errors="replace")
    except OSError:
        return None

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(handler)
    log.setLevel(logging.DEBUG if debug_enabled() else logging.INFO)
    _LOG_SETUP.add(component)
    return log_file
