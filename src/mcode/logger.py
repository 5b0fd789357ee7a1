"""Centralized file logger for mcode.

Writes an always-on log to .mcode_output/mcode.log so a session's tool
executions, model requests, retries and context trims can be reconstructed
after the fact.

Usage in any module:
    from .logger import get_logger
    log = get_logger(__name__)
    log.info("trimmed %d -> %d messages", before, after)

The log file rotates at 5 MB and keeps the last 5 files.
"""

import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

OUTPUT_DIR_NAME = ".mcode_output"

# ── Singleton state ──────────────────────────────────────────

_initialized = False
_log_dir: Optional[Path] = None


def get_output_dir() -> Path:
    """Return (and create) the output directory for logs, history and background output."""
    global _log_dir
    if _log_dir is not None:
        return _log_dir
    _log_dir = Path.cwd() / OUTPUT_DIR_NAME
    _log_dir.mkdir(parents=True, exist_ok=True)
    return _log_dir


def init_logging(workspace: Optional[str] = None, level: int = logging.DEBUG) -> None:
    """Initialise the file logger.  Safe to call more than once."""
    global _initialized, _log_dir

    if workspace:
        _log_dir = Path(workspace) / OUTPUT_DIR_NAME
        _log_dir.mkdir(parents=True, exist_ok=True)
    else:
        get_output_dir()

    if _initialized:
        return
    _initialized = True

    root = logging.getLogger("mcode")
    root.setLevel(level)
    # Keep records out of the terminal UI unless a handler asks for them
    root.propagate = False

    if root.handlers:
        return

    log_path = _log_dir / "mcode.log"

    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=5 * 1024 * 1024,   # 5 MB per file
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d | %(levelname)-5s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(fmt)
    root.addHandler(handler)

    if os.environ.get("MCODE_DEBUG"):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.DEBUG)
        stderr_handler.setFormatter(fmt)
        root.addHandler(stderr_handler)

    root.info(
        "=== Logging initialised === pid=%d python=%s log=%s",
        os.getpid(),
        sys.version.split()[0],
        log_path,
    )


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the 'mcode' namespace.

    Initialises logging on first call so that module-level loggers
    created at import time still write somewhere.
    """
    if not _initialized:
        init_logging()
    if name.startswith("mcode."):
        name = name[len("mcode."):]
    return logging.getLogger(f"mcode.{name}")


# ── Convenience helpers ──────────────────────────────────────

def log_exception(logger: logging.Logger, msg: str, exc: BaseException) -> None:
    """Log an exception with full traceback."""
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("%s: %s\n%s", msg, exc, "".join(tb))


def truncate(text: str, max_len: int = 200) -> str:
    """Truncate a string for log readability."""
    if not text:
        return "(empty)"
    text = text.replace("\n", "\\n")
    if len(text) <= max_len:
        return text
    return text[:max_len] + f"...[{len(text)} chars]"
