"""Centralised logging configuration.

Call configure() once at startup (from app.py or brand_cli.py).
All modules then use logging.getLogger(__name__) normally.

Output:
  console      — LOG_LEVEL (default INFO), compact single-line format
  logs/app.log — DEBUG level, full format, rotating (5 × 5 MB)

Every record carries a `session` field: the short id of the browser
session whose run emitted it, or "-" outside a run. Runs execute on
worker threads, so the id is set with session_context() inside the
thread rather than inherited from the request.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator, Optional

LOGS_DIR = Path(__file__).parent / "logs"
LOG_FILE = LOGS_DIR / "app.log"

_CONSOLE_FMT = "%(asctime)s  %(levelname)-7s  [%(session)s] %(name)s — %(message)s"
_FILE_FMT = "%(asctime)s  %(levelname)-7s  [%(session)s] %(name)-12s  %(filename)s:%(lineno)d — %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"

_NOISY = ("urllib3", "httpx", "httpcore", "werkzeug", "google_genai", "openai", "anthropic", "replicate")

session_id_var: ContextVar[str] = ContextVar("session_id", default="-")


def current_session() -> str:
    return session_id_var.get()


@contextmanager
def session_context(sid: str) -> Iterator[str]:
    """Tag every record logged inside the block with the first 8 chars of `sid`."""
    short = sid[:8] if sid else "-"
    token = session_id_var.set(short)
    try:
        yield short
    finally:
        session_id_var.reset(token)


class SessionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session"):
            record.session = session_id_var.get()
        return True


def configure(level: Optional[str] = None) -> None:
    """Set up console + rotating file handlers.  Safe to call multiple times."""
    root = logging.getLogger()
    if root.handlers:
        return  # Already configured (or pytest's capture handler is installed)

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    root.setLevel(logging.DEBUG)
    session_filter = SessionFilter()

    ch = logging.StreamHandler()
    ch.setLevel(getattr(logging, level.upper(), logging.INFO))
    ch.setFormatter(logging.Formatter(_CONSOLE_FMT, datefmt=_DATE_FMT))
    ch.addFilter(session_filter)
    root.addHandler(ch)

    fh = logging.handlers.RotatingFileHandler(
        LOG_FILE,
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FILE_FMT, datefmt=_DATE_FMT))
    fh.addFilter(session_filter)
    root.addHandler(fh)

    for noisy in _NOISY:
        logging.getLogger(noisy).setLevel(logging.WARNING)
