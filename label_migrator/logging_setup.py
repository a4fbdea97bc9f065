"""Logging helpers shared by the CLI and the audit sink.

`configure_file_logging` makes sure the logs directory exists, attaches a
RotatingFileHandler to the requested loggers and returns the log file path.
`configure_audit_logging` builds the dedicated audit logger that receives one
line per processed record.
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"
AUDIT_LOGGER_NAME = "label_migrator.audit"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    value = getattr(logging, name, None)
    return value if isinstance(value, int) else logging.INFO


def _default_filename(prefix: Optional[str] = None) -> str:
    if not prefix:
        prefix = os.path.splitext(os.path.basename(sys.argv[0] or "label_migrator"))[0] or "label_migrator"
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{ts}.log"


def _has_file_handler(lg: logging.Logger, log_path: str) -> bool:
    for h in lg.handlers:
        if hasattr(h, "baseFilename") and os.path.abspath(getattr(h, "baseFilename")) == os.path.abspath(log_path):
            return True
    return False


def configure_file_logging(logs_dir: Optional[str] = None,
                           filename: Optional[str] = None,
                           *,
                           max_bytes: int = 5 * 1024 * 1024,
                           backup_count: int = 3,
                           logger_names: Optional[Iterable[str]] = None,
                           level: Optional[str] = None,
                           console: bool = False) -> str:
    """Attach a rotating file handler to the given loggers (or the root logger).

    - If `logger_names` is None the handler goes on the root logger so every
      `label_migrator.*` logger propagates to it.
    - `level` falls back to LOG_LEVEL, then INFO.
    - With `console=True` a StreamHandler is added once per logger as well.
    - Returns the absolute path to the log file.
    """
    logs_dir = os.path.abspath(logs_dir or "logs")
    os.makedirs(logs_dir, exist_ok=True)
    log_path = os.path.join(logs_dir, filename or _default_filename())

    if logger_names is None:
        targets = [logging.getLogger()]
    else:
        targets = [logging.getLogger(name) for name in logger_names]

    handler = None
    resolved = _resolve_level(level)
    for lg in targets:
        if not _has_file_handler(lg, log_path):
            if handler is None:
                handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes,
                                                               backupCount=backup_count, encoding="utf-8")
                handler.setFormatter(logging.Formatter(LOG_FORMAT))
            lg.addHandler(handler)
        if console and not any(type(h) is logging.StreamHandler for h in lg.handlers):
            ch = logging.StreamHandler()
            ch.setFormatter(logging.Formatter(LOG_FORMAT))
            lg.addHandler(ch)
        lg.setLevel(resolved)

    logging.getLogger(__name__).info("File logging initialized: %s", os.path.abspath(log_path))
    return os.path.abspath(log_path)


def configure_audit_logging(logs_dir: Optional[str] = None, filename: Optional[str] = None) -> logging.Logger:
    """Return the audit logger, writing to its own file and not to the run log."""
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    configure_file_logging(logs_dir, filename or _default_filename("audit"),
                           logger_names=[AUDIT_LOGGER_NAME], level="INFO")
    audit.propagate = False
    return audit
