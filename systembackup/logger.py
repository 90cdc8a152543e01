#!/usr/bin/env python3
"""
logger.py — centralized logging for systembackup
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler, SysLogHandler
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from systembackup.config import Settings

_LOGGER: Optional[logging.Logger] = None
STATUS_LEVEL = 25
SYSLOG_IDENT = "system-backup"
SYSLOG_SOCKET = "/dev/log"


def _status(self, message, *args, **kwargs):
    if self.isEnabledFor(STATUS_LEVEL):
        self._log(STATUS_LEVEL, message, args, **kwargs)


# Registered at import so early (pre-setup) loggers can call .status() too
logging.addLevelName(STATUS_LEVEL, "STATUS")
logging.Logger.status = _status  # type: ignore[attr-defined]


def setup_logger(settings: Settings) -> logging.Logger:
    """Initialize global logger once."""
    global _LOGGER
    if _LOGGER is not None:
        return _LOGGER

    log = logging.getLogger("systembackup")
    log.setLevel(settings.log_level)
    log.propagate = False

    for h in log.handlers[:]:
        log.removeHandler(h)

    # --- Rotating File Handler ---
    settings.log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        settings.log_path, maxBytes=settings.max_log_size, backupCount=settings.max_log_files, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] [%(name)s] %(message)s"))
    log.addHandler(file_handler)

    # Console handler; errors must reach stderr for cron mail
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    log.addHandler(console_handler)

    # Syslog: only run boundaries and problems
    if settings.syslog and os.path.exists(SYSLOG_SOCKET):
        syslog_handler = SysLogHandler(address=SYSLOG_SOCKET)
        syslog_handler.setLevel(STATUS_LEVEL)
        syslog_handler.setFormatter(logging.Formatter(f"{SYSLOG_IDENT}: %(message)s"))
        log.addHandler(syslog_handler)

    _LOGGER = log
    return log


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Retrieve a logger. If setup_logger() hasn't been called yet,
    return a temporary stderr-based logger.
    """
    global _LOGGER
    if _LOGGER is not None:
        return _LOGGER.getChild(name) if name else _LOGGER

    # Fallback: minimal stderr logger (safe for early imports)
    temp = logging.getLogger("systembackup.temp")
    if not temp.handlers:
        h = logging.StreamHandler(sys.stderr)
        h.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        temp.addHandler(h)
        temp.setLevel(logging.INFO)
    return temp.getChild(name) if name else temp
