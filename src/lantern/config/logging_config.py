"""Root logger setup for the lantern server.

Every sink shares the same line shape: a bracketed lowercase level tag, the
logger name, then the message. Stderr and file lines are prefixed with a UTC
timestamp; syslog lines are prefixed with ``<tag>[<pid>]:`` instead, since the
syslog daemon stamps the time itself.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

DEFAULT_SYSLOG_TAG = "lantern"
DEFAULT_SYSLOG_ADDRESS = "/dev/log"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}


def _level_tag(levelno: int) -> str:
    return _TAGS.get(levelno, f"[lvl{levelno}]")


class SyslogFormatter(logging.Formatter):
    """Syslog line: ``<tag>[<pid>]: [level] logger: message`` with no timestamp."""

    def __init__(self, tag: str = DEFAULT_SYSLOG_TAG) -> None:
        super().__init__()
        self.tag = tag

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return (
            f"{self.tag}[{record.process}]: "
            f"{record.level_tag} {record.name}: {record.getMessage()}"
        )


class BracketLevelFormatter(logging.Formatter):
    """Adds bracketed lowercase level tags and UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        """Format the record's creation time as UTC ISO-8601 with Z suffix."""
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return super().format(record)


def _syslog_handler(
    syslog_cfg: Union[bool, Dict[str, Any]]
) -> Optional[logging.Handler]:
    """Brief: Build the syslog handler described by the ``syslog`` setting.

    Inputs:
      - syslog_cfg: True for defaults, or a dict with optional ``address``,
        ``facility`` and ``tag`` keys.

    Outputs:
      - SysLogHandler with a SyslogFormatter attached, or None when the
        socket cannot be opened (a warning is logged).
    """
    opts = syslog_cfg if isinstance(syslog_cfg, dict) else {}
    handler_cls = logging.handlers.SysLogHandler
    facility_name = str(opts.get("facility", "USER")).upper()
    facility = getattr(handler_cls, f"LOG_{facility_name}", handler_cls.LOG_USER)

    try:
        handler = handler_cls(
            address=opts.get("address", DEFAULT_SYSLOG_ADDRESS), facility=facility
        )
    except (OSError, ValueError) as e:  # pragma: no cover - environment specific
        logging.getLogger("lantern").warning("Failed to configure syslog: %s", e)
        return None
    handler.setFormatter(SyslogFormatter(tag=opts.get("tag", DEFAULT_SYSLOG_TAG)))
    return handler


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Initialize the root logger from the ``logging`` section of the settings.

    Args:
        cfg: Logging configuration dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: boolean to log to stderr (default: True)
            - file: string path to log file (optional)
            - syslog: boolean or dict to enable syslog logging (optional)
                Can be a boolean (True uses defaults) or a dict with:
                - address: Unix socket path (default: /dev/log)
                - facility: syslog facility (default: USER)
                - tag: program tag on each line (default: lantern)

    Example config:
        {
            "level": "info",
            "file": "./lantern.log",
            "syslog": {"facility": "daemon", "tag": "lantern-dns"}
        }
    """
    cfg = cfg or {}

    root = logging.getLogger()
    root.setLevel(_LEVELS.get(str(cfg.get("level", "info")).lower(), logging.INFO))
    for h in list(root.handlers):
        root.removeHandler(h)

    handlers = []
    if cfg.get("stderr", True):
        handlers.append(logging.StreamHandler(sys.stderr))

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="a", encoding="utf-8"))

    stamped = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")
    for handler in handlers:
        handler.setFormatter(stamped)
        root.addHandler(handler)

    if cfg.get("syslog"):
        handler = _syslog_handler(cfg["syslog"])
        if handler is not None:
            root.addHandler(handler)

    logging.captureWarnings(True)
