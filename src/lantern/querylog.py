"""Query-log sinks.

The resolver emits one QueryLogEvent per question. Where the events end up is
decided by the process layer, which hands the resolver a sink:

- NullQueryLog: query logging disabled.
- FileQueryLog: append-only text file, one ``Query: <name>, Response: <kind>``
  line per event, safe to share between handler threads.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from dataclasses import dataclass
from typing import Optional, TextIO

logger = logging.getLogger(__name__)


class QueryOutcome(str, enum.Enum):
    AUTHORITATIVE = "Authoritative response"
    FORWARDED = "Forwarded response"
    NXDOMAIN = "NXDOMAIN response"


@dataclass(frozen=True)
class QueryLogEvent:
    """One processed question.

    ``qname`` is the name exactly as the client sent it (before
    normalization).
    """

    qname: str
    outcome: QueryOutcome

    def format_line(self) -> str:
        return f"Query: {self.qname}, Response: {self.outcome.value}"


class BaseQueryLog:
    """Brief: Sink interface for query-log events.

    Inputs:
      - None.

    Outputs:
      - Subclasses implement record() and optionally close().
    """

    def record(self, event: QueryLogEvent) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class NullQueryLog(BaseQueryLog):
    """Discards every event."""

    def record(self, event: QueryLogEvent) -> None:
        return None


class FileQueryLog(BaseQueryLog):
    """Append-only text file sink.

    Inputs (constructor):
        file_path: Log file path; parent directories are created as needed.

    Outputs:
        FileQueryLog holding an open handle. Writes are serialized with a lock
        so lines from concurrent handlers never interleave.

    Raises:
        OSError: When the file cannot be opened for appending.
    """

    def __init__(self, file_path: str) -> None:
        path = os.path.abspath(os.path.expanduser(str(file_path)))
        dir_path = os.path.dirname(path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)
        self.file_path = path
        self._lock = threading.Lock()
        self._fh: Optional[TextIO] = open(path, "a", encoding="utf-8")

    def record(self, event: QueryLogEvent) -> None:
        line = event.format_line() + "\n"
        with self._lock:
            if self._fh is None:
                return
            try:
                self._fh.write(line)
                self._fh.flush()
            except OSError:
                logger.exception("Failed to write query log line to %s", self.file_path)

    def close(self) -> None:
        with self._lock:
            fh, self._fh = self._fh, None
        if fh is not None:
            fh.close()
