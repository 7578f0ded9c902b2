"""Structured logging for the crawler, the indexer and search.

Events go through structlog and come out as one JSON object per line. The
site URL bound by the crawler via ``structlog.contextvars`` is merged into
every event. The newest lines are also kept in memory for ``GET /api/logs``.
"""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from datetime import timedelta
from functools import partial

import structlog

get_logger = structlog.get_logger

LOG_RETENTION_DAYS = 7
LINE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class RecentLogBuffer(logging.Handler):
    """Holds the last ``capacity`` formatted records with their creation time."""

    def __init__(self, capacity: int = 2000, retention: timedelta | None = None) -> None:
        super().__init__()
        self.entries: deque[tuple[float, str]] = deque(maxlen=capacity)
        self.retention = retention or timedelta(days=LOG_RETENTION_DAYS)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:  # noqa: BLE001
            self.handleError(record)
            return
        self.entries.append((record.created, line))

    def recent(self, limit: int) -> list[str]:
        if limit <= 0:
            return []
        cutoff = time.time() - self.retention.total_seconds()
        lines = [line for created, line in self.entries if created >= cutoff]
        return lines[-limit:]


_buffer: RecentLogBuffer | None = None


def configure_logging(level: int = logging.INFO, *, capacity: int = 2000) -> RecentLogBuffer:
    """Route stdlib logging and structlog through JSON lines; safe to repeat."""

    global _buffer
    logging.basicConfig(level=level, format="%(message)s")
    root = logging.getLogger()
    root.setLevel(level)
    if _buffer is None:
        _buffer = RecentLogBuffer(capacity=capacity)
        _buffer.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(_buffer)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(
                serializer=partial(json.dumps, ensure_ascii=False, default=str)
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return _buffer


def get_recent_logs(limit: int = 200) -> list[str]:
    """Newest ``limit`` lines, oldest first; nothing past the retention window."""

    if _buffer is None:
        return []
    return _buffer.recent(limit)
