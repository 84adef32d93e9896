from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import UTC, datetime
from typing import Protocol

from .models import Notification, Severity

logger = logging.getLogger(__name__)

_LOG_LEVELS: dict[Severity, int] = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier(Protocol):
    """Fire-and-forget channel for transient user-facing messages."""

    def notify(self, severity: Severity, message: str) -> None: ...


class LoggingNotifier:
    """Log every message and keep the most recent ones for the API to return."""

    def __init__(self, *, history: int = 50) -> None:
        self._lock = threading.Lock()
        self._recent: deque[Notification] = deque(maxlen=history)

    def notify(self, severity: Severity, message: str) -> None:
        logger.log(_LOG_LEVELS[severity], "notification severity=%s message=%s", severity, message)
        with self._lock:
            self._recent.append(
                Notification(severity=severity, message=message, created_at=datetime.now(tz=UTC))
            )

    def success(self, message: str) -> None:
        self.notify("success", message)

    def error(self, message: str) -> None:
        self.notify("error", message)

    def info(self, message: str) -> None:
        self.notify("info", message)

    def warning(self, message: str) -> None:
        self.notify("warning", message)

    def recent(self, limit: int | None = None) -> list[Notification]:
        """Newest first."""
        with self._lock:
            items = list(reversed(self._recent))
        return items[:limit] if limit is not None else items
