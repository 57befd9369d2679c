"""Operator notification surface.

Controllers report every outcome through a ``Notifier`` callable
``notify(title, description, kind)``. The default notifier logs through
structlog; NotificationLog additionally keeps the most recent entries so the
HTTP surface can show them.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger(__name__)


class NotificationKind(str, Enum):
    INFO = "info"
    ERROR = "error"


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    kind: NotificationKind = NotificationKind.INFO
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Notifier = Callable[[str, str, NotificationKind], None]


def log_notifier(title: str, description: str, kind: NotificationKind) -> None:
    """Write the notification to the structured log."""
    log = logger.error if kind is NotificationKind.ERROR else logger.info
    log("notification.sent", title=title, description=description, kind=kind.value)


class NotificationLog:
    """Notifier that logs and remembers the last ``maxlen`` notifications."""

    def __init__(self, maxlen: int = 50) -> None:
        self._entries: deque[Notification] = deque(maxlen=maxlen)

    def __call__(self, title: str, description: str, kind: NotificationKind) -> None:
        self._entries.append(Notification(title=title, description=description, kind=kind))
        log_notifier(title, description, kind)

    def recent(self, limit: int | None = None) -> list[Notification]:
        """Newest first."""
        entries = list(reversed(self._entries))
        return entries if limit is None else entries[:limit]

    def last(self) -> Notification | None:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
