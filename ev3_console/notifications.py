"""Transient operator notifications (the dashboard's toast messages)."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List

LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY = 50


@dataclass(slots=True)
class Notification:
    level: str
    text: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "level": self.level,
            "text": self.text,
            "createdAt": self.created_at.isoformat(timespec="seconds"),
        }


class NotificationLog:
    """Bounded history of notifications, newest last."""

    def __init__(self, max_entries: int = DEFAULT_HISTORY) -> None:
        self._entries: Deque[Notification] = deque(maxlen=max(1, max_entries))

    def success(self, text: str) -> None:
        LOGGER.info("%s", text)
        self._entries.append(Notification(level="success", text=text))

    def error(self, text: str) -> None:
        LOGGER.warning("%s", text)
        self._entries.append(Notification(level="error", text=text))

    def entries(self) -> List[Notification]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
