"""Top-level notification sink for the widget.

Everything the visitor should be told about (failed sends, a session being
restarted, a widget that could not be loaded) ends up here as a
:class:`Notice`. Front ends subscribe a callable; the CLI prints notices,
tests inspect :attr:`NotificationCenter.history`.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class NoticeVariant(str, Enum):
    """How a notice should be presented."""

    DEFAULT = "default"
    DESTRUCTIVE = "destructive"
    RESTARTING = "restarting"


@dataclass
class Notice:
    """A single user-facing notification."""

    title: str
    description: str = ""
    variant: NoticeVariant = NoticeVariant.DEFAULT
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


NoticeListener = Callable[[Notice], None]


class NotificationCenter:
    """Fans notices out to subscribers and keeps a bounded history."""

    def __init__(self, history_size: int = 50) -> None:
        self._listeners: list[NoticeListener] = []
        self._history: deque[Notice] = deque(maxlen=history_size)

    @property
    def history(self) -> list[Notice]:
        return list(self._history)

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(
        self,
        title: str,
        description: str = "",
        variant: NoticeVariant = NoticeVariant.DEFAULT,
    ) -> Notice:
        notice = Notice(title=title, description=description, variant=variant)
        self._history.append(notice)

        level = logging.WARNING if variant == NoticeVariant.DESTRUCTIVE else logging.INFO
        logger.log(level, "%s: %s", title, description)

        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception as e:
                logger.error("Notice listener error: %s", e)
        return notice

    def error(self, title: str, description: str = "") -> Notice:
        return self.notify(title, description, NoticeVariant.DESTRUCTIVE)

    def restarting(self, description: str) -> Notice:
        return self.notify("Reiniciando conversa", description, NoticeVariant.RESTARTING)

    def clear(self) -> None:
        self._history.clear()
