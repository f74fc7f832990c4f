"""
Notification Center.

Transient, non-blocking user notifications ("toasts").  Services push
notifications here instead of raising; whatever renders the UI
subscribes and displays them.  A bounded history is kept for views that
attach late.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel, Field

from storefront.logger import StructuredLogger
from storefront.models.enums import NotificationVariant
from storefront.services.base_service import BaseService


class Notification(BaseModel):
    """A single toast."""

    title: str
    description: str = ""
    variant: NotificationVariant = NotificationVariant.DEFAULT
    duration_ms: int = 2000
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


NotificationListener = Callable[[Notification], None]


class NotificationCenter(BaseService):
    """Fan-out of toasts to subscribers, with a bounded history."""

    def __init__(self, logger: StructuredLogger, history_size: int = 50) -> None:
        super().__init__(logger)
        self._history: deque[Notification] = deque(maxlen=history_size)
        self._listeners: list[NotificationListener] = []

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, notification: Notification) -> None:
        self._history.append(notification)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as exc:
                self._logger.warning(
                    "Notification listener %r failed: %s", listener, exc,
                )

    def info(self, title: str, description: str = "") -> None:
        self.notify(Notification(title=title, description=description))

    def error(self, title: str, description: str = "") -> None:
        self.notify(
            Notification(
                title=title,
                description=description,
                variant=NotificationVariant.DESTRUCTIVE,
                duration_ms=4000,
            )
        )
