from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


class Notice(BaseModel):
    level: NoticeLevel
    message: str


NoticeCallback = Callable[[Notice], None]


class NoticeBoard:
    """Collects user-facing notices and forwards them to subscribers."""

    def __init__(self) -> None:
        self._pending: List[Notice] = []
        self._subscribers: List[NoticeCallback] = []

    def subscribe(self, callback: NoticeCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def post(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._pending.append(notice)
        for callback in list(self._subscribers):
            try:
                callback(notice)
            except Exception:
                logger.warning("Notice subscriber failed", exc_info=True, extra={"notice": message})
        return notice

    def info(self, message: str) -> Notice:
        return self.post(NoticeLevel.info, message)

    def success(self, message: str) -> Notice:
        return self.post(NoticeLevel.success, message)

    def warning(self, message: str) -> Notice:
        return self.post(NoticeLevel.warning, message)

    def error(self, message: str) -> Notice:
        return self.post(NoticeLevel.error, message)

    @property
    def pending(self) -> list[Notice]:
        return list(self._pending)

    def drain(self) -> list[Notice]:
        notices, self._pending = self._pending, []
        return notices


__all__ = ["Notice", "NoticeBoard", "NoticeLevel"]
