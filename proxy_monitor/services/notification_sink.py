from __future__ import annotations

import uuid
from collections import OrderedDict
from datetime import UTC, datetime
from typing import Protocol

from proxy_monitor.logging_config import logger
from proxy_monitor.schemas import Notification, NotificationLevel

_LOG_LEVELS = {"info": 20, "success": 20, "warning": 30, "error": 40}


class NotificationSink(Protocol):
    def show(
        self,
        level: NotificationLevel,
        title: str,
        body: str = "",
        duration_ms: int | None = None,
        *,
        notification_id: str | None = None,
    ) -> str: ...

    def dismiss(self, notification_id: str) -> None: ...


class LoggingNotificationSink:
    """
    无界面环境下的通知出口：只写日志。
    """

    def show(
        self,
        level: NotificationLevel,
        title: str,
        body: str = "",
        duration_ms: int | None = None,
        *,
        notification_id: str | None = None,
    ) -> str:
        notification_id = notification_id or uuid.uuid4().hex
        logger.log(_LOG_LEVELS.get(level, 20), "[%s] %s %s", notification_id, title, body)
        return notification_id

    def dismiss(self, notification_id: str) -> None:
        logger.debug("Dismiss notification %s", notification_id)


class InMemoryNotificationSink:
    """
    保留当前可见通知的内存实现，供 HTTP 接口读取。

    相同 id 的通知互相替换；超过 `max_items` 时丢弃最早的一条。
    过期（duration_ms）由展示端负责，这里只保存。
    """

    def __init__(self, *, max_items: int = 50) -> None:
        self._items: OrderedDict[str, Notification] = OrderedDict()
        self._max_items = max_items

    def show(
        self,
        level: NotificationLevel,
        title: str,
        body: str = "",
        duration_ms: int | None = None,
        *,
        notification_id: str | None = None,
    ) -> str:
        notification_id = notification_id or uuid.uuid4().hex
        self._items.pop(notification_id, None)
        self._items[notification_id] = Notification(
            id=notification_id,
            level=level,
            title=title,
            body=body,
            duration_ms=duration_ms,
            created_at=datetime.now(UTC),
        )
        while len(self._items) > self._max_items:
            self._items.popitem(last=False)
        return notification_id

    def dismiss(self, notification_id: str) -> None:
        self._items.pop(notification_id, None)

    def snapshot(self) -> list[Notification]:
        return list(self._items.values())


__all__ = ["InMemoryNotificationSink", "LoggingNotificationSink", "NotificationSink"]
