from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

NotificationLevel = Literal["info", "success", "warning", "error"]


class Notification(BaseModel):
    id: str = Field(..., description="通知槽位标识；相同 id 的通知会互相替换")
    level: NotificationLevel = Field("info", description="通知等级：info/success/warning/error")
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field("", max_length=4000)
    duration_ms: int | None = Field(None, description="自动消失时间；None 表示需要手动关闭")
    created_at: datetime


__all__ = ["Notification", "NotificationLevel"]
