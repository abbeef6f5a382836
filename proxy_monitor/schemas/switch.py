from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class SwitchReason(StrEnum):
    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    QUOTA_EXCEEDED = "quota_exceeded"
    HIGH_LATENCY = "high_latency"
    MANUAL = "manual"
    RETRY_FAILED = "retry_failed"
    UNRECOVERABLE_ERROR = "unrecoverable_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


class SwitchEvent(BaseModel):
    """
    服务端推送的自动切换事件。

    `reason` 保留原始字符串：服务端新增的原因不应导致解析失败，
    未知值在展示时统一映射为 "Unknown reason"。
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    event_id: int | str | None = Field(None, description="服务端切换日志 ID，用于去重")
    group_id: int
    group_name: str = ""
    source_config_id: int | None = None
    source_config_name: str | None = None
    target_config_id: int
    target_config_name: str = ""
    reason: str
    latency_before_ms: int | None = None
    latency_after_ms: int | None = None

    def dedup_key(self) -> tuple:
        if self.event_id is not None:
            return ("id", self.event_id)
        return (
            "payload",
            self.group_id,
            self.source_config_id,
            self.target_config_id,
            self.reason,
            self.latency_before_ms,
            self.latency_after_ms,
        )


class SwitchUiState(BaseModel):
    """
    “刚刚发生切换”的短暂 UI 状态，由 EventBridge 独占维护。
    """

    model_config = ConfigDict(frozen=True)

    just_switched: bool = False
    source_config_id: int | None = None
    target_config_id: int | None = None
    reason: str | None = None
    event: SwitchEvent | None = None

    @classmethod
    def from_event(cls, event: SwitchEvent) -> SwitchUiState:
        return cls(
            just_switched=True,
            source_config_id=event.source_config_id,
            target_config_id=event.target_config_id,
            reason=event.reason,
            event=event,
        )


__all__ = ["SwitchEvent", "SwitchReason", "SwitchUiState"]
