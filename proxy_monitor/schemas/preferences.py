from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

HEALTH_CHECK_INTERVALS: tuple[int, ...] = (60, 180, 300, 600, 900, 1800)
DEFAULT_HEALTH_CHECK_INTERVAL = 300


class AutoRefreshPreferences(BaseModel):
    """
    跨视图共享、需要持久化的自动刷新开关。

    调度器是否正在运行属于服务端实时状态，不在这里保存。
    """

    model_config = ConfigDict(extra="ignore")

    monitor_auto_refresh: bool = Field(False, description="供应商监控视图是否自动刷新（30s）")
    dev_log_auto_refresh: bool = Field(True, description="开发日志视图是否自动刷新（3s）")
    health_check_interval: int = Field(
        DEFAULT_HEALTH_CHECK_INTERVAL, description="健康检查间隔（秒）"
    )

    @field_validator("health_check_interval")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        if value not in HEALTH_CHECK_INTERVALS:
            raise ValueError(
                f"health_check_interval must be one of {HEALTH_CHECK_INTERVALS}"
            )
        return value


__all__ = [
    "AutoRefreshPreferences",
    "DEFAULT_HEALTH_CHECK_INTERVAL",
    "HEALTH_CHECK_INTERVALS",
]
