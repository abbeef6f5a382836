from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from .provider import TestStatus


class ConnectivityTestRecord(BaseModel):
    """服务端记录的一次连通性测试（只读，追加写入）。"""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    config_id: int
    status: TestStatus
    latency_ms: int | None = None
    error_message: str | None = None
    test_at: datetime | None = None


class ProxiedRequestRecord(BaseModel):
    """经过代理转发的一次真实请求日志。"""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    config_id: int | None = None
    config_name: str | None = None
    is_success: bool
    latency_ms: int | None = None
    status_code: int | None = None
    method: str | None = None
    uri: str | None = None
    target_url: str | None = None
    error_message: str | None = None
    request_at: datetime | None = None


class LatencyTrend(StrEnum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class Stability(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ConfigStats(BaseModel):
    """
    单个供应商在最近窗口内的统计。

    没有数据时平均延迟为 None（不是 0），成功率为 100。
    """

    config_id: int
    avg_latency: int | None = Field(None, description="成功测试的平均延迟（ms）")
    min_latency: int | None = None
    max_latency: int | None = None
    success_rate: int = Field(100, ge=0, le=100, description="测试成功率（%）")
    total_tests: int = 0
    recent_trend: LatencyTrend = LatencyTrend.STABLE
    stability: Stability = Stability.EXCELLENT
    proxy_avg_latency: int | None = Field(None, description="成功代理请求的平均延迟（ms）")
    proxy_success_rate: int = Field(100, ge=0, le=100)
    proxy_total_requests: int = 0

    @classmethod
    def empty(cls, config_id: int) -> ConfigStats:
        return cls(config_id=config_id)


class MonitorOverview(BaseModel):
    online_count: int = 0
    total_count: int = 0
    avg_latency: int | None = None
    avg_success_rate: int = 100
    total_requests: int = 0


class StatsSortKey(StrEnum):
    NAME = "name"
    LATENCY = "latency"
    STABILITY = "stability"
    SUCCESS_RATE = "success_rate"


__all__ = [
    "ConfigStats",
    "ConnectivityTestRecord",
    "LatencyTrend",
    "MonitorOverview",
    "ProxiedRequestRecord",
    "Stability",
    "StatsSortKey",
]
