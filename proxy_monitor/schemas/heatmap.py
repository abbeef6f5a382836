from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class HealthTier(StrEnum):
    NO_DATA = "no_data"
    NORMAL = "normal"
    GOOD = "good"
    WARNING = "warning"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class TierColor(StrEnum):
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"
    NONE = "none"


class SampleKind(StrEnum):
    CONNECTIVITY_TEST = "connectivity_test"
    PROXIED_REQUEST = "proxied_request"


class HealthCell(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    label: str = Field(..., description="形如 08:00 的展示标签")
    tier: HealthTier
    success_rate: float | None = None
    total_checks: int = 0
    avg_latency_ms: float | None = None


class HealthGridRow(BaseModel):
    config_id: int
    config_name: str
    group_id: int | None = None
    availability_24h: float | None = None
    availability_color: TierColor = TierColor.NONE
    avg_latency_24h: float | None = None
    latency_color: TierColor = TierColor.NONE
    cells: list[HealthCell]


class Sample(BaseModel):
    success: bool
    latency_ms: int | None = None


class SampleCell(BaseModel):
    empty: bool = True
    success: bool | None = None
    latency_ms: int | None = None
    color: str = Field(..., description="颜色档位标识，如 green-500 / neutral")


__all__ = [
    "HealthCell",
    "HealthGridRow",
    "HealthTier",
    "Sample",
    "SampleCell",
    "SampleKind",
    "TierColor",
]
