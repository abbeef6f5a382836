from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .metrics import ConnectivityTestRecord


class HourlyHealthStat(BaseModel):
    """
    某个供应商在某个整点内的健康检查聚合（由服务端计算）。

    服务端返回的是 `hour="YYYY-MM-DD HH:00:00"`，这里统一折算成当天的
    0-23 小时槽位 `hour_bucket`。
    """

    model_config = ConfigDict(extra="ignore")

    hour_bucket: int = Field(..., ge=0, le=23, description="当天小时槽位（本地时间）")
    hour: str | None = Field(None, description="服务端原始小时字符串")
    total_checks: int = Field(0, ge=0)
    success_count: int = Field(0, ge=0)
    failed_count: int = Field(0, ge=0)
    timeout_count: int = Field(0, ge=0)
    avg_latency_ms: float | None = None
    min_latency_ms: int | None = None
    max_latency_ms: int | None = None

    @model_validator(mode="before")
    @classmethod
    def derive_hour_bucket(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("hour_bucket") is not None:
            return data
        raw = data.get("hour")
        if not raw:
            return data
        try:
            parsed = datetime.fromisoformat(str(raw).strip())
        except ValueError as exc:
            raise ValueError(f"cannot parse hour field: {raw!r}") from exc
        return {**data, "hour_bucket": parsed.hour}


class ConfigHealthSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    config_id: int
    config_name: str = ""
    availability_24h: float = Field(100.0, ge=0, le=100, description="当天可用率（%）")
    avg_latency_24h: float | None = None
    hourly_stats: list[HourlyHealthStat] = Field(default_factory=list)
    last_check: ConnectivityTestRecord | None = None

    @model_validator(mode="before")
    @classmethod
    def adapt_last_check(cls, data: Any) -> Any:
        # 健康检查记录用 check_at 表示时间，统一映射到 test_at
        if isinstance(data, dict) and isinstance(data.get("last_check"), dict):
            last = dict(data["last_check"])
            if "test_at" not in last and "check_at" in last:
                last["test_at"] = last.pop("check_at")
            last.setdefault("config_id", data.get("config_id"))
            return {**data, "last_check": last}
        return data


__all__ = ["ConfigHealthSummary", "HourlyHealthStat"]
