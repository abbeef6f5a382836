from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from .health import ConfigHealthSummary
from .heatmap import HealthGridRow, SampleCell
from .metrics import ConfigStats, MonitorOverview, ProxiedRequestRecord
from .preferences import AutoRefreshPreferences
from .provider import (
    BalanceInfo,
    HealthCheckSchedulerStatus,
    ProviderConfig,
    ProviderGroup,
    ProxyServiceStatus,
    TestResult,
)
from .switch import SwitchUiState

SwitchHighlight = Literal["none", "source", "target"]


class ProviderRow(BaseModel):
    config: ProviderConfig
    stats: ConfigStats
    highlight: SwitchHighlight = "none"
    test_grid: list[SampleCell] = Field(default_factory=list)
    request_grid: list[SampleCell] = Field(default_factory=list)
    last_test: TestResult | None = None
    last_test_available: bool | None = Field(None, description="最近一次手动测试后是否仍可用")
    balance: BalanceInfo | None = None


class DashboardView(BaseModel):
    """
    编排器对外暴露的完整视图模型。
    """

    providers: list[ProviderRow] = Field(default_factory=list)
    groups: list[ProviderGroup] = Field(default_factory=list)
    overview: MonitorOverview = Field(default_factory=MonitorOverview)
    health_summaries: list[ConfigHealthSummary] = Field(default_factory=list)
    health_grid: list[HealthGridRow] = Field(default_factory=list)
    dev_log: list[ProxiedRequestRecord] = Field(default_factory=list)
    switch_state: SwitchUiState = Field(default_factory=SwitchUiState)
    proxy_status: ProxyServiceStatus | None = None
    health_check_status: HealthCheckSchedulerStatus = Field(
        default_factory=HealthCheckSchedulerStatus
    )
    preferences: AutoRefreshPreferences = Field(default_factory=AutoRefreshPreferences)
    testing_ids: list[int] = Field(default_factory=list)
    balance_query_ids: list[int] = Field(default_factory=list)
    testing_all: bool = False
    refreshed_at: datetime | None = None


class CommandOutcome(BaseModel):
    """
    编排器命令的执行结果；命令本身从不向调用方抛出异常。
    """

    ok: bool
    error: Literal["validation", "in_progress", "remote", "storage"] | None = None
    message: str | None = None


class ToggleRequest(BaseModel):
    enabled: bool


class HealthCheckIntervalRequest(BaseModel):
    interval_secs: int = Field(..., gt=0)


class ReorderRequest(BaseModel):
    """
    拖拽重排：`target_config_id` 为被放置位置上的供应商；
    也可以直接给出 `new_sort_order`。
    """

    config_id: int
    target_config_id: int | None = None
    new_sort_order: int | None = None

    @model_validator(mode="after")
    def validate_target(self) -> ReorderRequest:
        if (self.target_config_id is None) == (self.new_sort_order is None):
            raise ValueError("exactly one of target_config_id and new_sort_order is required")
        return self


__all__ = [
    "CommandOutcome",
    "DashboardView",
    "HealthCheckIntervalRequest",
    "ProviderRow",
    "ReorderRequest",
    "SwitchHighlight",
    "ToggleRequest",
]
