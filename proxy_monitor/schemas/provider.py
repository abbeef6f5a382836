from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ProviderConfig(BaseModel):
    """
    一个上游供应商配置的只读快照。

    本地只会通过两种方式“改变”它：刷新（用服务端返回值整体覆盖）
    和重排（服务端修改 sort_order 后整体重新拉取）。
    """

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., description="配置 ID")
    name: str = Field("", description="配置名称")
    group_id: int | None = Field(None, description="所属分组 ID，None 表示未分组")
    sort_order: int = Field(0, description="组内排序，越小越优先被自动切换选中")
    is_available: bool = Field(True, description="服务端判定的可用状态")
    is_enabled: bool = Field(True, description="是否参与自动切换")
    last_latency_ms: int | None = Field(None, description="最近一次测试延迟")
    last_test_at: datetime | None = Field(None, description="最近一次测试时间")
    last_balance: float | None = Field(None, description="最近一次查询到的余额")
    balance_currency: str | None = Field(None, description="余额币种")
    balance_query_enabled: bool = Field(False, description="是否支持余额查询")


class ProviderGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    description: str | None = None
    auto_switch_enabled: bool = Field(False, description="是否启用自动切换")
    latency_threshold_ms: int = Field(30000, description="触发高延迟切换的阈值")


class TestStatus(StrEnum):
    __test__ = False

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class TestResult(BaseModel):
    """
    单次连通性测试的结果。

    `error_kind` 是结构化错误分类；老版本后端只返回人类可读的
    `error_message`，此时可用性判断会退回到关键字匹配。
    """

    __test__ = False

    model_config = ConfigDict(extra="ignore")

    config_id: int
    status: TestStatus
    latency_ms: int | None = None
    error_message: str | None = None
    error_kind: str | None = None
    test_at: datetime | None = None


class BalanceStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class BalanceInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    config_id: int
    config_name: str = ""
    status: BalanceStatus
    balance: float | None = None
    currency: str | None = None
    error_message: str | None = None
    checked_at: datetime | None = None


class ProxyServiceState(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class ProxyServiceStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: ProxyServiceState = ProxyServiceState.STOPPED
    listen_host: str = "127.0.0.1"
    listen_port: int = 25341
    active_group_id: int | None = None
    active_group_name: str | None = None
    active_config_id: int | None = None
    active_config_name: str | None = None
    error_message: str | None = None


class HealthCheckSchedulerStatus(BaseModel):
    """
    服务端健康检查调度器的实时状态；只从服务端同步，从不本地持久化。
    """

    running: bool = False
    interval_secs: int = 300


__all__ = [
    "BalanceInfo",
    "BalanceStatus",
    "HealthCheckSchedulerStatus",
    "ProviderConfig",
    "ProviderGroup",
    "ProxyServiceState",
    "ProxyServiceStatus",
    "TestResult",
    "TestStatus",
]
