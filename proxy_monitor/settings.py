from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    监控客户端配置。

    所有字段都可以通过 `PROXY_MONITOR_` 前缀的环境变量或 .env 文件覆盖，
    例如 `PROXY_MONITOR_REMOTE_BASE_URL=http://127.0.0.1:8765`。
    """

    model_config = SettingsConfigDict(
        env_prefix="PROXY_MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field("development", description="运行环境：development/production/test")
    log_level: str = Field("INFO", description="日志级别")
    log_format: str = Field(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s",
        description="stdlib logging 格式",
    )

    # 远端配置服务（代理管理后端）
    remote_base_url: str = Field("http://127.0.0.1:8765", description="代理管理后端 HTTP 地址")
    remote_api_token: str = Field("", description="访问后端时附带的 Bearer Token，可为空")
    remote_timeout_seconds: float = Field(30.0, description="普通请求超时时间（秒）")
    remote_events_path: str = Field(
        "/api/events/auto-switch", description="自动切换事件 SSE 订阅路径"
    )

    # 偏好持久化
    redis_url: str = Field("redis://localhost:6379/0", description="Redis 连接地址")
    preference_backend: Literal["redis", "file"] = Field(
        "redis", description="自动刷新偏好的持久化后端"
    )
    preference_file_path: str = Field(
        ".proxy-monitor/auto-refresh-storage.json",
        description="preference_backend=file 时使用的 JSON 文件路径",
    )
    preference_namespace: str = Field("auto-refresh-storage", description="偏好存储命名空间")

    # 刷新节奏
    monitor_refresh_interval_seconds: float = Field(30.0, description="供应商监控视图轮询间隔")
    dev_log_refresh_interval_seconds: float = Field(3.0, description="开发日志视图轮询间隔")
    switch_state_decay_seconds: float = Field(5.0, description="“刚切换”高亮持续时间")
    switch_toast_duration_ms: int = Field(6000, description="切换通知的展示时长（毫秒）")
    switch_refresh_debounce_seconds: float = Field(
        0.5, description="收到切换事件后刷新数据的防抖窗口"
    )

    # 统计窗口
    recent_tests_limit: int = Field(50, description="每个供应商读取的最近测试记录数")
    recent_requests_limit: int = Field(50, description="每个供应商读取的最近代理请求记录数")
    dev_log_limit: int = Field(100, description="开发日志视图读取的最近请求数")
    sample_grid_size: int = Field(50, description="最近活动网格的固定格子数")
    health_summary_hours: int = Field(24, description="健康汇总的时间窗口（小时）")


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


__all__ = ["Settings", "get_settings", "settings"]
