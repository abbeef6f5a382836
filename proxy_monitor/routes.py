from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.monitor_routes import router as monitor_router
from .logging_config import logger, setup_logging
from .redis_client import close_redis_client_for_current_loop
from .services.dashboard_orchestrator import DashboardOrchestrator
from .services.notification_sink import InMemoryNotificationSink, NotificationSink
from .services.preference_store import AutoRefreshPreferenceService, build_preference_store
from .services.remote_config_service import HttpRemoteConfigService, RemoteConfigService
from .settings import settings


def create_app(
    *,
    orchestrator: DashboardOrchestrator | None = None,
    remote: RemoteConfigService | None = None,
    sink: NotificationSink | None = None,
    preferences: AutoRefreshPreferenceService | None = None,
) -> FastAPI:
    """
    创建 FastAPI 应用。

    lifespan 对应一次“挂载”：启动时 start() 编排器（读取偏好、同步调度器状态、
    订阅切换事件、首次刷新、启动轮询），关闭时 stop() 取消所有计时器和订阅。
    测试可以直接注入 orchestrator，或只注入 remote / sink / preferences。
    """
    setup_logging()
    notification_sink = sink or InMemoryNotificationSink()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned_remote: HttpRemoteConfigService | None = None
        instance = orchestrator
        if instance is None:
            remote_service = remote
            if remote_service is None:
                owned_remote = HttpRemoteConfigService()
                remote_service = owned_remote
            instance = DashboardOrchestrator(
                remote_service,
                notification_sink,
                preferences or AutoRefreshPreferenceService(build_preference_store()),
            )

        app.state.orchestrator = instance
        app.state.notification_sink = notification_sink
        await instance.start()
        logger.info("Proxy monitor started (environment=%s)", settings.environment)
        try:
            yield
        finally:
            await instance.stop()
            if owned_remote is not None:
                await owned_remote.aclose()
            if settings.preference_backend == "redis" and preferences is None and orchestrator is None:
                await close_redis_client_for_current_loop()
            app.state.orchestrator = None

    app = FastAPI(title="Proxy Monitor", lifespan=lifespan)
    app.include_router(monitor_router)
    return app


__all__ = ["create_app"]
