from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime

from proxy_monitor.errors import (
    InvalidHealthCheckIntervalError,
    MonitorError,
    OperationInProgressError,
    ValidationRejected,
)
from proxy_monitor.logging_config import logger
from proxy_monitor.schemas import (
    HEALTH_CHECK_INTERVALS,
    BalanceInfo,
    CommandOutcome,
    ConfigHealthSummary,
    ConfigStats,
    ConnectivityTestRecord,
    DashboardView,
    HealthCheckSchedulerStatus,
    ProviderConfig,
    ProviderGroup,
    ProviderRow,
    ProxiedRequestRecord,
    ProxyServiceStatus,
    SampleKind,
    StatsSortKey,
    SwitchEvent,
    SwitchHighlight,
    SwitchUiState,
    TestResult,
    TestStatus,
)
from proxy_monitor.services.availability import is_test_result_available
from proxy_monitor.services.event_bridge import EventBridge, SwitchSubscription
from proxy_monitor.services.heatmap_compiler import (
    compile_health_grid,
    compile_sample_grid,
    samples_from_requests,
    samples_from_tests,
)
from proxy_monitor.services.metrics_aggregator import (
    MetricsAggregator,
    sort_stats,
    summarize,
    summarize_health,
)
from proxy_monitor.services.notification_sink import NotificationSink
from proxy_monitor.services.preference_store import AutoRefreshPreferenceService
from proxy_monitor.services.priority_ordering import PriorityOrderingController
from proxy_monitor.services.remote_config_service import RemoteConfigService
from proxy_monitor.services.request_tracking import BusySet, LatestRequestGate
from proxy_monitor.services.scheduling import Debouncer, PeriodicTask, Throttler
from proxy_monitor.settings import settings

ERROR_TOAST_MS = 8000
INFO_TOAST_MS = 3000
MANUAL_REFRESH_COOLDOWN_SECONDS = 1.0

_DASHBOARD_KEY = "dashboard"
_DEV_LOG_KEY = "dev_log"
_HEALTH_KEY = "health_summaries"

_Windows = tuple[list[ConnectivityTestRecord], list[ProxiedRequestRecord]]


class DashboardOrchestrator:
    """
    组合事件桥、统计、热力图和排序控制器，负责轮询节奏和批量操作，
    对外只暴露一个一致的视图模型（`view()`）。

    约定：
    - 所有命令都不向调用方抛异常，失败统一记录日志并发出可关闭的通知；
    - 同一实体的测试/余额查询串行（busy-set），不同实体互不阻塞；
    - 刷新类请求按 key 做 last-request-wins，过期响应直接丢弃；
    - “刚切换”高亮只来自 EventBridge 的状态，编排器不自行推断。
    """

    def __init__(
        self,
        remote: RemoteConfigService,
        sink: NotificationSink,
        preferences: AutoRefreshPreferenceService,
        *,
        group_id: int | None = None,
        event_bridge: EventBridge | None = None,
        aggregator: MetricsAggregator | None = None,
        ordering: PriorityOrderingController | None = None,
        monitor_interval: float | None = None,
        dev_log_interval: float | None = None,
        switch_refresh_debounce: float | None = None,
    ) -> None:
        self._remote = remote
        self._sink = sink
        self._preferences = preferences
        self._group_id = group_id
        self._bridge = event_bridge or EventBridge(remote, sink)
        self._aggregator = aggregator or MetricsAggregator(remote)
        self._ordering = ordering or PriorityOrderingController(remote, group_id=group_id)

        self._groups: list[ProviderGroup] = []
        self._stats: dict[int, ConfigStats] = {}
        self._windows: dict[int, _Windows] = {}
        self._summaries: list[ConfigHealthSummary] = []
        self._dev_log: list[ProxiedRequestRecord] = []
        self._proxy_status: ProxyServiceStatus | None = None
        self._health_status = HealthCheckSchedulerStatus()
        self._last_tests: dict[int, TestResult] = {}
        self._balances: dict[int, BalanceInfo] = {}
        self._refreshed_at: datetime | None = None

        self._testing = BusySet("test_provider")
        self._balance_queries = BusySet("query_balance")
        self._testing_all = False
        self._gate = LatestRequestGate()
        self._subscription: SwitchSubscription | None = None
        self._started = False

        self._monitor_poller = PeriodicTask(
            monitor_interval or settings.monitor_refresh_interval_seconds,
            self.refresh,
            name="provider-monitor-refresh",
        )
        self._dev_log_poller = PeriodicTask(
            dev_log_interval or settings.dev_log_refresh_interval_seconds,
            self.refresh_dev_log,
            name="dev-log-refresh",
        )
        self._switch_refresh = Debouncer(
            settings.switch_refresh_debounce_seconds
            if switch_refresh_debounce is None
            else switch_refresh_debounce,
            self.refresh,
            name="switch-event-refresh",
        )
        self._manual_refresh = Throttler(
            MANUAL_REFRESH_COOLDOWN_SECONDS, self.refresh, name="manual-refresh"
        )

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    @property
    def subscription(self) -> SwitchSubscription | None:
        return self._subscription

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        await self._preferences.load()
        await self.sync_health_check_status()
        self._subscription = self._bridge.subscribe(self._on_switch_event)
        await self.refresh()
        await self._apply_pollers()
        logger.info(
            "Dashboard started (monitor_auto_refresh=%s, dev_log_auto_refresh=%s)",
            self._preferences.current.monitor_auto_refresh,
            self._preferences.current.dev_log_auto_refresh,
        )

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self._gate.invalidate()
        self._switch_refresh.cancel()
        self._manual_refresh.cancel()
        await self._monitor_poller.stop()
        await self._dev_log_poller.stop()
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            await subscription.close()
        logger.info("Dashboard stopped")

    async def _apply_pollers(self) -> None:
        prefs = self._preferences.current
        if self._started and prefs.monitor_auto_refresh:
            self._monitor_poller.start()
        else:
            await self._monitor_poller.stop()
        if self._started and prefs.dev_log_auto_refresh:
            self._dev_log_poller.start()
        else:
            await self._dev_log_poller.stop()

    def _on_switch_event(self, event: SwitchEvent) -> None:
        if self._started:
            self._switch_refresh()

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def _report_failure(
        self, title: str, exc: Exception, *, notification_id: str | None = None
    ) -> None:
        logger.warning("%s: %s", title, exc)
        self._sink.show(
            "error", title, str(exc), ERROR_TOAST_MS, notification_id=notification_id
        )

    def _reject(self, title: str, exc: ValidationRejected) -> CommandOutcome:
        logger.info("%s: %s", title, exc)
        self._sink.show("warning", title, str(exc), INFO_TOAST_MS)
        kind = "in_progress" if isinstance(exc, OperationInProgressError) else "validation"
        return CommandOutcome(ok=False, error=kind, message=str(exc))

    def _remote_failure(self, title: str, exc: Exception) -> CommandOutcome:
        self._report_failure(title, exc)
        return CommandOutcome(ok=False, error="remote", message=str(exc))

    # ------------------------------------------------------------------
    # refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """
        拉取供应商、分组、统计窗口、健康汇总和代理状态；过期结果直接丢弃。
        """
        ticket = self._gate.issue(_DASHBOARD_KEY)
        try:
            providers, groups = await asyncio.gather(
                self._remote.list_providers(self._group_id),
                self._remote.list_groups(),
            )
        except MonitorError as exc:
            self._report_failure(
                "Failed to refresh providers", exc, notification_id="dashboard-refresh-error"
            )
            return False

        collected = await self._aggregator.collect_with_windows(providers)
        summaries = await self._load_health_summaries(providers, collected)
        proxy_status = await self._load_proxy_status()

        if not self._gate.is_current(_DASHBOARD_KEY, ticket):
            logger.debug("Discarding stale dashboard refresh")
            return False

        self._ordering.load(providers)
        self._groups = list(groups)
        self._stats = {config_id: item[0] for config_id, item in collected.items()}
        self._windows = {config_id: (item[1], item[2]) for config_id, item in collected.items()}
        self._summaries = summaries
        if proxy_status is not None:
            self._proxy_status = proxy_status
        self._refreshed_at = datetime.now(UTC)
        return True

    def request_refresh(self) -> None:
        """手动刷新入口：节流，冷却期内的多次点击合并为一次。"""
        self._manual_refresh()

    async def _load_health_summaries(
        self,
        providers: list[ProviderConfig],
        collected: dict[int, tuple[ConfigStats, list[ConnectivityTestRecord], list[ProxiedRequestRecord]]],
    ) -> list[ConfigHealthSummary]:
        try:
            return list(await self._remote.get_health_summaries(settings.health_summary_hours))
        except MonitorError as exc:
            logger.warning("Health summaries unavailable, deriving from recent tests: %s", exc)
        today = datetime.now().astimezone().date()
        return [
            summarize_health(config, collected.get(config.id, (None, [], []))[1], day=today)
            for config in providers
        ]

    async def _load_proxy_status(self) -> ProxyServiceStatus | None:
        try:
            return await self._remote.get_proxy_status()
        except MonitorError as exc:
            logger.warning("Failed to load proxy status: %s", exc)
            return None

    async def refresh_dev_log(self) -> bool:
        ticket = self._gate.issue(_DEV_LOG_KEY)
        try:
            records = await self._remote.get_recent_proxied_requests(None, settings.dev_log_limit)
        except MonitorError as exc:
            self._report_failure("Failed to load request log", exc, notification_id="dev-log-error")
            return False
        if not self._gate.is_current(_DEV_LOG_KEY, ticket):
            return False
        self._dev_log = list(records)
        return True

    async def reload_health_summaries(self) -> bool:
        ticket = self._gate.issue(_HEALTH_KEY)
        try:
            summaries = await self._remote.get_health_summaries(settings.health_summary_hours)
        except MonitorError as exc:
            self._report_failure("Failed to load health summaries", exc)
            return False
        if not self._gate.is_current(_HEALTH_KEY, ticket):
            return False
        self._summaries = list(summaries)
        return True

    async def sync_health_check_status(self) -> HealthCheckSchedulerStatus:
        """调度器是否运行属于服务端实时状态，每次加载都重新同步。"""
        try:
            self._health_status = await self._remote.get_health_check_status()
        except MonitorError as exc:
            self._report_failure("Failed to load health check status", exc)
        return self._health_status

    # ------------------------------------------------------------------
    # auto-refresh preferences
    # ------------------------------------------------------------------

    async def _update_preferences(self, **changes: object) -> CommandOutcome | None:
        try:
            await self._preferences.update(**changes)
        except Exception as exc:
            self._report_failure("Failed to save preferences", exc)
            return CommandOutcome(ok=False, error="storage", message=str(exc))
        return None

    async def set_monitor_auto_refresh(self, enabled: bool) -> CommandOutcome:
        failure = await self._update_preferences(monitor_auto_refresh=enabled)
        if failure is not None:
            return failure
        await self._apply_pollers()
        return CommandOutcome(ok=True)

    async def set_dev_log_auto_refresh(self, enabled: bool) -> CommandOutcome:
        failure = await self._update_preferences(dev_log_auto_refresh=enabled)
        if failure is not None:
            return failure
        await self._apply_pollers()
        return CommandOutcome(ok=True)

    async def set_health_check_enabled(self, enabled: bool) -> CommandOutcome:
        interval = self._preferences.current.health_check_interval
        try:
            self._health_status = await self._remote.toggle_auto_health_check(enabled, interval)
        except MonitorError as exc:
            return self._remote_failure("Failed to toggle health check", exc)
        logger.info("Health check scheduler %s (interval=%ss)", "enabled" if enabled else "disabled", interval)
        return CommandOutcome(ok=True)

    async def set_health_check_interval(self, interval_secs: int) -> CommandOutcome:
        if interval_secs not in HEALTH_CHECK_INTERVALS:
            return self._reject(
                "Invalid health check interval",
                InvalidHealthCheckIntervalError(interval_secs, HEALTH_CHECK_INTERVALS),
            )
        failure = await self._update_preferences(health_check_interval=interval_secs)
        if failure is not None:
            return failure
        if not self._health_status.running:
            return CommandOutcome(ok=True)

        # 调度器运行中：先停再按新间隔启动
        try:
            await self._remote.toggle_auto_health_check(False, interval_secs)
            self._health_status = await self._remote.toggle_auto_health_check(True, interval_secs)
        except MonitorError as exc:
            await self.sync_health_check_status()
            return self._remote_failure("Failed to restart health check", exc)
        logger.info("Health check scheduler restarted with interval=%ss", interval_secs)
        return CommandOutcome(ok=True)

    async def run_health_check_now(self) -> CommandOutcome:
        try:
            await self._remote.run_health_check_now()
        except MonitorError as exc:
            return self._remote_failure("Health check failed", exc)
        await self.reload_health_summaries()
        return CommandOutcome(ok=True)

    # ------------------------------------------------------------------
    # single-entity operations
    # ------------------------------------------------------------------

    async def test_provider(self, config_id: int) -> TestResult | None:
        try:
            with self._testing.claim(config_id):
                ticket = self._gate.issue(("test", config_id))
                result = await self._remote.test_provider(config_id)
        except OperationInProgressError as exc:
            self._reject("Test already in progress", exc)
            return None
        except MonitorError as exc:
            self._report_failure("Connectivity test failed", exc)
            return None

        if self._gate.is_current(("test", config_id), ticket):
            self._last_tests[config_id] = result
        available = is_test_result_available(result)
        latency = f"{result.latency_ms} ms" if result.latency_ms is not None else "-"
        self._sink.show(
            "success" if available else "error",
            "Test result",
            f"{'Available' if available else 'Unavailable'}, latency: {latency}",
            INFO_TOAST_MS,
        )
        await self.refresh()
        return result

    async def query_balance(self, config_id: int) -> BalanceInfo | None:
        try:
            with self._balance_queries.claim(config_id):
                ticket = self._gate.issue(("balance", config_id))
                info = await self._remote.query_balance(config_id)
        except OperationInProgressError as exc:
            self._reject("Balance query already in progress", exc)
            return None
        except MonitorError as exc:
            self._report_failure("Balance query failed", exc)
            return None

        if self._gate.is_current(("balance", config_id), ticket):
            self._balances[config_id] = info
        await self.refresh()
        return info

    async def test_all(self, configs: Iterable[ProviderConfig] | None = None) -> CommandOutcome:
        """
        逐个（非并发）测试；单个失败只记录日志，循环结束后只刷新一次。
        """
        if self._testing_all:
            return CommandOutcome(ok=False, error="in_progress", message="test all already running")
        targets = list(configs) if configs is not None else self._ordering.providers
        if not targets:
            return CommandOutcome(ok=True, message="no providers to test")

        self._testing_all = True
        failed = 0
        try:
            for config in targets:
                try:
                    with self._testing.claim(config.id):
                        result = await self._remote.test_provider(config.id)
                    self._last_tests[config.id] = result
                    if result.status != TestStatus.SUCCESS:
                        failed += 1
                except Exception as exc:
                    failed += 1
                    logger.warning("Failed to test config %s: %s", config.id, exc)
            await self.refresh()
        finally:
            self._testing_all = False

        message = f"Tested {len(targets)} providers, {failed} failed"
        self._sink.show("info", "Test all finished", message, INFO_TOAST_MS)
        return CommandOutcome(ok=True, message=message)

    # ------------------------------------------------------------------
    # ordering & pass-through commands
    # ------------------------------------------------------------------

    async def reorder(
        self,
        config_id: int,
        *,
        target_config_id: int | None = None,
        new_sort_order: int | None = None,
    ) -> CommandOutcome:
        try:
            if target_config_id is not None:
                await self._ordering.move(config_id, target_config_id)
            elif new_sort_order is not None:
                await self._ordering.reorder(config_id, new_sort_order)
            else:
                return CommandOutcome(
                    ok=False, error="validation", message="missing reorder target"
                )
        except ValidationRejected as exc:
            return self._reject("Reorder rejected", exc)
        except MonitorError as exc:
            return self._remote_failure("Failed to reorder provider", exc)
        # 控制器已加载重排后的列表，更早发出的刷新一律作废
        self._gate.issue(_DASHBOARD_KEY)
        return CommandOutcome(ok=True)

    async def switch_provider(self, config_id: int) -> CommandOutcome:
        try:
            self._proxy_status = await self._remote.switch_provider(config_id)
        except MonitorError as exc:
            return self._remote_failure("Failed to switch provider", exc)
        await self.refresh()
        return CommandOutcome(ok=True)

    async def toggle_auto_switch(self, group_id: int, enabled: bool) -> CommandOutcome:
        try:
            await self._remote.toggle_auto_switch(group_id, enabled)
        except MonitorError as exc:
            return self._remote_failure("Failed to toggle auto-switch", exc)
        await self.refresh()
        return CommandOutcome(ok=True)

    # ------------------------------------------------------------------
    # view model
    # ------------------------------------------------------------------

    def is_testing(self, config_id: int) -> bool:
        return config_id in self._testing

    def is_querying_balance(self, config_id: int) -> bool:
        return config_id in self._balance_queries

    @property
    def switch_state(self) -> SwitchUiState:
        if self._subscription is None:
            return SwitchUiState()
        return self._subscription.state

    @staticmethod
    def _highlight(config_id: int, state: SwitchUiState) -> SwitchHighlight:
        if not state.just_switched:
            return "none"
        if config_id == state.target_config_id:
            return "target"
        if config_id == state.source_config_id:
            return "source"
        return "none"

    def view(
        self,
        *,
        group_id: int | None = None,
        sort_by: StatsSortKey | str | None = None,
    ) -> DashboardView:
        providers = self._ordering.providers
        if group_id is not None:
            providers = [c for c in providers if c.group_id == group_id]

        entries = [(c, self._stats.get(c.id) or ConfigStats.empty(c.id)) for c in providers]
        if sort_by is not None:
            entries = sort_stats(entries, sort_by)

        state = self.switch_state
        rows: list[ProviderRow] = []
        for config, stats in entries:
            tests, requests = self._windows.get(config.id, ([], []))
            last_test = self._last_tests.get(config.id)
            rows.append(
                ProviderRow(
                    config=config,
                    stats=stats,
                    highlight=self._highlight(config.id, state),
                    test_grid=compile_sample_grid(
                        samples_from_tests(tests), SampleKind.CONNECTIVITY_TEST
                    ),
                    request_grid=compile_sample_grid(
                        samples_from_requests(requests), SampleKind.PROXIED_REQUEST
                    ),
                    last_test=last_test,
                    last_test_available=(
                        is_test_result_available(last_test) if last_test is not None else None
                    ),
                    balance=self._balances.get(config.id),
                )
            )

        return DashboardView(
            providers=rows,
            groups=self._groups,
            overview=summarize(providers, self._stats),
            health_summaries=self._summaries,
            health_grid=compile_health_grid(providers, self._summaries),
            dev_log=self._dev_log,
            switch_state=state,
            proxy_status=self._proxy_status,
            health_check_status=self._health_status,
            preferences=self._preferences.current,
            testing_ids=self._testing.snapshot(),
            balance_query_ids=self._balance_queries.snapshot(),
            testing_all=self._testing_all,
            refreshed_at=self._refreshed_at,
        )


__all__ = ["DashboardOrchestrator", "ERROR_TOAST_MS", "INFO_TOAST_MS"]
