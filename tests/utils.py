from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from proxy_monitor.errors import RemoteServiceError
from proxy_monitor.schemas import (
    BalanceInfo,
    BalanceStatus,
    ConfigHealthSummary,
    ConnectivityTestRecord,
    HealthCheckSchedulerStatus,
    ProviderConfig,
    ProviderGroup,
    ProxiedRequestRecord,
    ProxyServiceState,
    ProxyServiceStatus,
    SwitchEvent,
    TestResult,
    TestStatus,
)


class InMemoryRedis:
    """
    Minimal async Redis stand-in covering the commands the preference store uses.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._data[key] = value
        self.ttls[key] = ex

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


class RecordingNotificationSink:
    def __init__(self) -> None:
        self.shown: list[dict[str, Any]] = []
        self.dismissed: list[str] = []
        self.events: list[tuple[str, str]] = []
        self._counter = 0

    def show(
        self,
        level: str,
        title: str,
        body: str = "",
        duration_ms: int | None = None,
        *,
        notification_id: str | None = None,
    ) -> str:
        self._counter += 1
        notification_id = notification_id or f"n{self._counter}"
        self.shown.append(
            {
                "id": notification_id,
                "level": level,
                "title": title,
                "body": body,
                "duration_ms": duration_ms,
            }
        )
        self.events.append(("show", notification_id))
        return notification_id

    def dismiss(self, notification_id: str) -> None:
        self.dismissed.append(notification_id)
        self.events.append(("dismiss", notification_id))

    def titles(self) -> list[str]:
        return [item["title"] for item in self.shown]


_STREAM_END = object()


class FakeRemoteConfigService:
    """
    In-memory `RemoteConfigService`.

    - `failures[method]` makes that method raise the given exception;
    - `failing_tests` / `failing_requests` make the per-config window fetches fail;
    - `hold[method]` is an asyncio.Event awaited after the response is computed,
      so tests can keep a call in flight and resolve it later;
    - switch events are pushed with `push_event()` and the channel is closed
      with `end_stream()` / `fail_stream()`.
    """

    def __init__(self) -> None:
        self.providers: list[ProviderConfig] = []
        self.groups: list[ProviderGroup] = []
        self.tests: dict[int, list[ConnectivityTestRecord]] = {}
        self.requests: dict[int | None, list[ProxiedRequestRecord]] = {}
        self.summaries: list[ConfigHealthSummary] = []
        self.test_results: dict[int, TestResult | Exception] = {}
        self.health_status = HealthCheckSchedulerStatus()
        self.proxy_status = ProxyServiceStatus(status=ProxyServiceState.RUNNING)

        self.failures: dict[str, Exception] = {}
        self.failing_tests: set[int] = set()
        self.failing_requests: set[int] = set()
        self.hold: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._events: asyncio.Queue[Any] | None = None

    # -- helpers ---------------------------------------------------------

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    async def _maybe_hold(self, name: str) -> None:
        event = self.hold.get(name)
        if event is not None:
            await event.wait()

    def count(self, name: str) -> int:
        return sum(1 for call_name, _ in self.calls if call_name == name)

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call_name, args in self.calls if call_name == name]

    def _queue(self) -> asyncio.Queue[Any]:
        if self._events is None:
            self._events = asyncio.Queue()
        return self._events

    def push_event(self, event: SwitchEvent) -> None:
        self._queue().put_nowait(event)

    def end_stream(self) -> None:
        self._queue().put_nowait(_STREAM_END)

    def fail_stream(self, exc: Exception) -> None:
        self._queue().put_nowait(exc)

    # -- RemoteConfigService ---------------------------------------------

    async def list_providers(self, group_id: int | None = None) -> list[ProviderConfig]:
        self._record("list_providers", group_id)
        result = [
            p.model_copy() for p in self.providers if group_id is None or p.group_id == group_id
        ]
        await self._maybe_hold("list_providers")
        return result

    async def list_groups(self) -> list[ProviderGroup]:
        self._record("list_groups")
        return list(self.groups)

    async def test_provider(self, config_id: int) -> TestResult:
        self._record("test_provider", config_id)
        result = self.test_results.get(
            config_id,
            TestResult(config_id=config_id, status=TestStatus.SUCCESS, latency_ms=120),
        )
        await self._maybe_hold(f"test_provider:{config_id}")
        if isinstance(result, Exception):
            raise result
        return result

    async def query_balance(self, config_id: int) -> BalanceInfo:
        self._record("query_balance", config_id)
        await self._maybe_hold(f"query_balance:{config_id}")
        return BalanceInfo(
            config_id=config_id, status=BalanceStatus.SUCCESS, balance=12.5, currency="USD"
        )

    async def get_recent_tests(self, config_id: int, limit: int) -> list[ConnectivityTestRecord]:
        self._record("get_recent_tests", config_id, limit)
        if config_id in self.failing_tests:
            raise RemoteServiceError("get_recent_tests", "boom")
        return list(self.tests.get(config_id, []))[:limit]

    async def get_recent_proxied_requests(
        self, config_id: int | None, limit: int
    ) -> list[ProxiedRequestRecord]:
        self._record("get_recent_proxied_requests", config_id, limit)
        if config_id is not None and config_id in self.failing_requests:
            raise RemoteServiceError("get_recent_proxied_requests", "boom")
        return list(self.requests.get(config_id, []))[:limit]

    async def get_health_summaries(self, hours: int) -> list[ConfigHealthSummary]:
        self._record("get_health_summaries", hours)
        return list(self.summaries)

    async def run_health_check_now(self) -> None:
        self._record("run_health_check_now")

    async def toggle_auto_health_check(
        self, enabled: bool, interval_secs: int
    ) -> HealthCheckSchedulerStatus:
        self._record("toggle_auto_health_check", enabled, interval_secs)
        self.health_status = HealthCheckSchedulerStatus(
            running=enabled, interval_secs=interval_secs
        )
        return self.health_status

    async def get_health_check_status(self) -> HealthCheckSchedulerStatus:
        self._record("get_health_check_status")
        return self.health_status

    async def reorder_provider(self, config_id: int, new_sort_order: int) -> None:
        """
        Mimics the backend: the dragged provider takes the slot and its
        siblings are renumbered so that the set of sort orders is preserved.
        """
        self._record("reorder_provider", config_id, new_sort_order)
        dragged = next(p for p in self.providers if p.id == config_id)
        siblings = sorted(
            (p for p in self.providers if p.group_id == dragged.group_id),
            key=lambda p: p.sort_order,
        )
        slots = [p.sort_order for p in siblings]
        rest = [p for p in siblings if p.id != config_id]
        index = next(
            (i for i, p in enumerate(rest) if p.sort_order >= new_sort_order), len(rest)
        )
        rest.insert(index, dragged)
        renumbered = {p.id: slot for p, slot in zip(rest, slots)}
        self.providers = [
            p.model_copy(update={"sort_order": renumbered[p.id]}) if p.id in renumbered else p
            for p in self.providers
        ]

    async def switch_provider(self, config_id: int) -> ProxyServiceStatus:
        self._record("switch_provider", config_id)
        self.proxy_status = self.proxy_status.model_copy(update={"active_config_id": config_id})
        return self.proxy_status

    async def get_proxy_status(self) -> ProxyServiceStatus:
        self._record("get_proxy_status")
        return self.proxy_status

    async def toggle_auto_switch(self, group_id: int, enabled: bool) -> None:
        self._record("toggle_auto_switch", group_id, enabled)
        self.groups = [
            g.model_copy(update={"auto_switch_enabled": enabled}) if g.id == group_id else g
            for g in self.groups
        ]

    async def subscribe_switch_events(self) -> AsyncIterator[SwitchEvent]:
        self._record("subscribe_switch_events")
        queue = self._queue()
        while True:
            item = await queue.get()
            if item is _STREAM_END:
                return
            if isinstance(item, Exception):
                raise item
            yield item


def make_config(
    config_id: int,
    *,
    group_id: int | None = 1,
    sort_order: int = 0,
    name: str | None = None,
    is_available: bool = True,
) -> ProviderConfig:
    return ProviderConfig(
        id=config_id,
        name=name or f"provider-{config_id}",
        group_id=group_id,
        sort_order=sort_order,
        is_available=is_available,
    )


def make_test_record(
    config_id: int,
    *,
    status: TestStatus = TestStatus.SUCCESS,
    latency_ms: int | None = 100,
    test_at: datetime | None = None,
    error_message: str | None = None,
) -> ConnectivityTestRecord:
    return ConnectivityTestRecord(
        config_id=config_id,
        status=status,
        latency_ms=latency_ms,
        test_at=test_at,
        error_message=error_message,
    )


def make_request_record(
    config_id: int | None, *, is_success: bool = True, latency_ms: int | None = 300
) -> ProxiedRequestRecord:
    return ProxiedRequestRecord(config_id=config_id, is_success=is_success, latency_ms=latency_ms)


def make_event(
    *,
    event_id: int | str | None = None,
    group_id: int = 1,
    source_config_id: int | None = 1,
    target_config_id: int = 2,
    reason: str = "high_latency",
    latency_before_ms: int | None = 5000,
    latency_after_ms: int | None = 1956,
) -> SwitchEvent:
    return SwitchEvent(
        event_id=event_id,
        group_id=group_id,
        group_name="default",
        source_config_id=source_config_id,
        source_config_name=f"provider-{source_config_id}" if source_config_id else None,
        target_config_id=target_config_id,
        target_config_name=f"provider-{target_config_id}",
        reason=reason,
        latency_before_ms=latency_before_ms,
        latency_after_ms=latency_after_ms,
    )


async def wait_until(predicate, *, timeout: float = 1.0, interval: float = 0.01) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


__all__ = [
    "FakeRemoteConfigService",
    "InMemoryRedis",
    "RecordingNotificationSink",
    "make_config",
    "make_event",
    "make_request_record",
    "make_test_record",
    "wait_until",
]
