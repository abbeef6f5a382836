from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from proxy_monitor.errors import RemoteServiceError
from proxy_monitor.logging_config import logger
from proxy_monitor.schemas import SwitchEvent, SwitchReason, SwitchUiState
from proxy_monitor.services.notification_sink import NotificationSink
from proxy_monitor.services.remote_config_service import RemoteConfigService
from proxy_monitor.services.scheduling import Debouncer
from proxy_monitor.settings import settings

SWITCH_TOAST_ID = "auto-switch-toast"
SWITCH_TOAST_TITLE = "Auto-switch completed"
UNKNOWN_REASON_LABEL = "Unknown reason"

REASON_LABELS: dict[str, str] = {
    SwitchReason.CONNECTION_FAILED: "Connection failed",
    SwitchReason.TIMEOUT: "Request timeout",
    SwitchReason.QUOTA_EXCEEDED: "Quota exceeded",
    SwitchReason.HIGH_LATENCY: "High latency",
    SwitchReason.MANUAL: "Manual switch",
    SwitchReason.RETRY_FAILED: "Retry failed",
    SwitchReason.UNRECOVERABLE_ERROR: "Unrecoverable error",
    SwitchReason.RATE_LIMIT_EXCEEDED: "Rate limit exceeded",
}

# 带 event_id 的事件在这个窗口内只展示一次
_SEEN_EVENT_IDS_LIMIT = 64

SwitchCallback = Callable[[SwitchEvent], None]


def reason_label(reason: str | None) -> str:
    if not reason:
        return UNKNOWN_REASON_LABEL
    return REASON_LABELS.get(reason, UNKNOWN_REASON_LABEL)


@dataclass(slots=True, frozen=True)
class LatencyDelta:
    before_ms: int
    after_ms: int

    @property
    def delta_ms(self) -> int:
        return self.after_ms - self.before_ms

    @property
    def improved(self) -> bool:
        return self.delta_ms < 0

    @property
    def magnitude_ms(self) -> int:
        return abs(self.delta_ms)

    def signed(self) -> str:
        return f"{self.delta_ms:+d}ms"

    def describe(self) -> str:
        verb = "improved" if self.improved else "increased"
        return f"{verb} by {self.magnitude_ms}ms"


def latency_delta(before_ms: int | None, after_ms: int | None) -> LatencyDelta | None:
    if before_ms is None or after_ms is None:
        return None
    return LatencyDelta(before_ms=before_ms, after_ms=after_ms)


def format_switch_message(event: SwitchEvent) -> tuple[str, str]:
    source = event.source_config_name or "-"
    target = event.target_config_name or str(event.target_config_id)
    lines = [f"[{reason_label(event.reason)}] {source} → {target}"]
    delta = latency_delta(event.latency_before_ms, event.latency_after_ms)
    if delta is not None:
        lines.append(
            f"Latency: {delta.before_ms}ms → {delta.after_ms}ms "
            f"({delta.signed()}), {delta.describe()}"
        )
    return SWITCH_TOAST_TITLE, "\n".join(lines)


class SwitchSubscription:
    """
    一次挂载对应的自动切换事件订阅。

    - `state` 始终是最新一次切换的投影，新事件直接覆盖旧状态；
    - 衰减计时器在每次事件到达时重新计时，只有最后一个事件的计时生效；
    - `close()` 幂等，关闭后任何迟到的事件都不会再改动状态或触发回调；
    - 通道失败只记录一次日志，不在内部重连。
    """

    def __init__(
        self,
        source: Callable[[], AsyncIterator[SwitchEvent]],
        sink: NotificationSink,
        *,
        on_event: SwitchCallback | None = None,
        decay_seconds: float,
        toast_duration_ms: int,
    ) -> None:
        self._source = source
        self._sink = sink
        self._on_event = on_event
        self._toast_duration_ms = toast_duration_ms
        self._state = SwitchUiState()
        self._decay = Debouncer(decay_seconds, self._reset_state, name="switch-state-decay")
        self._seen_ids: OrderedDict[int | str, None] = OrderedDict()
        self._task: asyncio.Task[None] | None = None
        self.closed = False
        self.failed = False
        self.error: Exception | None = None

    @property
    def state(self) -> SwitchUiState:
        return self._state

    def start(self) -> None:
        if self._task is not None or self.closed:
            return
        self._task = asyncio.create_task(self._run(), name="switch-event-subscription")

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        try:
            async for event in self._source():
                if self.closed:
                    break
                self.deliver(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._mark_failed(exc)
            return
        if not self.closed:
            self._mark_failed(RemoteServiceError("subscribe_switch_events", "channel closed"))

    def _mark_failed(self, exc: Exception) -> None:
        if self.closed or self.failed:
            return
        self.failed = True
        self.error = exc
        logger.error("Auto-switch event subscription failed: %s", exc)

    def _is_duplicate(self, event: SwitchEvent) -> bool:
        if event.event_id is not None:
            if event.event_id in self._seen_ids:
                return True
            self._seen_ids[event.event_id] = None
            while len(self._seen_ids) > _SEEN_EVENT_IDS_LIMIT:
                self._seen_ids.popitem(last=False)
            return False
        current = self._state.event
        return (
            self._state.just_switched
            and current is not None
            and current.dedup_key() == event.dedup_key()
        )

    def deliver(self, event: SwitchEvent) -> bool:
        """
        处理一条切换事件；被忽略（已关闭或重复）时返回 False。
        """
        if self.closed:
            return False
        if self._is_duplicate(event):
            logger.debug(
                "Ignoring duplicate auto-switch event group=%s target=%s",
                event.group_id,
                event.target_config_id,
            )
            return False

        logger.info(
            "Auto-switch triggered group=%s %s -> %s reason=%s",
            event.group_id,
            event.source_config_id,
            event.target_config_id,
            event.reason,
        )
        self._state = SwitchUiState.from_event(event)

        if self._on_event is not None:
            try:
                self._on_event(event)
            except Exception:
                logger.exception("Auto-switch callback failed")

        title, body = format_switch_message(event)
        self._sink.dismiss(SWITCH_TOAST_ID)
        self._sink.show(
            "warning",
            title,
            body,
            self._toast_duration_ms,
            notification_id=SWITCH_TOAST_ID,
        )

        self._decay()
        return True

    def _reset_state(self) -> None:
        if not self.closed:
            self._state = SwitchUiState()

    def clear(self) -> None:
        self._decay.cancel()
        self._state = SwitchUiState()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._decay.cancel()
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass


class EventBridge:
    """
    把服务端推送的自动切换事件转换成短暂的 UI 状态和一条去重后的通知。
    """

    def __init__(
        self,
        remote: RemoteConfigService,
        sink: NotificationSink,
        *,
        decay_seconds: float | None = None,
        toast_duration_ms: int | None = None,
    ) -> None:
        self._remote = remote
        self._sink = sink
        self._decay_seconds = (
            settings.switch_state_decay_seconds if decay_seconds is None else decay_seconds
        )
        self._toast_duration_ms = (
            settings.switch_toast_duration_ms if toast_duration_ms is None else toast_duration_ms
        )

    def subscribe(self, on_event: SwitchCallback | None = None) -> SwitchSubscription:
        subscription = SwitchSubscription(
            self._remote.subscribe_switch_events,
            self._sink,
            on_event=on_event,
            decay_seconds=self._decay_seconds,
            toast_duration_ms=self._toast_duration_ms,
        )
        subscription.start()
        return subscription


__all__ = [
    "EventBridge",
    "LatencyDelta",
    "REASON_LABELS",
    "SWITCH_TOAST_ID",
    "SwitchSubscription",
    "UNKNOWN_REASON_LABEL",
    "format_switch_message",
    "latency_delta",
    "reason_label",
]
