from __future__ import annotations

import asyncio
import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date

from proxy_monitor.logging_config import logger
from proxy_monitor.schemas import (
    ConfigHealthSummary,
    ConfigStats,
    ConnectivityTestRecord,
    HourlyHealthStat,
    LatencyTrend,
    MonitorOverview,
    ProviderConfig,
    ProxiedRequestRecord,
    Stability,
    StatsSortKey,
    TestStatus,
)
from proxy_monitor.services.remote_config_service import RemoteConfigService
from proxy_monitor.settings import settings

TREND_WINDOW = 5
TREND_MIN_SAMPLES = TREND_WINDOW + 1
TREND_THRESHOLD_PERCENT = 15.0

_STABILITY_RANK = {
    Stability.EXCELLENT: 0,
    Stability.GOOD: 1,
    Stability.FAIR: 2,
    Stability.POOR: 3,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def success_rate(successes: int, total: int) -> int:
    """
    成功率百分比（四舍五入）。没有任何记录时视为 100：缺少数据不代表失败。
    """
    if total <= 0:
        return 100
    return round_half_up(successes / total * 100)


def latency_trend(latencies: Sequence[int]) -> LatencyTrend:
    """
    比较最近 5 次与之前 5 次成功延迟的均值；输入按时间倒序（最新在前）。
    """
    if len(latencies) < TREND_MIN_SAMPLES:
        return LatencyTrend.STABLE
    recent = _mean(latencies[:TREND_WINDOW])
    older = _mean(latencies[TREND_WINDOW : TREND_WINDOW * 2])
    if recent is None or not older:
        return LatencyTrend.STABLE
    diff = (recent - older) / older * 100
    if diff > TREND_THRESHOLD_PERCENT:
        return LatencyTrend.UP
    if diff < -TREND_THRESHOLD_PERCENT:
        return LatencyTrend.DOWN
    return LatencyTrend.STABLE


def stability_grade(rate: int, avg_latency: int | None) -> Stability:
    latency = avg_latency or 0
    if rate < 50 or latency > 2000:
        return Stability.POOR
    if rate < 80 or latency > 1000:
        return Stability.FAIR
    if rate < 95 or latency > 500:
        return Stability.GOOD
    return Stability.EXCELLENT


def compute_stats(
    config_id: int,
    tests: Sequence[ConnectivityTestRecord],
    requests: Sequence[ProxiedRequestRecord],
) -> ConfigStats:
    succeeded = [t for t in tests if t.status == TestStatus.SUCCESS]
    latencies = [t.latency_ms for t in succeeded if t.latency_ms is not None]
    avg = _mean(latencies)
    avg_latency = round_half_up(avg) if avg is not None else None
    rate = success_rate(len(succeeded), len(tests))

    ok_requests = [r for r in requests if r.is_success]
    proxy_latencies = [r.latency_ms for r in ok_requests if r.latency_ms is not None]
    proxy_avg = _mean(proxy_latencies)

    return ConfigStats(
        config_id=config_id,
        avg_latency=avg_latency,
        min_latency=min(latencies) if latencies else None,
        max_latency=max(latencies) if latencies else None,
        success_rate=rate,
        total_tests=len(tests),
        recent_trend=latency_trend(latencies),
        stability=stability_grade(rate, avg_latency),
        proxy_avg_latency=round_half_up(proxy_avg) if proxy_avg is not None else None,
        proxy_success_rate=success_rate(len(ok_requests), len(requests)),
        proxy_total_requests=len(requests),
    )


def summarize(
    configs: Iterable[ProviderConfig], stats: dict[int, ConfigStats]
) -> MonitorOverview:
    configs = list(configs)
    per_provider = [stats.get(c.id) or ConfigStats.empty(c.id) for c in configs]
    averages = [s.avg_latency for s in per_provider if s.avg_latency is not None]
    overall_avg = _mean(averages)
    overall_rate = _mean([s.success_rate for s in per_provider])
    return MonitorOverview(
        online_count=sum(1 for c in configs if c.is_available),
        total_count=len(configs),
        avg_latency=round_half_up(overall_avg) if overall_avg is not None else None,
        avg_success_rate=round_half_up(overall_rate) if overall_rate is not None else 100,
        total_requests=sum(s.proxy_total_requests for s in per_provider),
    )


def sort_stats(
    entries: Iterable[tuple[ProviderConfig, ConfigStats]],
    by: StatsSortKey | str = StatsSortKey.LATENCY,
) -> list[tuple[ProviderConfig, ConfigStats]]:
    key = StatsSortKey(by)
    items = list(entries)
    if key == StatsSortKey.NAME:
        return sorted(items, key=lambda e: e[0].name.casefold())
    if key == StatsSortKey.LATENCY:
        return sorted(
            items,
            key=lambda e: (e[1].avg_latency is None, e[1].avg_latency or 0),
        )
    if key == StatsSortKey.STABILITY:
        return sorted(items, key=lambda e: _STABILITY_RANK[e[1].stability])
    return sorted(items, key=lambda e: -e[1].success_rate)


def build_hourly_stats(
    tests: Iterable[ConnectivityTestRecord], *, day: date | None = None
) -> list[HourlyHealthStat]:
    """
    按本地小时把测试记录分桶；`day` 指定时只统计当天的记录。
    没有 `test_at` 的记录无法定位到小时，直接跳过。
    """
    buckets: dict[int, list[ConnectivityTestRecord]] = defaultdict(list)
    for record in tests:
        if record.test_at is None:
            continue
        local = record.test_at.astimezone() if record.test_at.tzinfo else record.test_at
        if day is not None and local.date() != day:
            continue
        buckets[local.hour].append(record)

    stats: list[HourlyHealthStat] = []
    for hour in sorted(buckets):
        records = buckets[hour]
        latencies = [
            r.latency_ms
            for r in records
            if r.status == TestStatus.SUCCESS and r.latency_ms is not None
        ]
        stats.append(
            HourlyHealthStat(
                hour_bucket=hour,
                total_checks=len(records),
                success_count=sum(1 for r in records if r.status == TestStatus.SUCCESS),
                failed_count=sum(1 for r in records if r.status == TestStatus.FAILED),
                timeout_count=sum(1 for r in records if r.status == TestStatus.TIMEOUT),
                avg_latency_ms=_mean(latencies),
                min_latency_ms=min(latencies) if latencies else None,
                max_latency_ms=max(latencies) if latencies else None,
            )
        )
    return stats


def summarize_health(
    config: ProviderConfig, tests: Iterable[ConnectivityTestRecord], *, day: date | None = None
) -> ConfigHealthSummary:
    """
    服务端健康汇总不可用时，用最近的测试记录在本地推导一份当天汇总。
    """
    hourly = build_hourly_stats(tests, day=day)
    total = sum(h.total_checks for h in hourly)
    succeeded = sum(h.success_count for h in hourly)
    weighted = [
        (h.avg_latency_ms, h.success_count) for h in hourly if h.avg_latency_ms is not None
    ]
    latency_weight = sum(w for _, w in weighted)
    return ConfigHealthSummary(
        config_id=config.id,
        config_name=config.name,
        availability_24h=(succeeded / total * 100) if total else 100.0,
        avg_latency_24h=(
            sum(v * w for v, w in weighted) / latency_weight if latency_weight else None
        ),
        hourly_stats=hourly,
    )


class MetricsAggregator:
    """
    并发拉取每个供应商的测试记录和代理请求记录并计算统计。

    单个供应商拉取失败时，只把该供应商的统计退回到默认值，
    不影响其它供应商（逐项隔离，而不是 fail-fast）。
    """

    def __init__(
        self,
        remote: RemoteConfigService,
        *,
        tests_limit: int | None = None,
        requests_limit: int | None = None,
    ) -> None:
        self._remote = remote
        self._tests_limit = tests_limit or settings.recent_tests_limit
        self._requests_limit = requests_limit or settings.recent_requests_limit

    async def fetch_windows(
        self, config_id: int
    ) -> tuple[list[ConnectivityTestRecord], list[ProxiedRequestRecord]]:
        tests, requests = await asyncio.gather(
            self._remote.get_recent_tests(config_id, self._tests_limit),
            self._remote.get_recent_proxied_requests(config_id, self._requests_limit),
            return_exceptions=True,
        )
        for result in (tests, requests):
            if isinstance(result, BaseException):
                raise result
        return list(tests), list(requests)

    async def _collect_one(
        self, config_id: int
    ) -> tuple[ConfigStats, list[ConnectivityTestRecord], list[ProxiedRequestRecord]]:
        try:
            tests, requests = await self.fetch_windows(config_id)
        except Exception as exc:
            logger.warning("Failed to load monitoring data for config=%s: %s", config_id, exc)
            return ConfigStats.empty(config_id), [], []
        return compute_stats(config_id, tests, requests), tests, requests

    async def collect_with_windows(
        self, configs: Iterable[ProviderConfig]
    ) -> dict[int, tuple[ConfigStats, list[ConnectivityTestRecord], list[ProxiedRequestRecord]]]:
        ids = [c.id for c in configs]
        results = await asyncio.gather(*(self._collect_one(config_id) for config_id in ids))
        return dict(zip(ids, results))

    async def collect(self, configs: Iterable[ProviderConfig]) -> dict[int, ConfigStats]:
        collected = await self.collect_with_windows(configs)
        return {config_id: item[0] for config_id, item in collected.items()}


__all__ = [
    "MetricsAggregator",
    "build_hourly_stats",
    "compute_stats",
    "latency_trend",
    "round_half_up",
    "sort_stats",
    "stability_grade",
    "success_rate",
    "summarize",
    "summarize_health",
]
