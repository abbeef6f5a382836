"""
Deterministic colour-tier functions and grid builders for the health views.

Two grid shapes:
- 24-hour grid: one cell per hour-of-day (00:00 .. 23:00) from hourly stats;
- sample grid: the most recent N samples, oldest first, right-aligned by
  padding the front with empty cells.

Everything here is pure: same input, same cells.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from proxy_monitor.schemas import (
    ConfigHealthSummary,
    ConnectivityTestRecord,
    HealthCell,
    HealthGridRow,
    HealthTier,
    HourlyHealthStat,
    ProviderConfig,
    ProxiedRequestRecord,
    Sample,
    SampleCell,
    SampleKind,
    TestStatus,
    TierColor,
)
from proxy_monitor.settings import settings

HOURS_PER_DAY = 24

# (上界, 颜色)：延迟严格小于上界时命中
RESPONSE_LATENCY_TIERS: tuple[tuple[int, TierColor], ...] = (
    (200, TierColor.GREEN),
    (500, TierColor.YELLOW),
    (1000, TierColor.ORANGE),
)
TEST_LATENCY_TIERS: tuple[tuple[int, TierColor], ...] = (
    (200, TierColor.GREEN),
    (500, TierColor.YELLOW),
    (1500, TierColor.ORANGE),
)

SAMPLE_EMPTY_COLOR = "neutral"
SAMPLE_FAILURE_COLOR = "red-500"
SAMPLE_SLOWEST_COLOR = "red-400"

SAMPLE_LATENCY_TIERS: dict[SampleKind, tuple[tuple[int, str], ...]] = {
    SampleKind.CONNECTIVITY_TEST: (
        (1500, "green-500"),
        (3000, "green-400"),
        (5000, "yellow-400"),
        (8000, "yellow-500"),
        (12000, "orange-400"),
        (20000, "orange-500"),
    ),
    SampleKind.PROXIED_REQUEST: (
        (2000, "cyan-500"),
        (5000, "cyan-400"),
        (10000, "blue-400"),
        (20000, "blue-500"),
        (30000, "purple-400"),
        (60000, "purple-500"),
    ),
}


def hour_tier(stat: HourlyHealthStat | None) -> HealthTier:
    if stat is None or stat.total_checks <= 0:
        return HealthTier.NO_DATA
    rate = stat.success_count / stat.total_checks * 100
    if rate >= 95:
        return HealthTier.NORMAL
    if rate >= 80:
        return HealthTier.GOOD
    if rate >= 50:
        return HealthTier.WARNING
    if rate > 0:
        return HealthTier.DEGRADED
    return HealthTier.CRITICAL


def availability_color(availability: float | None) -> TierColor:
    if availability is None:
        return TierColor.NONE
    if availability >= 95:
        return TierColor.GREEN
    if availability >= 80:
        return TierColor.YELLOW
    if availability >= 50:
        return TierColor.ORANGE
    return TierColor.RED


def latency_color(
    latency_ms: float | None, kind: SampleKind = SampleKind.PROXIED_REQUEST
) -> TierColor:
    """
    连通性测试使用更宽松的表（橙色上界 1500ms），其余按响应时间表（1000ms）。
    """
    if latency_ms is None:
        return TierColor.NONE
    tiers = TEST_LATENCY_TIERS if kind == SampleKind.CONNECTIVITY_TEST else RESPONSE_LATENCY_TIERS
    for upper, color in tiers:
        if latency_ms < upper:
            return color
    return TierColor.RED


def sample_color(sample: Sample | None, kind: SampleKind) -> str:
    if sample is None:
        return SAMPLE_EMPTY_COLOR
    if not sample.success:
        return SAMPLE_FAILURE_COLOR
    latency = sample.latency_ms or 0
    for upper, color in SAMPLE_LATENCY_TIERS[kind]:
        if latency < upper:
            return color
    return SAMPLE_SLOWEST_COLOR


def hour_label(hour: int) -> str:
    return f"{hour:02d}:00"


def compile_hour_cells(hourly_stats: Iterable[HourlyHealthStat]) -> list[HealthCell]:
    by_hour: dict[int, HourlyHealthStat] = {}
    for stat in hourly_stats:
        # 同一小时出现多条时以最后一条为准
        by_hour[stat.hour_bucket] = stat

    cells: list[HealthCell] = []
    for hour in range(HOURS_PER_DAY):
        stat = by_hour.get(hour)
        tier = hour_tier(stat)
        has_data = tier != HealthTier.NO_DATA
        cells.append(
            HealthCell(
                hour=hour,
                label=hour_label(hour),
                tier=tier,
                success_rate=(stat.success_count / stat.total_checks * 100) if has_data else None,
                total_checks=stat.total_checks if stat is not None else 0,
                avg_latency_ms=stat.avg_latency_ms if has_data else None,
            )
        )
    return cells


def compile_health_grid(
    configs: Iterable[ProviderConfig],
    summaries: Iterable[ConfigHealthSummary],
    *,
    group_id: int | None = None,
) -> list[HealthGridRow]:
    """
    每个供应商一行、每行 24 格。`group_id` 指定时只保留该分组的供应商；
    没有汇总数据的供应商整行都是 no_data。
    """
    by_config = {s.config_id: s for s in summaries}
    rows: list[HealthGridRow] = []
    for config in configs:
        if group_id is not None and config.group_id != group_id:
            continue
        summary = by_config.get(config.id)
        if summary is None:
            rows.append(
                HealthGridRow(
                    config_id=config.id,
                    config_name=config.name,
                    group_id=config.group_id,
                    cells=compile_hour_cells(()),
                )
            )
            continue
        rows.append(
            HealthGridRow(
                config_id=config.id,
                config_name=config.name or summary.config_name,
                group_id=config.group_id,
                availability_24h=summary.availability_24h,
                availability_color=availability_color(summary.availability_24h),
                avg_latency_24h=summary.avg_latency_24h,
                latency_color=latency_color(summary.avg_latency_24h),
                cells=compile_hour_cells(summary.hourly_stats),
            )
        )
    return rows


def compile_sample_grid(
    samples: Sequence[Sample], kind: SampleKind, *, size: int | None = None
) -> list[SampleCell]:
    """
    `samples` 按时间倒序（最新在前）。输出恰好 `size` 格：
    取最新的 size 条并反转成最旧在前，不足时在前面补空格，保证最新样本靠右。
    """
    size = settings.sample_grid_size if size is None else size
    if size <= 0:
        return []
    window = list(samples[:size])
    window.reverse()
    padding = [SampleCell(empty=True, color=SAMPLE_EMPTY_COLOR)] * (size - len(window))
    cells = [
        SampleCell(
            empty=False,
            success=sample.success,
            latency_ms=sample.latency_ms,
            color=sample_color(sample, kind),
        )
        for sample in window
    ]
    return padding + cells


def samples_from_tests(records: Iterable[ConnectivityTestRecord]) -> list[Sample]:
    return [
        Sample(success=r.status == TestStatus.SUCCESS, latency_ms=r.latency_ms) for r in records
    ]


def samples_from_requests(records: Iterable[ProxiedRequestRecord]) -> list[Sample]:
    return [Sample(success=r.is_success, latency_ms=r.latency_ms) for r in records]


__all__ = [
    "HOURS_PER_DAY",
    "RESPONSE_LATENCY_TIERS",
    "SAMPLE_LATENCY_TIERS",
    "TEST_LATENCY_TIERS",
    "availability_color",
    "compile_health_grid",
    "compile_hour_cells",
    "compile_sample_grid",
    "hour_label",
    "hour_tier",
    "latency_color",
    "samples_from_requests",
    "sample_color",
    "samples_from_tests",
]
