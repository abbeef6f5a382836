from __future__ import annotations

import pytest

from proxy_monitor.schemas import (
    ConfigHealthSummary,
    HealthTier,
    HourlyHealthStat,
    Sample,
    SampleKind,
    TierColor,
)
from proxy_monitor.services.heatmap_compiler import (
    availability_color,
    compile_health_grid,
    compile_hour_cells,
    compile_sample_grid,
    hour_tier,
    latency_color,
    sample_color,
)
from tests.utils import make_config


def _stat(hour: int, success: int, total: int, avg: float | None = None) -> HourlyHealthStat:
    return HourlyHealthStat(
        hour_bucket=hour,
        total_checks=total,
        success_count=success,
        failed_count=total - success,
        avg_latency_ms=avg,
    )


@pytest.mark.parametrize(
    ("success", "expected"),
    [
        (100, HealthTier.NORMAL),
        (95, HealthTier.NORMAL),
        (94, HealthTier.GOOD),
        (80, HealthTier.GOOD),
        (79, HealthTier.WARNING),
        (50, HealthTier.WARNING),
        (49, HealthTier.DEGRADED),
        (1, HealthTier.DEGRADED),
        (0, HealthTier.CRITICAL),
    ],
)
def test_hour_tier_boundaries(success, expected):
    assert hour_tier(_stat(0, success, 100)) == expected


def test_no_data_is_distinct_from_critical():
    assert hour_tier(None) == HealthTier.NO_DATA
    assert hour_tier(_stat(3, 0, 0)) == HealthTier.NO_DATA
    assert hour_tier(_stat(3, 0, 4)) == HealthTier.CRITICAL


def test_hour_cells_cover_whole_day():
    cells = compile_hour_cells([_stat(8, 10, 10, 120.0), _stat(23, 1, 4)])

    assert len(cells) == 24
    assert cells[0].label == "00:00"
    assert cells[8].label == "08:00"
    assert cells[8].tier == HealthTier.NORMAL
    assert cells[8].avg_latency_ms == 120.0
    assert cells[23].tier == HealthTier.DEGRADED
    assert cells[23].success_rate == 25.0
    assert cells[12].tier == HealthTier.NO_DATA
    assert cells[12].success_rate is None


def test_hour_stats_parsed_from_server_hour_string():
    stat = HourlyHealthStat.model_validate({"hour": "2024-05-01 14:00:00", "total_checks": 2, "success_count": 2})
    assert stat.hour_bucket == 14


@pytest.mark.parametrize(
    ("availability", "expected"),
    [
        (None, TierColor.NONE),
        (100, TierColor.GREEN),
        (95, TierColor.GREEN),
        (94.9, TierColor.YELLOW),
        (80, TierColor.YELLOW),
        (79.9, TierColor.ORANGE),
        (50, TierColor.ORANGE),
        (49.9, TierColor.RED),
        (0, TierColor.RED),
    ],
)
def test_availability_color(availability, expected):
    assert availability_color(availability) == expected


def test_latency_color_uses_per_kind_table():
    assert latency_color(None) == TierColor.NONE
    assert latency_color(199) == TierColor.GREEN
    assert latency_color(200) == TierColor.YELLOW
    assert latency_color(999) == TierColor.ORANGE
    assert latency_color(1000) == TierColor.RED
    assert latency_color(1200, SampleKind.CONNECTIVITY_TEST) == TierColor.ORANGE
    assert latency_color(1500, SampleKind.CONNECTIVITY_TEST) == TierColor.RED


def test_health_grid_rows_per_provider_with_missing_summary():
    configs = [make_config(1, group_id=1), make_config(2, group_id=1), make_config(3, group_id=2)]
    summaries = [
        ConfigHealthSummary(
            config_id=1,
            availability_24h=96.0,
            avg_latency_24h=1200.0,
            hourly_stats=[_stat(8, 10, 10)],
        )
    ]

    rows = compile_health_grid(configs, summaries)

    assert [r.config_id for r in rows] == [1, 2, 3]
    first, second, _ = rows
    assert first.availability_color == TierColor.GREEN
    assert first.latency_color == TierColor.RED
    assert first.cells[8].tier == HealthTier.NORMAL
    assert second.availability_24h is None
    assert second.availability_color == TierColor.NONE
    assert all(cell.tier == HealthTier.NO_DATA for cell in second.cells)

    grouped = compile_health_grid(configs, summaries, group_id=2)
    assert [r.config_id for r in grouped] == [3]


def test_sample_grid_pads_front_and_puts_newest_last():
    newest_first = [
        Sample(success=True, latency_ms=300),
        Sample(success=False, latency_ms=None),
        Sample(success=True, latency_ms=100),
    ]

    cells = compile_sample_grid(newest_first, SampleKind.CONNECTIVITY_TEST, size=5)

    assert len(cells) == 5
    assert [c.empty for c in cells] == [True, True, False, False, False]
    assert [c.latency_ms for c in cells[2:]] == [100, None, 300]
    assert cells[0].color == "neutral"
    assert cells[3].color == "red-500"
    assert cells[4].color == "green-500"


def test_sample_grid_keeps_only_most_recent():
    newest_first = [Sample(success=True, latency_ms=i) for i in range(10)]
    cells = compile_sample_grid(newest_first, SampleKind.PROXIED_REQUEST, size=4)
    assert [c.latency_ms for c in cells] == [3, 2, 1, 0]
    assert compile_sample_grid(newest_first, SampleKind.PROXIED_REQUEST, size=0) == []


@pytest.mark.parametrize(
    ("kind", "latency", "expected"),
    [
        (SampleKind.CONNECTIVITY_TEST, 1499, "green-500"),
        (SampleKind.CONNECTIVITY_TEST, 1500, "green-400"),
        (SampleKind.CONNECTIVITY_TEST, 19999, "orange-500"),
        (SampleKind.CONNECTIVITY_TEST, 20000, "red-400"),
        (SampleKind.PROXIED_REQUEST, 1999, "cyan-500"),
        (SampleKind.PROXIED_REQUEST, 25000, "purple-400"),
        (SampleKind.PROXIED_REQUEST, 60000, "red-400"),
    ],
)
def test_sample_color_tables(kind, latency, expected):
    assert sample_color(Sample(success=True, latency_ms=latency), kind) == expected


def test_sample_color_failure_and_empty():
    assert sample_color(None, SampleKind.PROXIED_REQUEST) == "neutral"
    assert sample_color(Sample(success=False, latency_ms=10), SampleKind.PROXIED_REQUEST) == "red-500"
