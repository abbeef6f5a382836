from .dashboard import (
    CommandOutcome,
    DashboardView,
    HealthCheckIntervalRequest,
    ProviderRow,
    ReorderRequest,
    SwitchHighlight,
    ToggleRequest,
)
from .health import ConfigHealthSummary, HourlyHealthStat
from .heatmap import (
    HealthCell,
    HealthGridRow,
    HealthTier,
    Sample,
    SampleCell,
    SampleKind,
    TierColor,
)
from .metrics import (
    ConfigStats,
    ConnectivityTestRecord,
    LatencyTrend,
    MonitorOverview,
    ProxiedRequestRecord,
    Stability,
    StatsSortKey,
)
from .notification import Notification, NotificationLevel
from .preferences import (
    DEFAULT_HEALTH_CHECK_INTERVAL,
    HEALTH_CHECK_INTERVALS,
    AutoRefreshPreferences,
)
from .provider import (
    BalanceInfo,
    BalanceStatus,
    HealthCheckSchedulerStatus,
    ProviderConfig,
    ProviderGroup,
    ProxyServiceState,
    ProxyServiceStatus,
    TestResult,
    TestStatus,
)
from .switch import SwitchEvent, SwitchReason, SwitchUiState

__all__ = [
    "AutoRefreshPreferences",
    "BalanceInfo",
    "BalanceStatus",
    "CommandOutcome",
    "ConfigHealthSummary",
    "ConfigStats",
    "ConnectivityTestRecord",
    "DEFAULT_HEALTH_CHECK_INTERVAL",
    "DashboardView",
    "HEALTH_CHECK_INTERVALS",
    "HealthCell",
    "HealthCheckIntervalRequest",
    "HealthCheckSchedulerStatus",
    "HealthGridRow",
    "HealthTier",
    "HourlyHealthStat",
    "LatencyTrend",
    "MonitorOverview",
    "Notification",
    "NotificationLevel",
    "ProviderConfig",
    "ProviderGroup",
    "ProviderRow",
    "ProxiedRequestRecord",
    "ProxyServiceState",
    "ProxyServiceStatus",
    "ReorderRequest",
    "Sample",
    "SampleCell",
    "SampleKind",
    "Stability",
    "StatsSortKey",
    "SwitchEvent",
    "SwitchHighlight",
    "SwitchReason",
    "SwitchUiState",
    "TestResult",
    "TestStatus",
    "TierColor",
    "ToggleRequest",
]
