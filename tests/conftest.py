from __future__ import annotations

"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that
`import proxy_monitor` and `from tests.utils import ...` work consistently
in all tests, and provides reusable fixtures for tests.
"""

import sys
from pathlib import Path

# Ensure project root is importable for test modules.
# This MUST be done before importing proxy_monitor modules.
PROJECT_DIR = Path(__file__).resolve().parents[1]
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

import pytest

from proxy_monitor.services.preference_store import (
    AutoRefreshPreferenceService,
    RedisPreferenceStore,
)
from tests.utils import FakeRemoteConfigService, InMemoryRedis, RecordingNotificationSink


@pytest.fixture()
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture()
def remote() -> FakeRemoteConfigService:
    return FakeRemoteConfigService()


@pytest.fixture()
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture()
def preferences(fake_redis: InMemoryRedis) -> AutoRefreshPreferenceService:
    return AutoRefreshPreferenceService(RedisPreferenceStore(fake_redis, namespace="test"))
