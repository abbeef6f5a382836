from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from proxy_monitor.services.preference_store import (
    AutoRefreshPreferenceService,
    JsonFilePreferenceStore,
    RedisPreferenceStore,
)
from tests.utils import InMemoryRedis


class FailingReadStore:
    async def read(self):
        raise ConnectionError("redis down")

    async def write(self, payload):
        raise AssertionError("write should not be called")


@pytest.mark.asyncio
async def test_defaults_when_nothing_stored():
    service = AutoRefreshPreferenceService(RedisPreferenceStore(InMemoryRedis(), namespace="t"))

    prefs = await service.load()

    assert prefs.monitor_auto_refresh is False
    assert prefs.dev_log_auto_refresh is True
    assert prefs.health_check_interval == 300
    assert service.loaded is True


@pytest.mark.asyncio
async def test_load_reads_versioned_payload():
    redis = InMemoryRedis()
    store = RedisPreferenceStore(redis, namespace="t")
    await redis.set(
        store.key,
        json.dumps({"state": {"monitor_auto_refresh": True, "health_check_interval": 1800}, "version": 1}),
    )

    prefs = await AutoRefreshPreferenceService(store).load()

    assert prefs.monitor_auto_refresh is True
    assert prefs.dev_log_auto_refresh is True
    assert prefs.health_check_interval == 1800


@pytest.mark.asyncio
async def test_invalid_stored_state_falls_back_to_defaults():
    redis = InMemoryRedis()
    store = RedisPreferenceStore(redis, namespace="t")
    await redis.set(store.key, json.dumps({"state": {"health_check_interval": 7}}))

    prefs = await AutoRefreshPreferenceService(store).load()

    assert prefs.health_check_interval == 300


@pytest.mark.asyncio
async def test_read_failure_falls_back_to_defaults():
    service = AutoRefreshPreferenceService(FailingReadStore())
    prefs = await service.load()
    assert prefs.monitor_auto_refresh is False


@pytest.mark.asyncio
async def test_update_persists_immediately():
    redis = InMemoryRedis()
    store = RedisPreferenceStore(redis, namespace="t")
    service = AutoRefreshPreferenceService(store)

    await service.update(dev_log_auto_refresh=False)

    stored = json.loads(await redis.get(store.key))
    assert stored["version"] == 1
    assert stored["state"]["dev_log_auto_refresh"] is False
    assert redis.ttls[store.key] is None

    reloaded = await AutoRefreshPreferenceService(store).load()
    assert reloaded.dev_log_auto_refresh is False


@pytest.mark.asyncio
async def test_update_rejects_unknown_interval_without_writing():
    redis = InMemoryRedis()
    store = RedisPreferenceStore(redis, namespace="t")
    service = AutoRefreshPreferenceService(store)

    with pytest.raises(ValidationError):
        await service.update(health_check_interval=45)

    assert await redis.get(store.key) is None
    assert service.current.health_check_interval == 300


@pytest.mark.asyncio
async def test_json_file_store(tmp_path):
    path = tmp_path / "prefs" / "auto-refresh.json"
    service = AutoRefreshPreferenceService(JsonFilePreferenceStore(path))

    await service.update(monitor_auto_refresh=True)

    assert json.loads(path.read_text(encoding="utf-8"))["state"]["monitor_auto_refresh"] is True
    reloaded = await AutoRefreshPreferenceService(JsonFilePreferenceStore(path)).load()
    assert reloaded.monitor_auto_refresh is True


@pytest.mark.asyncio
async def test_json_file_store_ignores_malformed_file(tmp_path):
    path = tmp_path / "auto-refresh.json"
    path.write_text("{not json", encoding="utf-8")

    assert await JsonFilePreferenceStore(path).read() is None
