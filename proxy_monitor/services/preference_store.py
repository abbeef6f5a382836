from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError
from redis.asyncio import Redis

from proxy_monitor.logging_config import logger
from proxy_monitor.redis_client import get_redis_client, redis_get_json, redis_set_json
from proxy_monitor.schemas import AutoRefreshPreferences
from proxy_monitor.settings import settings

PREFERENCES_KEY_TEMPLATE = "proxy_monitor:preferences:{namespace}"
PREFERENCES_VERSION = 1


class PreferenceStore(Protocol):
    async def read(self) -> dict[str, Any] | None: ...

    async def write(self, payload: dict[str, Any]) -> None: ...


class RedisPreferenceStore:
    def __init__(self, redis: Redis, *, namespace: str | None = None) -> None:
        self._redis = redis
        self.key = PREFERENCES_KEY_TEMPLATE.format(
            namespace=namespace or settings.preference_namespace
        )

    async def read(self) -> dict[str, Any] | None:
        return await redis_get_json(self._redis, self.key)

    async def write(self, payload: dict[str, Any]) -> None:
        await redis_set_json(self._redis, self.key, payload)


class JsonFilePreferenceStore:
    """
    单机场景下把偏好写到本地 JSON 文件（原子替换）。
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or settings.preference_file_path)

    def _read_sync(self) -> dict[str, Any] | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed preference file %s", self.path)
            return None
        return data if isinstance(data, dict) else None

    def _write_sync(self, payload: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    async def read(self) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._read_sync)

    async def write(self, payload: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, payload)


class AutoRefreshPreferenceService:
    """
    进程级共享的自动刷新偏好：启动时读取一次，之后每次修改都立即写回。

    存储读取失败时退回默认值，写入失败会向上抛出，由调用方决定如何提示。
    """

    def __init__(self, store: PreferenceStore) -> None:
        self._store = store
        self._current = AutoRefreshPreferences()
        self._loaded = False

    @property
    def current(self) -> AutoRefreshPreferences:
        return self._current

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> AutoRefreshPreferences:
        if self._loaded:
            return self._current
        try:
            data = await self._store.read()
        except Exception as exc:
            logger.warning("Failed to read auto-refresh preferences, using defaults: %s", exc)
            data = None

        if data is not None:
            state = data.get("state", data)
            try:
                self._current = AutoRefreshPreferences.model_validate(state)
            except ValidationError:
                logger.warning("Stored auto-refresh preferences are invalid, using defaults")
        self._loaded = True
        return self._current

    async def update(self, **changes: Any) -> AutoRefreshPreferences:
        updated = AutoRefreshPreferences.model_validate(
            {**self._current.model_dump(), **changes}
        )
        await self._store.write({"state": updated.model_dump(), "version": PREFERENCES_VERSION})
        self._current = updated
        return updated


def build_preference_store(redis: Redis | None = None) -> PreferenceStore:
    if settings.preference_backend == "file":
        return JsonFilePreferenceStore()
    return RedisPreferenceStore(redis or get_redis_client())


__all__ = [
    "AutoRefreshPreferenceService",
    "JsonFilePreferenceStore",
    "PREFERENCES_KEY_TEMPLATE",
    "PreferenceStore",
    "RedisPreferenceStore",
    "build_preference_store",
]
