"""
Redis access for persisted monitor state (currently the auto-refresh preferences).

Clients are cached per running event loop: the FastAPI lifespan and
short-lived loops (tests, asyncio.run one-shots) never share a pool.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from weakref import WeakKeyDictionary

from fastapi.encoders import jsonable_encoder
from redis.asyncio import Redis

from .logging_config import logger
from .settings import settings

_clients_by_loop: WeakKeyDictionary[asyncio.AbstractEventLoop, Redis] = WeakKeyDictionary()


def get_redis_client() -> Redis:
    """
    Return the client bound to the running loop, creating it on first use.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError as exc:
        raise RuntimeError("get_redis_client() must be called inside a running event loop") from exc
    client = _clients_by_loop.get(loop)
    if client is None:
        client = Redis.from_url(settings.redis_url, decode_responses=True)
        _clients_by_loop[loop] = client
    return client


async def close_redis_client(client: Any) -> None:
    # redis>=5 提供 aclose()，旧版本只有 close()
    close_fn = getattr(client, "aclose", None) or getattr(client, "close", None)
    if close_fn is not None:
        await close_fn()


async def close_redis_client_for_current_loop() -> None:
    client = _clients_by_loop.pop(asyncio.get_running_loop(), None)
    if client is not None:
        await close_redis_client(client)


async def redis_get_json(redis: Redis, key: str) -> dict[str, Any] | None:
    """
    读取一个 JSON 对象；key 不存在、内容不是合法 JSON 或不是对象时返回 None。
    """
    raw = await redis.get(key)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed JSON stored under %s", key)
        return None
    return data if isinstance(data, dict) else None


async def redis_set_json(redis: Redis, key: str, value: dict[str, Any]) -> None:
    await redis.set(key, json.dumps(jsonable_encoder(value), ensure_ascii=False))


__all__ = [
    "close_redis_client",
    "close_redis_client_for_current_loop",
    "get_redis_client",
    "redis_get_json",
    "redis_set_json",
]
