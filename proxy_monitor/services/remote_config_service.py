from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from proxy_monitor.errors import RemoteServiceError
from proxy_monitor.logging_config import logger
from proxy_monitor.schemas import (
    BalanceInfo,
    ConfigHealthSummary,
    ConnectivityTestRecord,
    HealthCheckSchedulerStatus,
    ProviderConfig,
    ProviderGroup,
    ProxiedRequestRecord,
    ProxyServiceStatus,
    SwitchEvent,
    TestResult,
)
from proxy_monitor.services.sse_parser import iter_sse_events
from proxy_monitor.settings import settings

AUTO_SWITCH_EVENT = "auto-switch-triggered"

T = TypeVar("T")


class RemoteConfigService(Protocol):
    """
    代理管理后端的调用边界。

    约定：所有方法在传输失败时抛出 `RemoteServiceError`；
    推送通道是至少一次投递，可能重复，不保证跨调用顺序。
    """

    async def list_providers(self, group_id: int | None = None) -> list[ProviderConfig]: ...

    async def list_groups(self) -> list[ProviderGroup]: ...

    async def test_provider(self, config_id: int) -> TestResult: ...

    async def query_balance(self, config_id: int) -> BalanceInfo: ...

    async def get_recent_tests(
        self, config_id: int, limit: int
    ) -> list[ConnectivityTestRecord]: ...

    async def get_recent_proxied_requests(
        self, config_id: int | None, limit: int
    ) -> list[ProxiedRequestRecord]: ...

    async def get_health_summaries(self, hours: int) -> list[ConfigHealthSummary]: ...

    async def run_health_check_now(self) -> None: ...

    async def toggle_auto_health_check(
        self, enabled: bool, interval_secs: int
    ) -> HealthCheckSchedulerStatus: ...

    async def get_health_check_status(self) -> HealthCheckSchedulerStatus: ...

    async def reorder_provider(self, config_id: int, new_sort_order: int) -> None: ...

    async def switch_provider(self, config_id: int) -> ProxyServiceStatus: ...

    async def get_proxy_status(self) -> ProxyServiceStatus: ...

    async def toggle_auto_switch(self, group_id: int, enabled: bool) -> None: ...

    def subscribe_switch_events(self) -> AsyncIterator[SwitchEvent]: ...


class HttpRemoteConfigService:
    """
    基于 httpx 的 `RemoteConfigService` 实现。

    说明：
    - 普通命令走 JSON HTTP 接口；
    - 自动切换事件走 text/event-stream，事件名为 `auto-switch-triggered`；
    - 可以注入外部 AsyncClient（测试中使用 httpx.MockTransport）。
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        events_path: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.remote_base_url).rstrip("/")
        self._api_token = (api_token if api_token is not None else settings.remote_api_token).strip()
        self._timeout = float(timeout or settings.remote_timeout_seconds)
        self._events_path = events_path or settings.remote_events_path
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        client = self._client
        self._client = None
        if client is not None and self._owns_client:
            await client.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        client = self._get_client()
        try:
            resp = await client.request(
                method,
                path,
                params={k: v for k, v in (params or {}).items() if v is not None} or None,
                json=payload,
                headers=self._headers(),
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteServiceError(
                operation,
                _extract_error_message(exc.response),
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(operation, str(exc) or exc.__class__.__name__) from exc

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteServiceError(operation, "response body is not valid JSON") from exc

    @staticmethod
    def _parse(operation: str, adapter: TypeAdapter[T], data: Any) -> T:
        try:
            return adapter.validate_python(data)
        except ValidationError as exc:
            raise RemoteServiceError(
                operation, f"unexpected response shape ({exc.error_count()} validation errors)"
            ) from exc

    async def list_providers(self, group_id: int | None = None) -> list[ProviderConfig]:
        data = await self._request(
            "list_providers", "GET", "/api/configs", params={"group_id": group_id}
        )
        return self._parse("list_providers", _PROVIDERS, data or [])

    async def list_groups(self) -> list[ProviderGroup]:
        data = await self._request("list_groups", "GET", "/api/groups")
        return self._parse("list_groups", _GROUPS, data or [])

    async def test_provider(self, config_id: int) -> TestResult:
        data = await self._request("test_provider", "POST", f"/api/configs/{config_id}/test")
        return self._parse("test_provider", _model(TestResult), _with_config_id(data, config_id))

    async def query_balance(self, config_id: int) -> BalanceInfo:
        data = await self._request("query_balance", "POST", f"/api/configs/{config_id}/balance")
        return self._parse("query_balance", _model(BalanceInfo), _with_config_id(data, config_id))

    async def get_recent_tests(self, config_id: int, limit: int) -> list[ConnectivityTestRecord]:
        data = await self._request(
            "get_recent_tests",
            "GET",
            f"/api/configs/{config_id}/tests",
            params={"limit": limit},
        )
        return self._parse("get_recent_tests", _TEST_RECORDS, data or [])

    async def get_recent_proxied_requests(
        self, config_id: int | None, limit: int
    ) -> list[ProxiedRequestRecord]:
        data = await self._request(
            "get_recent_proxied_requests",
            "GET",
            "/api/proxy-logs",
            params={"config_id": config_id, "limit": limit},
        )
        return self._parse("get_recent_proxied_requests", _REQUEST_RECORDS, data or [])

    async def get_health_summaries(self, hours: int) -> list[ConfigHealthSummary]:
        data = await self._request(
            "get_health_summaries",
            "GET",
            "/api/health-check/summaries",
            params={"hours": hours},
        )
        return self._parse("get_health_summaries", _SUMMARIES, data or [])

    async def run_health_check_now(self) -> None:
        await self._request("run_health_check_now", "POST", "/api/health-check/run")

    async def toggle_auto_health_check(
        self, enabled: bool, interval_secs: int
    ) -> HealthCheckSchedulerStatus:
        data = await self._request(
            "toggle_auto_health_check",
            "POST",
            "/api/health-check/toggle",
            payload={"enabled": enabled, "interval_secs": interval_secs},
        )
        return self._parse(
            "toggle_auto_health_check", _model(HealthCheckSchedulerStatus), data or {}
        )

    async def get_health_check_status(self) -> HealthCheckSchedulerStatus:
        data = await self._request("get_health_check_status", "GET", "/api/health-check/status")
        return self._parse(
            "get_health_check_status", _model(HealthCheckSchedulerStatus), data or {}
        )

    async def reorder_provider(self, config_id: int, new_sort_order: int) -> None:
        await self._request(
            "reorder_provider",
            "POST",
            f"/api/configs/{config_id}/reorder",
            payload={"new_sort_order": new_sort_order},
        )

    async def switch_provider(self, config_id: int) -> ProxyServiceStatus:
        data = await self._request(
            "switch_provider", "POST", "/api/proxy/switch", payload={"config_id": config_id}
        )
        return self._parse("switch_provider", _model(ProxyServiceStatus), data or {})

    async def get_proxy_status(self) -> ProxyServiceStatus:
        data = await self._request("get_proxy_status", "GET", "/api/proxy/status")
        return self._parse("get_proxy_status", _model(ProxyServiceStatus), data or {})

    async def toggle_auto_switch(self, group_id: int, enabled: bool) -> None:
        await self._request(
            "toggle_auto_switch",
            "POST",
            f"/api/groups/{group_id}/auto-switch",
            payload={"enabled": enabled},
        )

    async def subscribe_switch_events(self) -> AsyncIterator[SwitchEvent]:
        """
        订阅自动切换事件流；连接失败或中途断开时抛出 RemoteServiceError。
        """
        client = self._get_client()
        headers = {**self._headers(), "Accept": "text/event-stream"}
        try:
            async with client.stream(
                "GET", self._events_path, headers=headers, timeout=None
            ) as resp:
                resp.raise_for_status()
                async for msg in iter_sse_events(resp.aiter_bytes()):
                    if msg.event != AUTO_SWITCH_EVENT:
                        continue
                    event = _decode_switch_event(msg.data, msg.id)
                    if event is not None:
                        yield event
        except httpx.HTTPStatusError as exc:
            raise RemoteServiceError(
                "subscribe_switch_events",
                f"HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(
                "subscribe_switch_events", str(exc) or exc.__class__.__name__
            ) from exc


def _model(model: type[BaseModel]) -> TypeAdapter[Any]:
    return TypeAdapter(model)


_PROVIDERS = TypeAdapter(list[ProviderConfig])
_GROUPS = TypeAdapter(list[ProviderGroup])
_TEST_RECORDS = TypeAdapter(list[ConnectivityTestRecord])
_REQUEST_RECORDS = TypeAdapter(list[ProxiedRequestRecord])
_SUMMARIES = TypeAdapter(list[ConfigHealthSummary])


def _with_config_id(data: Any, config_id: int) -> Any:
    if isinstance(data, dict):
        return {"config_id": config_id, **data}
    return data


def _extract_error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        detail = body.get("detail", body)
        if isinstance(detail, dict):
            return str(detail.get("message") or detail.get("error") or f"HTTP {resp.status_code}")
        if detail:
            return str(detail)
    return f"HTTP {resp.status_code}"


def _decode_switch_event(raw: str, sse_id: str | None) -> SwitchEvent | None:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Dropping malformed %s payload: %r", AUTO_SWITCH_EVENT, raw[:200])
        return None
    if not isinstance(payload, dict):
        return None
    if sse_id and payload.get("event_id") is None:
        payload["event_id"] = sse_id
    try:
        return SwitchEvent.model_validate(payload)
    except ValidationError:
        logger.warning("Dropping invalid %s payload: %r", AUTO_SWITCH_EVENT, raw[:200])
        return None


__all__ = ["AUTO_SWITCH_EVENT", "HttpRemoteConfigService", "RemoteConfigService"]
