"""
Domain exceptions and HTTP error helpers.

Services raise the `MonitorError` family; the dashboard orchestrator catches
them and turns them into notifications. Route handlers use the helpers at
the bottom to build `HTTPException` objects with a consistent
`{"error", "message", "code", "details"}` detail payload.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class MonitorError(Exception):
    """Base class for every error raised by the monitoring core."""


class RemoteServiceError(MonitorError):
    """
    远端配置服务调用失败（连接失败、非 2xx 响应、推送通道断开等）。
    """

    def __init__(self, operation: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message
        self.status_code = status_code


class ValidationRejected(MonitorError):
    """
    在发起任何远端调用之前就被本地校验拒绝的操作。
    """


class CrossGroupReorderError(ValidationRejected):
    def __init__(self, config_id: int, target_group_id: int | None) -> None:
        super().__init__("Providers can only be reordered within the same group")
        self.config_id = config_id
        self.target_group_id = target_group_id


class OperationInProgressError(ValidationRejected):
    def __init__(self, operation: str, entity_id: int) -> None:
        super().__init__(f"{operation} already in progress for {entity_id}")
        self.operation = operation
        self.entity_id = entity_id


class InvalidHealthCheckIntervalError(ValidationRejected):
    def __init__(self, interval_secs: int, allowed: tuple[int, ...]) -> None:
        super().__init__(
            f"Health check interval {interval_secs}s is not one of {', '.join(map(str, allowed))}"
        )
        self.interval_secs = interval_secs
        self.allowed = allowed


class ProviderNotFoundError(ValidationRejected):
    def __init__(self, config_id: int) -> None:
        super().__init__(f"Provider {config_id} not found")
        self.config_id = config_id


def http_error(
    status_code: int,
    *,
    error: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> HTTPException:
    detail: dict[str, Any] = {"error": error, "message": message, "code": status_code}
    if details:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


def bad_request(message: str, *, details: dict[str, Any] | None = None) -> HTTPException:
    return http_error(
        status.HTTP_400_BAD_REQUEST, error="bad_request", message=message, details=details
    )


def not_found(message: str, *, details: dict[str, Any] | None = None) -> HTTPException:
    return http_error(
        status.HTTP_404_NOT_FOUND, error="not_found", message=message, details=details
    )


def conflict(message: str, *, details: dict[str, Any] | None = None) -> HTTPException:
    return http_error(
        status.HTTP_409_CONFLICT, error="conflict", message=message, details=details
    )


def service_unavailable(message: str, *, details: dict[str, Any] | None = None) -> HTTPException:
    return http_error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        error="service_unavailable",
        message=message,
        details=details,
    )


__all__ = [
    "CrossGroupReorderError",
    "InvalidHealthCheckIntervalError",
    "MonitorError",
    "OperationInProgressError",
    "ProviderNotFoundError",
    "RemoteServiceError",
    "ValidationRejected",
    "bad_request",
    "conflict",
    "http_error",
    "not_found",
    "service_unavailable",
]
