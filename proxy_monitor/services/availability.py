"""
Decide whether a provider is still usable after a connectivity test.

A failed test does not always mean the provider is down: an auth or model
error still proves the endpoint is reachable. Only connectivity and server
faults mark it unavailable.

Newer backends send a structured `error_kind`; older ones only send a human
readable message, in which case we fall back to matching known fragments.
"""

from __future__ import annotations

from proxy_monitor.schemas import TestResult, TestStatus

UNAVAILABLE_ERROR_KINDS: frozenset[str] = frozenset(
    {
        "server_error",
        "connection_failed",
        "dns_failed",
        "connection_refused",
        "connection_reset",
        "overloaded",
    }
)

# 旧版后端错误信息中的关键字（中文文案来自后端原样返回）
UNAVAILABLE_ERROR_FRAGMENTS: tuple[str, ...] = (
    "HTTP 5",
    "服务器错误",
    "服务商错误",
    "负载过高",
    "过载",
    "连接失败",
    "DNS解析失败",
    "连接被拒绝",
    "连接重置",
)

# 大小写不敏感匹配
UNAVAILABLE_ERROR_FRAGMENTS_CI: tuple[str, ...] = ("server_error", "overload")


def is_unavailable_error(error_kind: str | None, error_message: str | None) -> bool:
    if error_kind:
        return error_kind.strip().lower() in UNAVAILABLE_ERROR_KINDS
    if not error_message:
        return True
    if any(fragment in error_message for fragment in UNAVAILABLE_ERROR_FRAGMENTS):
        return True
    lowered = error_message.lower()
    return any(fragment in lowered for fragment in UNAVAILABLE_ERROR_FRAGMENTS_CI)


def is_test_result_available(result: TestResult) -> bool:
    if result.status == TestStatus.SUCCESS:
        return True
    if result.status == TestStatus.TIMEOUT:
        return False
    return not is_unavailable_error(result.error_kind, result.error_message)


__all__ = [
    "UNAVAILABLE_ERROR_FRAGMENTS",
    "UNAVAILABLE_ERROR_FRAGMENTS_CI",
    "UNAVAILABLE_ERROR_KINDS",
    "is_test_result_available",
    "is_unavailable_error",
]
