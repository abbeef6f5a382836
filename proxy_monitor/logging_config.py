"""
Shared logging setup.

All modules log through the single `logger` exported here so that level and
format are configured in one place.
"""

from __future__ import annotations

import logging
import sys

from .settings import settings

LOGGER_NAME = "proxy_monitor"

logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Configure the package logger once; repeated calls only adjust the level.
    """
    resolved = (level or settings.log_level).upper()
    logger.setLevel(resolved)

    if not any(getattr(h, "_proxy_monitor", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(settings.log_format))
        handler._proxy_monitor = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    # httpx 默认在 INFO 级别打印每个请求，轮询场景下会刷屏
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logger


__all__ = ["LOGGER_NAME", "logger", "setup_logging"]
