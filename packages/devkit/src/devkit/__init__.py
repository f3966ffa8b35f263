"""Common runtime devkit for service infrastructure concerns."""

from devkit.config import CheckinSettings, load_settings
from devkit.observability import (
    KeyValueFormatter,
    configure_logging,
    configure_otel,
    configure_probe_access_log_filter,
)
from devkit.redis import AsyncRedisManager, create_redis_client

__all__ = [
    "AsyncRedisManager",
    "CheckinSettings",
    "KeyValueFormatter",
    "configure_logging",
    "configure_otel",
    "configure_probe_access_log_filter",
    "create_redis_client",
    "load_settings",
]
