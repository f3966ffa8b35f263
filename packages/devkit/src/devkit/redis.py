from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class AsyncRedisManager:
    """Lazily connected redis.asyncio client that reconnects and retries failed commands."""

    def __init__(
        self,
        url: str,
        *,
        max_retries: int = 3,
        base_delay_seconds: float = 0.2,
        client_factory: Callable[[str], Any] | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._url = url
        self._max_retries = max_retries
        self._base_delay_seconds = base_delay_seconds
        self._client_factory = client_factory
        self._client: Any | None = None
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool | None:
        return await self.execute("set", key, value, ex=ex, nx=nx)

    async def exists(self, key: str) -> int:
        return await self.execute("exists", key)

    async def execute(self, operation: str, *args, **kwargs):
        attempt = 0
        while True:
            client = await self._get_client()
            try:
                return await getattr(client, operation)(*args, **kwargs)
            except Exception as exc:
                attempt += 1
                if attempt >= self._max_retries:
                    raise
                logger.warning(
                    "redis_command_retry",
                    extra={
                        "component": "devkit",
                        "operation": operation,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                    },
                )
                await self._reset()
                await asyncio.sleep(self._base_delay_seconds * (2 ** (attempt - 1)))

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                try:
                    await self._client.close()
                finally:
                    self._client = None

    async def _get_client(self) -> Any:
        async with self._lock:
            if self._client is None:
                self._client = self._new_client()
            return self._client

    async def _reset(self) -> None:
        async with self._lock:
            stale, self._client = self._client, None
        if stale is not None:
            try:
                await stale.close()
            except Exception:
                logger.debug("redis_close_failed", extra={"component": "devkit"})

    def _new_client(self) -> Any:
        if self._client_factory is not None:
            return self._client_factory(self._url)
        import redis.asyncio as redis

        return redis.from_url(
            self._url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )


def create_redis_client(url: str | None) -> AsyncRedisManager | None:
    if not url:
        return None
    return AsyncRedisManager(url)
