from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol

# Two code windows plus a buffer.
DEFAULT_REPLAY_TTL_SECONDS = 120


def replay_key(location_id: str, user_id: str, code: str) -> str:
    return f"checkin_code_used:{location_id}:{user_id}:{code}"


class UsedCodeStore(ABC):
    @abstractmethod
    async def mark_once(self, location_id: str, user_id: str, code: str, ttl_seconds: int) -> bool:
        """Return True the first time a user spends a code, False on replay."""
        raise NotImplementedError

    @abstractmethod
    async def is_used(self, location_id: str, user_id: str, code: str) -> bool:
        raise NotImplementedError


class RedisLikeReplayClient(Protocol):
    async def set(self, key: str, value: str, ex: int, nx: bool) -> bool | None: ...

    async def exists(self, key: str) -> int: ...


class InMemoryUsedCodeStore(UsedCodeStore):
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._expires_at: dict[str, float] = {}

    async def mark_once(self, location_id: str, user_id: str, code: str, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        now = self._clock()
        self._purge(now)
        key = replay_key(location_id, user_id, code)
        if key in self._expires_at:
            return False
        self._expires_at[key] = now + ttl_seconds
        return True

    async def is_used(self, location_id: str, user_id: str, code: str) -> bool:
        self._purge(self._clock())
        return replay_key(location_id, user_id, code) in self._expires_at

    def _purge(self, now: float) -> None:
        expired = [key for key, expires in self._expires_at.items() if expires <= now]
        for key in expired:
            del self._expires_at[key]


class RedisUsedCodeStore(UsedCodeStore):
    def __init__(self, client: RedisLikeReplayClient) -> None:
        self._client = client

    async def mark_once(self, location_id: str, user_id: str, code: str, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        created = await self._client.set(replay_key(location_id, user_id, code), "1", ex=ttl_seconds, nx=True)
        return bool(created)

    async def is_used(self, location_id: str, user_id: str, code: str) -> bool:
        return bool(await self._client.exists(replay_key(location_id, user_id, code)))
