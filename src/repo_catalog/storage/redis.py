"""
Redis-backed key-value store.
"""

from __future__ import annotations

from typing import Any

import redis

from ..errors import StorageUnavailable


class RedisKeyValueStore:
    """Thin adapter over a ``redis.Redis`` client with decoded responses."""

    def __init__(self, redis_url: str | None = None, *, client: Any | None = None) -> None:
        if client is not None:
            self._client = client
        else:
            if not redis_url:
                raise StorageUnavailable(
                    "Redis connection not configured. "
                    "Please set REDIS_URL environment variable."
                )
            try:
                self._client = redis.Redis.from_url(redis_url, decode_responses=True)
            except ValueError as exc:
                raise StorageUnavailable(f"Invalid REDIS_URL: {exc}") from exc

    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return getattr(self._client, method)(*args, **kwargs)
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as exc:
            raise StorageUnavailable(f"Redis is unreachable: {exc}") from exc

    def ping(self) -> None:
        self._call("ping")

    def close(self) -> None:
        self._client.close()

    def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._call("hgetall", key) or {})

    def hset(self, key: str, mapping: dict[str, str]) -> int:
        if not mapping:
            return 0
        return int(self._call("hset", key, mapping=mapping))

    def delete(self, key: str) -> int:
        return int(self._call("delete", key))

    def scan(
        self,
        cursor: int = 0,
        *,
        match: str = "*",
        count: int = 100,
    ) -> tuple[int, list[str]]:
        next_cursor, keys = self._call("scan", cursor=cursor, match=match, count=count)
        return int(next_cursor), [str(key) for key in keys]

    def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(self._call("sadd", key, *members))

    def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(self._call("srem", key, *members))

    def scard(self, key: str) -> int:
        return int(self._call("scard", key))
