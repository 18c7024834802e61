"""Redis-backed counter store."""

import logging
from pathlib import Path
from typing import Optional, Tuple

import redis.asyncio as redis

from quota_guard.errors import StoreError
from quota_guard.service.quota_store.base import QuotaStore

logger = logging.getLogger(__name__)


class RedisQuotaStore(QuotaStore):
    """
    Counter store on top of an async Redis client.

    The increment-and-check primitive runs as a Lua script so that no other
    client can observe or change the counter between the increment and the
    limit comparison.
    """

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize the store.

        Args:
            redis_client: Async Redis client instance, shared by the process
        """
        self.redis_client: redis.Redis = redis_client
        self._lua_script: str | None = None

    def _load_lua_script(self) -> str:
        """Load the Lua script for the increment-and-check primitive."""
        if self._lua_script is not None:
            return self._lua_script

        script_path = Path(__file__).parent / "resources" / "incrWithinLimit.lua"
        with open(script_path, "r") as f:
            self._lua_script = f.read()

        return self._lua_script

    async def get(self, key: str) -> Optional[int]:
        try:
            value = await self.redis_client.get(key)
        except redis.RedisError as e:
            raise self._store_error("GET", key, e) from e
        return int(value) if value is not None else None

    async def incr(self, key: str) -> int:
        try:
            return int(await self.redis_client.incr(key))
        except redis.RedisError as e:
            raise self._store_error("INCR", key, e) from e

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self.redis_client.expire(key, seconds))
        except redis.RedisError as e:
            raise self._store_error("EXPIRE", key, e) from e

    async def sadd(self, set_key: str, member: str) -> int:
        try:
            return int(await self.redis_client.sadd(set_key, member))  # type: ignore
        except redis.RedisError as e:
            raise self._store_error("SADD", set_key, e) from e

    async def scard(self, set_key: str) -> int:
        try:
            return int(await self.redis_client.scard(set_key))  # type: ignore
        except redis.RedisError as e:
            raise self._store_error("SCARD", set_key, e) from e

    async def incr_within_limit(
        self, key: str, limit: int, ttl_seconds: int
    ) -> Tuple[bool, int]:
        script_content = self._load_lua_script()
        try:
            result: list = await self.redis_client.eval(  # type: ignore
                script_content, 1, key, str(limit), str(ttl_seconds)
            )
        except redis.RedisError as e:
            raise self._store_error("EVAL incrWithinLimit", key, e) from e

        # result[0] is the kept flag, result[1] the counter value
        return int(result[0]) == 1, int(result[1])

    async def close(self) -> None:
        await self.redis_client.aclose()

    @staticmethod
    def _store_error(operation: str, key: str, error: Exception) -> StoreError:
        logger.error("Redis %s failed for key %s: %s", operation, key, str(error))
        return StoreError("Quota store is unavailable")

    def __str__(self) -> str:
        return f"RedisQuotaStore(client={self.redis_client})"
