"""
Tests for the Redis counter store adapter.
"""

import asyncio
from typing import AsyncIterator
from unittest.mock import AsyncMock

import pytest
from fakeredis import FakeAsyncRedis
from redis.exceptions import ConnectionError as RedisConnectionError

from quota_guard.errors import StoreError
from quota_guard.models import BlockReason
from quota_guard.service.association_tracker import AssociationTracker
from quota_guard.service.collision_detector import CollisionDetector
from quota_guard.service.quota_engine import QuotaDecisionEngine
from quota_guard.service.quota_store.redis_quota_store import RedisQuotaStore


@pytest.fixture
def redis_client() -> AsyncMock:
    return AsyncMock()


async def test_get_converts_to_int(redis_client: AsyncMock) -> None:
    redis_client.get.return_value = "2"
    store = RedisQuotaStore(redis_client)

    assert await store.get("quota:count:fp:abcdefghij:2026-10-16") == 2


async def test_get_absent_key(redis_client: AsyncMock) -> None:
    redis_client.get.return_value = None
    store = RedisQuotaStore(redis_client)

    assert await store.get("missing") is None


async def test_incr_within_limit_runs_lua_script(redis_client: AsyncMock) -> None:
    redis_client.eval.return_value = [1, 2]
    store = RedisQuotaStore(redis_client)

    kept, value = await store.incr_within_limit("counter", 3, 600)

    assert (kept, value) == (True, 2)
    script, numkeys, *args = redis_client.eval.call_args.args
    assert "INCR" in script and "DECR" in script
    assert numkeys == 1
    assert args == ["counter", "3", "600"]


async def test_incr_within_limit_rejected(redis_client: AsyncMock) -> None:
    redis_client.eval.return_value = [0, 3]
    store = RedisQuotaStore(redis_client)

    assert await store.incr_within_limit("counter", 3, 600) == (False, 3)


async def test_set_operations(redis_client: AsyncMock) -> None:
    redis_client.sadd.return_value = 1
    redis_client.scard.return_value = 4
    redis_client.expire.return_value = True
    redis_client.incr.return_value = 5
    store = RedisQuotaStore(redis_client)

    assert await store.sadd("set", "member") == 1
    assert await store.scard("set") == 4
    assert await store.expire("set", 3600) is True
    assert await store.incr("counter") == 5
    redis_client.expire.assert_awaited_once_with("set", 3600)


@pytest.mark.parametrize("operation", ["get", "incr", "scard"])
async def test_redis_errors_become_store_errors(
    redis_client: AsyncMock, operation: str
) -> None:
    getattr(redis_client, operation).side_effect = RedisConnectionError("down")
    store = RedisQuotaStore(redis_client)

    with pytest.raises(StoreError) as exc_info:
        await getattr(store, operation)("key")

    assert "down" not in exc_info.value.message


@pytest.fixture
async def fake_redis() -> AsyncIterator[FakeAsyncRedis]:
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


async def test_script_rolls_back_increment_over_limit(fake_redis: FakeAsyncRedis) -> None:
    store = RedisQuotaStore(fake_redis)

    results = [await store.incr_within_limit("counter", 2, 600) for _ in range(3)]

    assert results == [(True, 1), (True, 2), (False, 2)]
    assert await store.get("counter") == 2


async def test_script_sets_ttl_on_fresh_counter(fake_redis: FakeAsyncRedis) -> None:
    store = RedisQuotaStore(fake_redis)

    await store.incr_within_limit("counter", 3, 600)

    assert 0 < await fake_redis.ttl("counter") <= 600


async def test_script_keeps_existing_ttl(fake_redis: FakeAsyncRedis) -> None:
    await fake_redis.set("counter", 1, ex=50)
    store = RedisQuotaStore(fake_redis)

    await store.incr_within_limit("counter", 3, 600)

    assert 0 < await fake_redis.ttl("counter") <= 50


async def test_script_restores_missing_ttl(fake_redis: FakeAsyncRedis) -> None:
    await fake_redis.set("counter", 1)
    store = RedisQuotaStore(fake_redis)

    kept, value = await store.incr_within_limit("counter", 3, 600)

    assert (kept, value) == (True, 2)
    assert 0 < await fake_redis.ttl("counter") <= 600


async def test_concurrent_callers_never_exceed_limit(fake_redis: FakeAsyncRedis) -> None:
    store = RedisQuotaStore(fake_redis)

    results = await asyncio.gather(
        *(store.incr_within_limit("counter", 3, 600) for _ in range(25))
    )

    assert sum(kept for kept, _ in results) == 3
    assert await store.get("counter") == 3


async def test_engine_on_redis_store_never_exceeds_limit(
    fake_redis: FakeAsyncRedis, clock
) -> None:
    store = RedisQuotaStore(fake_redis)
    engine = QuotaDecisionEngine(
        store=store,
        tracker=AssociationTracker(store),
        detector=CollisionDetector(),
        daily_limit=3,
        clock=clock,
    )

    decisions = await asyncio.gather(
        *(engine.decide("abcdefghij", "198.51.100.1") for _ in range(20))
    )

    assert sum(d.allowed for d in decisions) == 3
    assert all(d.reason is BlockReason.DAILY_LIMIT for d in decisions if not d.allowed)
