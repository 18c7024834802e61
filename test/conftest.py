"""Shared fixtures: an in-memory counter store and engine factory."""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from zoneinfo import ZoneInfo

import pytest

from quota_guard.models import EnforcementStrategy
from quota_guard.service.association_tracker import AssociationTracker
from quota_guard.service.collision_detector import CollisionDetector
from quota_guard.service.quota_engine import QuotaDecisionEngine
from quota_guard.service.quota_store.base import QuotaStore

ZONE = ZoneInfo("Europe/Zurich")
FIXED_NOW = datetime(2026, 3, 10, 15, 30, tzinfo=ZONE)


class InMemoryQuotaStore(QuotaStore):
    """
    Test double honouring the store contract.

    Every operation yields to the event loop once before touching state, so
    concurrent callers interleave between operations but each operation is
    atomic, as on a real store.
    """

    def __init__(self) -> None:
        self.values: Dict[str, int] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.ttls: Dict[str, int] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None
        self.fail_operations: Set[str] = set()
        self.delay: float = 0

    async def _enter(self, operation: str, key: str) -> None:
        await asyncio.sleep(self.delay)
        if self.fail_with is not None and (
            not self.fail_operations or operation in self.fail_operations
        ):
            raise self.fail_with
        self.calls.append((operation, key))

    async def get(self, key: str) -> Optional[int]:
        await self._enter("get", key)
        return self.values.get(key)

    async def incr(self, key: str) -> int:
        await self._enter("incr", key)
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key: str, seconds: int) -> bool:
        await self._enter("expire", key)
        if key not in self.values and key not in self.sets:
            return False
        self.ttls[key] = seconds
        return True

    async def sadd(self, set_key: str, member: str) -> int:
        await self._enter("sadd", set_key)
        members = self.sets.setdefault(set_key, set())
        if member in members:
            return 0
        members.add(member)
        return 1

    async def scard(self, set_key: str) -> int:
        await self._enter("scard", set_key)
        return len(self.sets.get(set_key, ()))

    async def incr_within_limit(
        self, key: str, limit: int, ttl_seconds: int
    ) -> Tuple[bool, int]:
        await self._enter("incr_within_limit", key)
        current = self.values.get(key, 0) + 1
        self.values[key] = current
        if key not in self.ttls:
            self.ttls[key] = ttl_seconds
        if current > limit:
            self.values[key] = current - 1
            return False, current - 1
        return True, current

    def snapshot(self) -> Tuple[Dict[str, int], Dict[str, Set[str]]]:
        return dict(self.values), {k: set(v) for k, v in self.sets.items()}


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store() -> InMemoryQuotaStore:
    return InMemoryQuotaStore()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(FIXED_NOW)


@pytest.fixture
def engine_factory(
    store: InMemoryQuotaStore, clock: MutableClock
) -> Callable[..., QuotaDecisionEngine]:
    def _factory(
        strategy: EnforcementStrategy = EnforcementStrategy.ADAPTIVE_COMBINED,
        daily_limit: int = 3,
        symmetric: bool = True,
        **kwargs: Any,
    ) -> QuotaDecisionEngine:
        return QuotaDecisionEngine(
            store=store,
            tracker=AssociationTracker(store, window_seconds=3600, symmetric=symmetric),
            detector=CollisionDetector(fingerprint_threshold=3, address_threshold=5),
            daily_limit=daily_limit,
            strategy=strategy,
            clock=clock,
            **kwargs,
        )

    return _factory
