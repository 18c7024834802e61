"""Quota decision engine combining daily counters with collision detection."""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Dict, Optional, Tuple

from quota_guard.errors import StoreError
from quota_guard.models import (
    BlockReason,
    CollisionReport,
    CounterDimension,
    EnforcedBy,
    EnforcementStrategy,
    QuotaDecision,
)
from quota_guard.service.association_tracker import AssociationTracker
from quota_guard.service.collision_detector import CollisionDetector
from quota_guard.service.quota_store.base import QuotaStore
from quota_guard.utils.day_window import (
    Clock,
    counter_key,
    day_key,
    local_clock,
    next_midnight,
    seconds_until_midnight,
)

logger = logging.getLogger(__name__)

ENFORCED_DIMENSION = {
    EnforcedBy.FINGERPRINT_ONLY: CounterDimension.FINGERPRINT,
    EnforcedBy.COMBINED: CounterDimension.PAIR,
}


class QuotaDecisionEngine:
    """
    Decide whether a (fingerprint, address) pair may use the metered endpoint.

    Per request:
    1. Record the pair in the association sets and evaluate collisions
    2. Select the counter to enforce on from the strategy and collision flags
    3. Atomically increment the enforced counter if it stays within the daily
       limit, otherwise leave every counter untouched
    4. On success, increment the two other daily counters concurrently

    Store faults and timeouts fail closed with ``StoreError`` unless
    ``fail_open`` is set, in which case the request is let through unmetered
    and an audit line is logged.
    """

    def __init__(
        self,
        store: QuotaStore,
        tracker: AssociationTracker,
        detector: CollisionDetector,
        daily_limit: int = 3,
        strategy: EnforcementStrategy = EnforcementStrategy.ADAPTIVE_COMBINED,
        key_prefix: str = "quota",
        timeout_seconds: float = 3.0,
        fail_open: bool = False,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Counter store shared by every request of the process
            tracker: Association tracker
            detector: Collision detector
            daily_limit: Allowed requests per identity per calendar day
            strategy: Enforcement strategy applied on fingerprint collision
            key_prefix: Prefix of every counter key
            timeout_seconds: Upper bound for a whole decision
            fail_open: Allow requests when the store is unavailable
            clock: Returns the timezone-aware current time, defaults to the
                server's local clock
        """
        self.store = store
        self.tracker = tracker
        self.detector = detector
        self.daily_limit = daily_limit
        self.strategy = EnforcementStrategy(strategy)
        self.key_prefix = key_prefix
        self.timeout_seconds = timeout_seconds
        self.fail_open = fail_open
        self._clock: Clock = clock or local_clock()

    async def decide(self, fingerprint: str, address: str) -> QuotaDecision:
        """Decide on a metered request and commit usage when it is allowed."""
        return await self._guarded(self._decide(fingerprint, address), "decide")

    async def query(self, fingerprint: str, address: str) -> QuotaDecision:
        """Report current usage without mutating any counter."""
        return await self._guarded(self._query(fingerprint, address), "query")

    def select_enforcement(
        self, collision: CollisionReport
    ) -> Tuple[EnforcedBy, Optional[BlockReason]]:
        """
        Pick the enforced counter and the collision block reason, if any.

        An address collision always blocks. A fingerprint collision blocks
        under strict-block and re-keys enforcement to the combined
        fingerprint+address counter under adaptive-combined. Under
        strict-block the fingerprint collision is reported first.
        """
        fp_collision = collision.fingerprint.detected
        if fp_collision and self.strategy is EnforcementStrategy.STRICT_BLOCK:
            return EnforcedBy.FINGERPRINT_ONLY, BlockReason.FINGERPRINT_COLLISION

        enforced_by = EnforcedBy.COMBINED if fp_collision else EnforcedBy.FINGERPRINT_ONLY
        if collision.address.detected:
            return enforced_by, BlockReason.ADDRESS_COLLISION
        return enforced_by, None

    def counter_keys(
        self, fingerprint: str, address: str, day: str
    ) -> Dict[CounterDimension, str]:
        return {
            dimension: counter_key(self.key_prefix, dimension, fingerprint, address, day)
            for dimension in CounterDimension
        }

    async def _decide(self, fingerprint: str, address: str) -> QuotaDecision:
        now = self._clock()
        keys = self.counter_keys(fingerprint, address, day_key(now))

        counts = await self.tracker.record(fingerprint, address)
        collision = self.detector(counts)
        enforced_by, block_reason = self.select_enforcement(collision)
        enforced_key = keys[ENFORCED_DIMENSION[enforced_by]]

        if block_reason is not None:
            used = await self.store.get(enforced_key) or 0
            logger.info(
                "Blocked %s@%s: %s (%s)",
                fingerprint,
                address,
                block_reason.value,
                collision.to_dict(),
            )
            return self._decision(False, block_reason, used, enforced_by, now, collision)

        kept, used = await self.store.incr_within_limit(
            enforced_key, self.daily_limit, seconds_until_midnight(now)
        )
        if not kept:
            logger.info(
                "Blocked %s@%s: daily limit %d reached on %s counter",
                fingerprint,
                address,
                self.daily_limit,
                enforced_by.value,
            )
            return self._decision(
                False, BlockReason.DAILY_LIMIT, used, enforced_by, now, collision
            )

        # the enforced counter is already spent; if a commit below fails the
        # request is rejected but keeps that unit, at most one per failed request
        await asyncio.gather(
            *(self._commit(key) for key in keys.values() if key != enforced_key)
        )
        logger.debug(
            "Allowed %s@%s: %d/%d on %s counter",
            fingerprint,
            address,
            used,
            self.daily_limit,
            enforced_by.value,
        )
        return self._decision(True, BlockReason.NONE, used, enforced_by, now, collision)

    async def _query(self, fingerprint: str, address: str) -> QuotaDecision:
        now = self._clock()
        keys = self.counter_keys(fingerprint, address, day_key(now))

        counts, *values = await asyncio.gather(
            self.tracker.peek(fingerprint, address),
            *(self.store.get(key) for key in keys.values()),
        )
        usage = {dimension: value or 0 for dimension, value in zip(keys, values)}
        collision = self.detector(counts)
        enforced_by, block_reason = self.select_enforcement(collision)
        used = usage[ENFORCED_DIMENSION[enforced_by]]

        if block_reason is None and used >= self.daily_limit:
            block_reason = BlockReason.DAILY_LIMIT
        return self._decision(
            block_reason is None,
            block_reason or BlockReason.NONE,
            used,
            enforced_by,
            now,
            collision,
        )

    async def _commit(self, key: str) -> None:
        await self.store.incr(key)
        # a crash between the two calls leaves the counter with its previous
        # expiry; the next increment-and-check on it restores one
        await self.store.expire(key, seconds_until_midnight(self._clock()))

    async def _guarded(
        self, operation: Awaitable[QuotaDecision], name: str
    ) -> QuotaDecision:
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout_seconds)
        except (StoreError, asyncio.TimeoutError) as e:
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else "failed"
            if not self.fail_open:
                logger.error("Quota %s %s, rejecting request", name, reason)
                if isinstance(e, StoreError):
                    raise
                raise StoreError("Quota store timed out") from e

            logger.warning(
                "AUDIT fail-open: quota %s %s, request granted without metering",
                name,
                reason,
            )
            now = self._clock()
            return QuotaDecision(
                allowed=True,
                reason=BlockReason.NONE,
                remaining=self.daily_limit,
                used_today=0,
                daily_limit=self.daily_limit,
                strategy=EnforcedBy.FINGERPRINT_ONLY,
                reset_at=next_midnight(now),
                collision=self.detector.evaluate(0, 0),
                degraded=True,
            )

    def _decision(
        self,
        allowed: bool,
        reason: BlockReason,
        used: int,
        enforced_by: EnforcedBy,
        now: datetime,
        collision: CollisionReport,
    ) -> QuotaDecision:
        return QuotaDecision(
            allowed=allowed,
            reason=reason,
            remaining=max(0, self.daily_limit - used) if allowed else 0,
            used_today=used,
            daily_limit=self.daily_limit,
            strategy=enforced_by,
            reset_at=next_midnight(now),
            collision=collision,
        )

    def __str__(self) -> str:
        return (
            f"QuotaDecisionEngine(store={self.store}, strategy={self.strategy.value}, "
            f"daily_limit={self.daily_limit}, fail_open={self.fail_open})"
        )
