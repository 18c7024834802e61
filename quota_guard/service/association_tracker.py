"""Time-bounded fingerprint <-> address association sets."""

import asyncio
import logging

from quota_guard.models import UNKNOWN_ADDRESS, AssociationCounts
from quota_guard.service.quota_store.base import QuotaStore

logger = logging.getLogger(__name__)


class AssociationTracker:
    """
    Track which addresses a fingerprint was seen from, and which fingerprints
    an address was seen with.

    Each set expires ``window_seconds`` after its most recent write. The
    current pair is added before the sets are sized, so a request counts
    towards its own collision check.
    """

    def __init__(
        self,
        store: QuotaStore,
        window_seconds: int = 3600,
        symmetric: bool = True,
        key_prefix: str = "quota",
    ):
        """
        Initialize the tracker.

        Args:
            store: Counter store
            window_seconds: Idle lifetime of an association set
            symmetric: Track address -> fingerprints as well; when False only
                fingerprint -> addresses is tracked and the address side
                always reports 0
            key_prefix: Prefix of every store key
        """
        self.store = store
        self.window_seconds = window_seconds
        self.symmetric = symmetric
        self.key_prefix = key_prefix

    def fingerprint_key(self, fingerprint: str) -> str:
        return f"{self.key_prefix}:assoc:fp:{fingerprint}"

    def address_key(self, address: str) -> str:
        return f"{self.key_prefix}:assoc:addr:{address}"

    async def record(self, fingerprint: str, address: str) -> AssociationCounts:
        """Add the pair to both sets and return their sizes afterwards."""
        if address == UNKNOWN_ADDRESS:
            # no usable address: nothing to write, but earlier collisions still count
            logger.debug("Skipping association writes for unknown address")
            return await self.peek(fingerprint, address)

        fp_side = self._add_and_count(self.fingerprint_key(fingerprint), address)
        if self.symmetric:
            fp_count, addr_count = await asyncio.gather(
                fp_side,
                self._add_and_count(self.address_key(address), fingerprint),
            )
        else:
            fp_count, addr_count = await fp_side, 0

        logger.debug(
            "Associations for %s@%s: %d addresses, %d fingerprints",
            fingerprint,
            address,
            fp_count,
            addr_count,
        )
        return AssociationCounts(fp_peer_count=fp_count, addr_peer_count=addr_count)

    async def peek(self, fingerprint: str, address: str) -> AssociationCounts:
        """Read the set sizes without recording anything."""
        if address == UNKNOWN_ADDRESS:
            fp_count = await self.store.scard(self.fingerprint_key(fingerprint))
            return AssociationCounts(fp_peer_count=fp_count, addr_peer_count=0)

        if self.symmetric:
            fp_count, addr_count = await asyncio.gather(
                self.store.scard(self.fingerprint_key(fingerprint)),
                self.store.scard(self.address_key(address)),
            )
        else:
            fp_count, addr_count = await self.store.scard(self.fingerprint_key(fingerprint)), 0
        return AssociationCounts(fp_peer_count=fp_count, addr_peer_count=addr_count)

    async def _add_and_count(self, set_key: str, member: str) -> int:
        # the write and its TTL refresh must land before the set is sized
        await self.store.sadd(set_key, member)
        await self.store.expire(set_key, self.window_seconds)
        return await self.store.scard(set_key)

    def __str__(self) -> str:
        return (
            f"AssociationTracker(window_seconds={self.window_seconds}, "
            f"symmetric={self.symmetric})"
        )
