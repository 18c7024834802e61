"""Domain types shared by the tracker, detector, engine and HTTP layer."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

UNKNOWN_ADDRESS = "unknown"


class EnforcementStrategy(str, Enum):
    """How a fingerprint collision affects quota enforcement."""

    STRICT_BLOCK = "strict-block"
    ADAPTIVE_COMBINED = "adaptive-combined"


class CounterDimension(str, Enum):
    """Daily usage counter families."""

    FINGERPRINT = "fp"
    ADDRESS = "addr"
    PAIR = "pair"


class EnforcedBy(str, Enum):
    """Counter a decision was enforced on."""

    FINGERPRINT_ONLY = "fingerprint-only"
    COMBINED = "combined"


class BlockReason(str, Enum):
    NONE = "none"
    FINGERPRINT_COLLISION = "fingerprint-collision"
    ADDRESS_COLLISION = "address-collision"
    DAILY_LIMIT = "daily-limit"


@dataclass(frozen=True)
class AssociationCounts:
    """Distinct peers seen for each side of an identity pair."""

    fp_peer_count: int
    addr_peer_count: int


@dataclass(frozen=True)
class CollisionStatus:
    detected: bool
    count: int
    threshold: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected": self.detected,
            "count": self.count,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class CollisionReport:
    fingerprint: CollisionStatus
    address: CollisionStatus

    @property
    def any(self) -> bool:
        return self.fingerprint.detected or self.address.detected

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprintCollision": self.fingerprint.to_dict(),
            "addressCollision": self.address.to_dict(),
        }


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check. Computed per request, never persisted."""

    allowed: bool
    reason: BlockReason
    remaining: int
    used_today: int
    daily_limit: int
    strategy: EnforcedBy
    reset_at: datetime
    collision: CollisionReport
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "allowed": self.allowed,
            "usedToday": self.used_today,
            "remaining": self.remaining,
            "dailyLimit": self.daily_limit,
            "resetAt": self.reset_at.isoformat(),
            "strategy": self.strategy.value,
            "collision": self.collision.to_dict(),
        }
        if not self.allowed:
            data["reason"] = self.reason.value
        if self.degraded:
            data["degraded"] = True
        return data


@dataclass
class QuotaRequestBody:
    """JSON body accepted by the metered endpoint."""

    fingerprint: Optional[str] = None
    verificationToken: Optional[str] = None


@dataclass(frozen=True)
class QuotaRequest:
    """A validated request, ready for the engine."""

    fingerprint: str
    address: str
    verification_token: Optional[str] = field(default=None, repr=False)
