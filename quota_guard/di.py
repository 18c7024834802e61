from typing import Any, Literal

import redis.asyncio as redis
from dependency_injector import containers, providers

from quota_guard.models import EnforcementStrategy
from quota_guard.service.association_tracker import AssociationTracker
from quota_guard.service.collision_detector import CollisionDetector
from quota_guard.service.quota_engine import QuotaDecisionEngine
from quota_guard.service.quota_store.redis_quota_store import RedisQuotaStore
from quota_guard.service.verification.null_verification_gate import (
    NullVerificationGate,
)
from quota_guard.service.verification.turnstile import TurnstileVerificationGate
from quota_guard.strategy.extractor.client_address import ClientAddressExtractor
from quota_guard.strategy.extractor.fingerprint import QuotaRequestExtractor
from quota_guard.utils.day_window import local_clock


def as_bool(value: Any) -> bool:
    return value.lower() == "true" if isinstance(value, str) else bool(value)


class AppConfiguration(providers.Configuration):
    def is_verification_enabled(self) -> Literal["true", "false"]:
        """Check if human verification is enabled."""
        return "true" if self.verification.secret() else "false"


class Container(containers.DeclarativeContainer):
    """Dependency Injection Container for the quota guard."""

    config = AppConfiguration()

    redis_client: providers.Singleton = providers.Singleton(
        redis.Redis.from_url,
        url=config.redis.url,
        socket_timeout=config.redis.socket_timeout.as_float(),
        decode_responses=True,
    )

    store: providers.Singleton = providers.Singleton(
        RedisQuotaStore,
        redis_client=redis_client,
    )

    clock: providers.Singleton = providers.Singleton(
        local_clock,
        timezone=config.quota.timezone,
    )

    tracker: providers.Singleton = providers.Singleton(
        AssociationTracker,
        store=store,
        window_seconds=config.association.window_seconds.as_int(),
        symmetric=config.association.symmetric.as_(as_bool),
        key_prefix=config.quota.key_prefix,
    )

    detector: providers.Singleton = providers.Singleton(
        CollisionDetector,
        fingerprint_threshold=config.collision.fingerprint_threshold.as_int(),
        address_threshold=config.collision.address_threshold.as_int(),
    )

    engine: providers.Singleton = providers.Singleton(
        QuotaDecisionEngine,
        store=store,
        tracker=tracker,
        detector=detector,
        daily_limit=config.quota.daily_limit.as_int(),
        strategy=config.quota.strategy.as_(EnforcementStrategy),
        key_prefix=config.quota.key_prefix,
        timeout_seconds=config.quota.timeout_seconds.as_float(),
        fail_open=config.quota.fail_open.as_(as_bool),
        clock=clock,
    )

    address_extractor: providers.Singleton = providers.Singleton(
        ClientAddressExtractor,
        headers=config.identity.address_headers,
    )

    request_extractor: providers.Singleton = providers.Singleton(
        QuotaRequestExtractor,
        address_extractor=address_extractor,
        min_fingerprint_length=config.identity.min_fingerprint_length.as_int(),
    )

    verification_gate: providers.Selector = providers.Selector(
        config.is_verification_enabled,
        true=providers.Singleton(
            TurnstileVerificationGate,
            secret=config.verification.secret,
            verify_url=config.verification.verify_url,
            timeout=config.verification.timeout_seconds.as_float(),
        ),
        false=providers.Singleton(NullVerificationGate),
    )
