"""Null verification gate that accepts every request."""

from quota_guard.service.verification.base import HumanVerificationGate, VerificationResult


class NullVerificationGate(HumanVerificationGate):
    """
    Null gate implementation that always passes.

    Used when no verification secret is configured.
    """

    async def verify(self, token: str | None, client_address: str) -> VerificationResult:
        return VerificationResult(ok=True)

    @property
    def enabled(self) -> bool:
        return False

    def __str__(self) -> str:
        return "NullVerificationGate()"
