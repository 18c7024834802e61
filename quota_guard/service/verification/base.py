"""Base class for human verification gates."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    failure_codes: List[str] = field(default_factory=list)


class HumanVerificationGate(ABC):
    """
    Abstract base class for challenge verification providers.

    A gate checks a one-time challenge token solved by the client before the
    quota engine is invoked.
    """

    @abstractmethod
    async def verify(self, token: str | None, client_address: str) -> VerificationResult:
        """
        Validate a challenge token.

        Args:
            token: Token produced by the client-side challenge widget
            client_address: Resolved client address

        Returns:
            The provider's verdict

        Raises:
            VerificationUnavailableError: if the provider cannot be reached
        """
        pass

    @property
    def enabled(self) -> bool:
        return True

    async def close(self) -> None:
        return None
