"""Cloudflare Turnstile challenge verification."""

import logging
from typing import Any, Dict

import httpx

from quota_guard.errors import VerificationUnavailableError
from quota_guard.models import UNKNOWN_ADDRESS
from quota_guard.service.verification.base import HumanVerificationGate, VerificationResult

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


class TurnstileVerificationGate(HumanVerificationGate):
    """
    Verify Turnstile tokens against Cloudflare's ``siteverify`` endpoint.

    The secret key never leaves the server. Tokens are single use on the
    provider side: a replayed token comes back with ``timeout-or-duplicate``.
    """

    def __init__(
        self,
        secret: str,
        verify_url: str = DEFAULT_VERIFY_URL,
        timeout: float = 5.0,
    ):
        """
        Initialize the gate.

        Args:
            secret: Server-held Turnstile secret key
            verify_url: Verification endpoint
            timeout: HTTP request timeout in seconds
        """
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout)

    async def verify(self, token: str | None, client_address: str) -> VerificationResult:
        if not token:
            return VerificationResult(ok=False, failure_codes=["missing-input-response"])

        form: Dict[str, str] = {"secret": self.secret, "response": token}
        if client_address != UNKNOWN_ADDRESS:
            form["remoteip"] = client_address

        try:
            response = await self.client.post(self.verify_url, data=form)
            response.raise_for_status()
            payload: Dict[str, Any] = response.json()
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.error("Turnstile verification request failed: %s", str(e))
            raise VerificationUnavailableError(
                "Verification provider is unavailable"
            ) from e
        except ValueError as e:
            logger.error("Turnstile returned an unreadable response: %s", str(e))
            raise VerificationUnavailableError(
                "Verification provider is unavailable"
            ) from e

        ok = payload.get("success") is True
        failure_codes = [str(code) for code in payload.get("error-codes") or []]
        if not ok:
            logger.info(
                "Turnstile rejected token from %s: %s", client_address, failure_codes
            )
        return VerificationResult(ok=ok, failure_codes=failure_codes)

    async def close(self) -> None:
        await self.client.aclose()

    def __str__(self) -> str:
        return f"TurnstileVerificationGate(verify_url='{self.verify_url}', secret=[REDACTED])"
