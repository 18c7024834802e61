"""Error taxonomy surfaced by the quota guard.

Collision and daily-limit blocks are not errors: they are regular
decisions returned by the engine and rendered as 429 responses.
"""

from enum import Enum
from typing import List, Optional


class InputErrorCode(str, Enum):
    """Enumerated request validation failures."""

    MALFORMED_BODY = "MALFORMED_BODY"
    MISSING_FINGERPRINT = "MISSING_FINGERPRINT"
    INVALID_FINGERPRINT_TYPE = "INVALID_FINGERPRINT_TYPE"
    FINGERPRINT_TOO_SHORT = "FINGERPRINT_TOO_SHORT"


class QuotaGuardError(Exception):
    """Base class for errors converted to HTTP responses."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InputError(QuotaGuardError):
    """The request is invalid. Terminal, never retried."""

    status_code = 400

    def __init__(self, code: InputErrorCode, message: str):
        super().__init__(message, code=code.value)
        self.input_code = code


class VerificationError(QuotaGuardError):
    """The human verification challenge failed or expired.

    The client must solve a new challenge; tokens are single use.
    """

    status_code = 403
    code = "VERIFICATION_FAILED"

    def __init__(self, message: str, failure_codes: Optional[List[str]] = None):
        super().__init__(message)
        self.failure_codes = failure_codes or []

    def to_dict(self) -> dict:
        return {**super().to_dict(), "failureCodes": self.failure_codes}


class ServiceUnavailableError(QuotaGuardError):
    """A backing service did not answer. The request fails closed."""

    status_code = 500
    code = "SERVICE_UNAVAILABLE"


class StoreError(ServiceUnavailableError):
    """The counter store raised or timed out."""

    code = "STORE_UNAVAILABLE"


class VerificationUnavailableError(ServiceUnavailableError):
    """The verification provider could not be reached."""

    code = "VERIFICATION_UNAVAILABLE"
