"""Fingerprint validation and request schema decoding."""

import json
import logging
from typing import Any, Optional

from dacite import DaciteError, from_dict
from starlette.requests import Request

from quota_guard.errors import InputError, InputErrorCode
from quota_guard.models import QuotaRequest, QuotaRequestBody
from quota_guard.strategy.extractor.client_address import ClientAddressExtractor

logger = logging.getLogger(__name__)

DEFAULT_MIN_FINGERPRINT_LENGTH = 10
VISITOR_ID_HEADER = "x-visitor-id"


def validate_fingerprint(
    raw: Any, min_length: int = DEFAULT_MIN_FINGERPRINT_LENGTH
) -> str:
    """
    Validate a client-supplied fingerprint.

    The fingerprint is an untrusted identity hint: only its presence, type
    and length are checked.

    Args:
        raw: Value found in the request
        min_length: Minimum accepted length after trimming

    Returns:
        The trimmed fingerprint

    Raises:
        InputError: if the value is absent, not a string or too short
    """
    if raw is None:
        raise InputError(InputErrorCode.MISSING_FINGERPRINT, "Fingerprint is required")
    if not isinstance(raw, str):
        raise InputError(
            InputErrorCode.INVALID_FINGERPRINT_TYPE, "Fingerprint must be a string"
        )
    fingerprint = raw.strip()
    if not fingerprint:
        raise InputError(InputErrorCode.MISSING_FINGERPRINT, "Fingerprint is required")
    if len(fingerprint) < min_length:
        raise InputError(
            InputErrorCode.FINGERPRINT_TOO_SHORT,
            f"Fingerprint must be at least {min_length} characters long",
        )
    return fingerprint


def parse_request_body(data: Any) -> QuotaRequestBody:
    """Decode a JSON document into the request body schema."""
    if data is None:
        return QuotaRequestBody()
    if not isinstance(data, dict):
        raise InputError(InputErrorCode.MALFORMED_BODY, "Request body must be a JSON object")
    try:
        return from_dict(data_class=QuotaRequestBody, data=data)
    except DaciteError as e:
        logger.debug("Rejected request body: %s", str(e))
        if getattr(e, "field_path", None) == "fingerprint":
            raise InputError(
                InputErrorCode.INVALID_FINGERPRINT_TYPE, "Fingerprint must be a string"
            ) from e
        raise InputError(InputErrorCode.MALFORMED_BODY, "Request body is invalid") from e


class QuotaRequestExtractor:
    """
    Build a validated ``QuotaRequest`` from an incoming HTTP request.

    The fingerprint comes from the ``x-visitor-id`` header when present,
    otherwise from the JSON body (``POST``) or the ``fingerprint`` query
    parameter (``GET``). The address always comes from headers, never from
    the body.
    """

    def __init__(
        self,
        address_extractor: ClientAddressExtractor,
        min_fingerprint_length: int = DEFAULT_MIN_FINGERPRINT_LENGTH,
    ):
        self.address_extractor = address_extractor
        self.min_fingerprint_length = min_fingerprint_length

    async def __call__(self, request: Request) -> QuotaRequest:
        """Validate a mutating (``POST``) request."""
        raw_body = await request.body()
        if raw_body.strip():
            try:
                data = json.loads(raw_body)
            except ValueError as e:
                raise InputError(
                    InputErrorCode.MALFORMED_BODY, "Request body is not valid JSON"
                ) from e
        else:
            data = None

        body = parse_request_body(data)
        fingerprint = self._header_fingerprint(request) or body.fingerprint
        return QuotaRequest(
            fingerprint=validate_fingerprint(fingerprint, self.min_fingerprint_length),
            address=self.address_extractor(request),
            verification_token=body.verificationToken,
        )

    def from_query(self, request: Request) -> QuotaRequest:
        """Validate a read-only (``GET``) request."""
        fingerprint = self._header_fingerprint(request) or request.query_params.get(
            "fingerprint"
        )
        return QuotaRequest(
            fingerprint=validate_fingerprint(fingerprint, self.min_fingerprint_length),
            address=self.address_extractor(request),
        )

    @staticmethod
    def _header_fingerprint(request: Request) -> Optional[str]:
        value = request.headers.get(VISITOR_ID_HEADER, "").strip()
        return value or None

    def __str__(self) -> str:
        return (
            f"QuotaRequestExtractor(address_extractor={self.address_extractor}, "
            f"min_fingerprint_length={self.min_fingerprint_length})"
        )
