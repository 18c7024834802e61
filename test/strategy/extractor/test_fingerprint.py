"""
Tests for fingerprint validation and request decoding.
"""

import json

import pytest
from starlette.datastructures import Headers
from starlette.requests import Request

from quota_guard.errors import InputError, InputErrorCode
from quota_guard.strategy.extractor.client_address import ClientAddressExtractor
from quota_guard.strategy.extractor.fingerprint import (
    QuotaRequestExtractor,
    parse_request_body,
    validate_fingerprint,
)


def make_request(
    body: bytes = b"", headers: dict | None = None, query: str = ""
) -> Request:
    async def receive() -> dict:
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": "POST",
        "path": "/quota",
        "query_string": query.encode(),
        "headers": Headers(headers or {}).raw,
    }
    return Request(scope, receive)


@pytest.fixture
def extractor() -> QuotaRequestExtractor:
    return QuotaRequestExtractor(ClientAddressExtractor())


@pytest.mark.parametrize(
    "raw, code",
    [
        (None, InputErrorCode.MISSING_FINGERPRINT),
        ("   ", InputErrorCode.MISSING_FINGERPRINT),
        (1234567890123, InputErrorCode.INVALID_FINGERPRINT_TYPE),
        ("short", InputErrorCode.FINGERPRINT_TOO_SHORT),
        ("abcdefghi", InputErrorCode.FINGERPRINT_TOO_SHORT),
    ],
)
def test_invalid_fingerprints(raw, code) -> None:
    with pytest.raises(InputError) as exc_info:
        validate_fingerprint(raw)

    assert exc_info.value.input_code is code
    assert exc_info.value.status_code == 400


def test_valid_fingerprint_is_trimmed() -> None:
    assert validate_fingerprint("  abcdefghij ") == "abcdefghij"


def test_body_with_wrong_fingerprint_type() -> None:
    with pytest.raises(InputError) as exc_info:
        parse_request_body({"fingerprint": ["abcdefghij"]})

    assert exc_info.value.input_code is InputErrorCode.INVALID_FINGERPRINT_TYPE


def test_body_must_be_an_object() -> None:
    with pytest.raises(InputError) as exc_info:
        parse_request_body(["abcdefghij"])

    assert exc_info.value.input_code is InputErrorCode.MALFORMED_BODY


def test_body_ignores_unrelated_fields() -> None:
    body = parse_request_body(
        {"fingerprint": "abcdefghij", "verificationToken": "tok", "prompt": "hi"}
    )

    assert body.fingerprint == "abcdefghij"
    assert body.verificationToken == "tok"


async def test_extract_from_body(extractor: QuotaRequestExtractor) -> None:
    request = make_request(
        json.dumps({"fingerprint": "abcdefghij", "verificationToken": "tok"}).encode(),
        headers={"x-forwarded-for": "203.0.113.5", "content-type": "application/json"},
    )

    quota_request = await extractor(request)

    assert quota_request.fingerprint == "abcdefghij"
    assert quota_request.address == "203.0.113.5"
    assert quota_request.verification_token == "tok"


async def test_visitor_id_header_takes_precedence(
    extractor: QuotaRequestExtractor,
) -> None:
    request = make_request(
        json.dumps({"fingerprint": "from-the-body"}).encode(),
        headers={"x-visitor-id": "from-the-header"},
    )

    quota_request = await extractor(request)

    assert quota_request.fingerprint == "from-the-header"
    assert quota_request.address == "unknown"


async def test_empty_body_without_header(extractor: QuotaRequestExtractor) -> None:
    with pytest.raises(InputError) as exc_info:
        await extractor(make_request())

    assert exc_info.value.input_code is InputErrorCode.MISSING_FINGERPRINT


async def test_invalid_json(extractor: QuotaRequestExtractor) -> None:
    with pytest.raises(InputError) as exc_info:
        await extractor(make_request(b"{not json"))

    assert exc_info.value.input_code is InputErrorCode.MALFORMED_BODY


def test_from_query(extractor: QuotaRequestExtractor) -> None:
    request = make_request(query="fingerprint=abcdefghij", headers={"x-real-ip": "10.1.1.1"})

    quota_request = extractor.from_query(request)

    assert quota_request.fingerprint == "abcdefghij"
    assert quota_request.address == "10.1.1.1"
    assert quota_request.verification_token is None
