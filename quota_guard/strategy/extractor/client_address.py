"""Client address resolution from proxy headers."""

import logging
from typing import Mapping, Optional, Sequence

from starlette.requests import Request

from quota_guard.models import UNKNOWN_ADDRESS
from quota_guard.strategy.extractor.base import IdentityExtractorStrategy

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS_HEADERS: Sequence[str] = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "true-client-ip",
    "x-vercel-forwarded-for",
    "fly-client-ip",
)


def first_forwarded_value(value: str) -> str:
    """Return the left-most entry of a comma-separated forwarding list."""
    return value.split(",")[0].strip()


class ClientAddressExtractor(IdentityExtractorStrategy[str]):
    """
    Resolve the client address from proxy headers.

    Headers are inspected in strict priority order; the first one with a
    non-empty value wins. Every header is read as a forwarding list and only
    its first entry is kept. When no header yields a value, the
    ``"unknown"`` sentinel is returned. The socket peer is never used: behind
    a proxy it is the proxy's own address.
    """

    def __init__(self, headers: Optional[Sequence[str]] = None):
        """
        Initialize the extractor.

        Args:
            headers: Header names in priority order, defaults to
                ``DEFAULT_ADDRESS_HEADERS``
        """
        self.headers = [h.lower() for h in (headers or DEFAULT_ADDRESS_HEADERS)]

    def resolve(self, headers: Mapping[str, str]) -> str:
        for name in self.headers:
            raw = headers.get(name)
            if not raw:
                continue
            address = first_forwarded_value(raw)
            if address:
                logger.debug("Resolved client address %s from %s", address, name)
                return address
        return UNKNOWN_ADDRESS

    def __call__(self, request: Request) -> str:
        return self.resolve(request.headers)

    def __str__(self) -> str:
        return f"ClientAddressExtractor(headers={self.headers})"
