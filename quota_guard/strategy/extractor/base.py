from typing import Protocol, TypeVar
from starlette.requests import Request


T_co = TypeVar("T_co", covariant=True)


class IdentityExtractorStrategy(Protocol[T_co]):
    """
    Protocol for identity extraction strategies.
    This protocol defines a method for extracting an identity value from requests.
    """

    def __call__(self, request: Request) -> T_co: ...
