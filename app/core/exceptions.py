from typing import Optional

from fastapi import status


class FeedError(Exception):
    """Base class for errors surfaced to the user.

    ``message`` is shown as-is in the page or returned as the ``detail`` of a
    JSON error response.
    """

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(FeedError):
    """Rejected before any provider call (empty content, bad email, ...)."""


class AuthRequiredError(FeedError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthenticationError(FeedError):
    """The provider refused a sign-up or sign-in."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class GatewayError(FeedError):
    """A provider write, read or sign-out failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
