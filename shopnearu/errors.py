"""
Exception hierarchy for shop discovery.

Only QueryFailure and MutationFailure are meant to reach the user.
LocationUnavailable is raised by the host wrapper and absorbed by the
GeoLocator; per-shop ApiError instances are absorbed by the enricher.
"""
from __future__ import annotations


class ShopNearUError(Exception):
    """Base class for all errors raised by this package."""


class ApiError(ShopNearUError):
    """Non-success response from the shop API."""

    def __init__(self, message: str, status: int, details: str | None = None) -> None:
        self.message = message
        self.status = status
        self.details = details
        super().__init__(f"API Error {status}: {message}")

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401


class QueryFailure(ShopNearUError):
    """The nearby-shop query could not be completed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.message = message
        self.status = status
        super().__init__(message)


class MutationFailure(ShopNearUError):
    """A subscribe or unsubscribe call was rejected or did not complete."""

    def __init__(self, shop_id: int, message: str) -> None:
        self.shop_id = shop_id
        self.message = message
        super().__init__(f"Subscription update for shop {shop_id} failed: {message}")


class AuthenticationRequired(ShopNearUError):
    """A session is required for the attempted action."""


class LocationUnavailable(ShopNearUError):
    """The host could not provide a position (unsupported, denied, timed out)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Location unavailable: {reason}")
