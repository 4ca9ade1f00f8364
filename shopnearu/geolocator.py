"""
GeoLocator: turns a callback-style host location capability into a
single-resolution awaitable with a timeout and a fixed fallback position.

This is a pure asyncio primitive with no network dependencies.
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
from typing import Any, Callable, Protocol

from .const import (
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    GEOLOCATION_HIGH_ACCURACY,
    GEOLOCATION_TIMEOUT,
    NOTICE_FALLBACK_DENIED,
    NOTICE_FALLBACK_UNSUPPORTED,
    NOTICE_NOT_SUPPORTED,
    NOTICE_ON_DEMAND_FAILED,
    NOTICE_PRECISE,
)
from .errors import LocationUnavailable
from .models import Position

_LOGGER = logging.getLogger(__name__)


class LocationHost(Protocol):
    """Host location capability (browser-like callback API)."""

    def get_current_position(
        self,
        on_success: Callable[[Any], None],
        on_error: Callable[[Any], None],
        options: dict,
    ) -> None:
        ...


class LocationSource(enum.Enum):
    PRECISE = "precise"
    FALLBACK_UNSUPPORTED = "fallback_unsupported"
    FALLBACK_DENIED = "fallback_denied"
    NOT_SUPPORTED = "not_supported"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class LocationFix:
    """Outcome of one acquisition: a position (if any) plus a provenance notice."""

    position: Position | None
    source: LocationSource
    notice: str

    @property
    def is_precise(self) -> bool:
        return self.source is LocationSource.PRECISE


def _to_position(reported: Any) -> Position:
    """Accept a Position, an object with latitude/longitude (or .coords), or a pair."""
    if isinstance(reported, Position):
        return reported
    coords = getattr(reported, "coords", reported)
    if hasattr(coords, "latitude") and hasattr(coords, "longitude"):
        return Position(float(coords.latitude), float(coords.longitude))
    latitude, longitude = coords
    return Position(float(latitude), float(longitude))


class GeoLocator:
    """
    Acquires the viewer's position.

    acquire() always resolves with a usable position; acquire_on_demand()
    resolves with position=None when the host cannot help.
    """

    def __init__(
        self,
        host: LocationHost | None,
        default_position: Position | None = None,
        timeout: float = GEOLOCATION_TIMEOUT,
    ) -> None:
        self._host = host
        self.default_position = default_position or Position(DEFAULT_LATITUDE, DEFAULT_LONGITUDE)
        self.timeout = timeout

    @classmethod
    def from_config(cls, host: LocationHost | None, config: dict) -> "GeoLocator":
        return cls(
            host,
            Position(config["default_latitude"], config["default_longitude"]),
            timeout=config["geolocation_timeout"],
        )

    @property
    def is_supported(self) -> bool:
        return self._host is not None

    async def acquire(self) -> LocationFix:
        """Resolve the current position, falling back to the default on any failure."""
        if not self.is_supported:
            _LOGGER.info("Geolocation unsupported, using default position")
            return LocationFix(
                self.default_position,
                LocationSource.FALLBACK_UNSUPPORTED,
                NOTICE_FALLBACK_UNSUPPORTED,
            )
        try:
            position = await self._request_position()
        except LocationUnavailable as exc:
            _LOGGER.warning("%s, using default position", exc)
            return LocationFix(
                self.default_position,
                LocationSource.FALLBACK_DENIED,
                NOTICE_FALLBACK_DENIED,
            )
        return LocationFix(position, LocationSource.PRECISE, NOTICE_PRECISE)

    async def acquire_on_demand(self) -> LocationFix:
        """Resolve the current position for an explicit user request; no fallback."""
        if not self.is_supported:
            return LocationFix(None, LocationSource.NOT_SUPPORTED, NOTICE_NOT_SUPPORTED)
        try:
            position = await self._request_position()
        except LocationUnavailable as exc:
            _LOGGER.warning("On-demand location failed: %s", exc)
            return LocationFix(None, LocationSource.FAILED, NOTICE_ON_DEMAND_FAILED)
        return LocationFix(position, LocationSource.PRECISE, NOTICE_PRECISE)

    async def _request_position(self) -> Position:
        """
        Ask the host once and race the answer against the timeout.

        Raises LocationUnavailable on host error, timeout, or a malformed report.
        Late or repeated callbacks are ignored.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _settle(outcome: Any, failed: bool) -> None:
            if future.done():
                return
            if failed:
                future.set_exception(LocationUnavailable(str(outcome) or "denied"))
            else:
                future.set_result(outcome)

        def on_success(reported: Any) -> None:
            loop.call_soon_threadsafe(_settle, reported, False)

        def on_error(error: Any) -> None:
            loop.call_soon_threadsafe(_settle, error, True)

        options = {
            "enable_high_accuracy": GEOLOCATION_HIGH_ACCURACY,
            "timeout_ms": int(self.timeout * 1000),
        }
        try:
            self._host.get_current_position(on_success, on_error, options)
        except Exception as exc:  # noqa: BLE001
            raise LocationUnavailable(f"host error: {exc}") from exc

        try:
            reported = await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise LocationUnavailable("timeout") from exc

        try:
            return _to_position(reported)
        except (TypeError, ValueError) as exc:
            raise LocationUnavailable(f"malformed position {reported!r}") from exc
