"""
DiscoveryState: immutable snapshot of one discovery page visit, and the
pure reduce(state, event) transition function that drives it.

Always replace via reduce() / dataclasses.replace(); never mutate in place.
Events that belong to a load carry the generation they were started under;
when it is no longer the current generation the event is a no-op.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Mapping

from .const import DEFAULT_RADIUS, RADIUS_CHOICES, VIEW_MODE_LIST, VIEW_MODES
from .discovery_utils import (
    apply_subscription_flip,
    matches_search,
    merge_details,
    replace_shop,
    unique_summaries,
)
from .geolocator import LocationFix, LocationSource
from .models import EnrichedShop, Position, ShopDetail, ShopSummary

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class DiscoveryState:
    """Everything the list and map views render from."""

    position: Position | None = None
    radius_meters: int = DEFAULT_RADIUS
    search_text: str = ""
    view_mode: str = VIEW_MODE_LIST
    shops: tuple[EnrichedShop, ...] = ()
    pending_subscription_shop_ids: frozenset[int] = frozenset()

    # Most recent full-load request; results from older loads are discarded
    generation: int = 0
    loading: bool = False
    # Query failure message; blocks rendering of results while set
    error: str | None = None
    location_notice: str | None = None
    location_source: LocationSource | None = None
    # Last subscribe/unsubscribe failure message
    mutation_error: str | None = None

    def get_shop(self, shop_id: int) -> EnrichedShop | None:
        for shop in self.shops:
            if shop.id == shop_id:
                return shop
        return None

    def is_pending(self, shop_id: int) -> bool:
        return shop_id in self.pending_subscription_shop_ids


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class LoadStarted:
    generation: int


@dataclasses.dataclass(frozen=True)
class PositionResolved:
    generation: int
    fix: LocationFix


@dataclasses.dataclass(frozen=True)
class ShopsLoaded:
    generation: int
    summaries: tuple[ShopSummary, ...]


@dataclasses.dataclass(frozen=True)
class DetailsLoaded:
    generation: int
    details: Mapping[int, ShopDetail]


@dataclasses.dataclass(frozen=True)
class LoadFailed:
    generation: int
    message: str


@dataclasses.dataclass(frozen=True)
class LocationNoticeChanged:
    notice: str
    source: LocationSource | None = None


@dataclasses.dataclass(frozen=True)
class RadiusChanged:
    radius_meters: int


@dataclasses.dataclass(frozen=True)
class SearchChanged:
    search_text: str


@dataclasses.dataclass(frozen=True)
class ViewModeChanged:
    view_mode: str


@dataclasses.dataclass(frozen=True)
class SubscriptionStarted:
    generation: int
    shop_id: int
    subscribe: bool


@dataclasses.dataclass(frozen=True)
class SubscriptionSucceeded:
    generation: int
    shop_id: int


@dataclasses.dataclass(frozen=True)
class SubscriptionFailed:
    generation: int
    shop_id: int
    previous: ShopDetail
    message: str


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _on_load_started(state: DiscoveryState, event: LoadStarted) -> DiscoveryState:
    if event.generation <= state.generation:
        _LOGGER.debug(
            "Ignoring load generation %s (current %s)", event.generation, state.generation
        )
        return state
    return dataclasses.replace(state, generation=event.generation, loading=True, error=None)


def _on_position_resolved(state: DiscoveryState, event: PositionResolved) -> DiscoveryState:
    if event.fix.position is None:
        return dataclasses.replace(
            state, location_notice=event.fix.notice, location_source=event.fix.source
        )
    return dataclasses.replace(
        state,
        position=event.fix.position,
        location_notice=event.fix.notice,
        location_source=event.fix.source,
    )


def _on_shops_loaded(state: DiscoveryState, event: ShopsLoaded) -> DiscoveryState:
    shops = tuple(EnrichedShop(summary) for summary in unique_summaries(event.summaries))
    return dataclasses.replace(
        state,
        shops=shops,
        pending_subscription_shop_ids=frozenset(),
        loading=False,
        error=None,
    )


def _on_details_loaded(state: DiscoveryState, event: DetailsLoaded) -> DiscoveryState:
    return dataclasses.replace(
        state,
        shops=merge_details(state.shops, event.details, state.pending_subscription_shop_ids),
    )


def _on_load_failed(state: DiscoveryState, event: LoadFailed) -> DiscoveryState:
    return dataclasses.replace(
        state,
        shops=(),
        pending_subscription_shop_ids=frozenset(),
        loading=False,
        error=event.message,
    )


def _on_location_notice(state: DiscoveryState, event: LocationNoticeChanged) -> DiscoveryState:
    return dataclasses.replace(
        state,
        location_notice=event.notice,
        location_source=event.source if event.source is not None else state.location_source,
    )


def _on_radius_changed(state: DiscoveryState, event: RadiusChanged) -> DiscoveryState:
    if event.radius_meters not in RADIUS_CHOICES:
        raise ValueError(f"radius must be one of {RADIUS_CHOICES}, got {event.radius_meters}")
    return dataclasses.replace(state, radius_meters=event.radius_meters)


def _on_search_changed(state: DiscoveryState, event: SearchChanged) -> DiscoveryState:
    return dataclasses.replace(state, search_text=event.search_text)


def _on_view_mode_changed(state: DiscoveryState, event: ViewModeChanged) -> DiscoveryState:
    if event.view_mode not in VIEW_MODES:
        raise ValueError(f"view mode must be one of {VIEW_MODES}, got {event.view_mode!r}")
    return dataclasses.replace(state, view_mode=event.view_mode)


def _on_subscription_started(state: DiscoveryState, event: SubscriptionStarted) -> DiscoveryState:
    shop = state.get_shop(event.shop_id)
    if shop is None or shop.detail is None or state.is_pending(event.shop_id):
        return state
    flipped = apply_subscription_flip(shop.detail, event.subscribe)
    return dataclasses.replace(
        state,
        shops=replace_shop(state.shops, event.shop_id, flipped),
        pending_subscription_shop_ids=state.pending_subscription_shop_ids | {event.shop_id},
        mutation_error=None,
    )


def _on_subscription_succeeded(
    state: DiscoveryState, event: SubscriptionSucceeded
) -> DiscoveryState:
    if not state.is_pending(event.shop_id):
        return state
    return dataclasses.replace(
        state,
        pending_subscription_shop_ids=state.pending_subscription_shop_ids - {event.shop_id},
    )


def _on_subscription_failed(state: DiscoveryState, event: SubscriptionFailed) -> DiscoveryState:
    if not state.is_pending(event.shop_id):
        return state
    return dataclasses.replace(
        state,
        shops=replace_shop(state.shops, event.shop_id, event.previous),
        pending_subscription_shop_ids=state.pending_subscription_shop_ids - {event.shop_id},
        mutation_error=event.message,
    )


_REDUCERS: dict[type, Callable] = {
    LoadStarted: _on_load_started,
    PositionResolved: _on_position_resolved,
    ShopsLoaded: _on_shops_loaded,
    DetailsLoaded: _on_details_loaded,
    LoadFailed: _on_load_failed,
    LocationNoticeChanged: _on_location_notice,
    RadiusChanged: _on_radius_changed,
    SearchChanged: _on_search_changed,
    ViewModeChanged: _on_view_mode_changed,
    SubscriptionStarted: _on_subscription_started,
    SubscriptionSucceeded: _on_subscription_succeeded,
    SubscriptionFailed: _on_subscription_failed,
}

# Events that must match the current generation to be applied
_GENERATION_SCOPED = (
    PositionResolved,
    ShopsLoaded,
    DetailsLoaded,
    LoadFailed,
    SubscriptionStarted,
    SubscriptionSucceeded,
    SubscriptionFailed,
)


def reduce(state: DiscoveryState, event) -> DiscoveryState:
    """Return the state after event. Pure; raises TypeError for unknown events."""
    handler = _REDUCERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown discovery event: {event!r}")
    if isinstance(event, _GENERATION_SCOPED) and event.generation != state.generation:
        _LOGGER.debug(
            "Discarding stale %s from generation %s (current %s)",
            type(event).__name__, event.generation, state.generation,
        )
        return state
    return handler(state, event)


def visible_shops(state: DiscoveryState) -> tuple[EnrichedShop, ...]:
    """Shops matching the search text, in query order. Shared by list and map."""
    return tuple(shop for shop in state.shops if matches_search(shop, state.search_text))
