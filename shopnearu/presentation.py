"""
Rendering adapters: turn a DiscoveryState into list-card or map view models.

Both views read the same filtered shop sequence from visible_shops().
"""
from __future__ import annotations

import dataclasses
import math

from .const import MAP_FALLBACK_CENTER, VIEW_MODE_MAP
from .discovery_state import DiscoveryState, visible_shops
from .models import EnrichedShop, Position, Session

TOGGLE_HIDDEN = "hidden"
TOGGLE_ENABLED = "enabled"
TOGGLE_DISABLED = "disabled"


@dataclasses.dataclass(frozen=True)
class ShopCard:
    shop_id: int
    name: str
    address: str
    distance_text: str | None
    subscriber_text: str | None
    is_subscribed: bool
    toggle_state: str
    toggle_label: str | None


@dataclasses.dataclass(frozen=True)
class MapMarker:
    shop_id: int
    latitude: float
    longitude: float
    title: str
    subtitle: str


@dataclasses.dataclass(frozen=True)
class MapView:
    center: tuple[float, float]
    # ((south, west), (north, east)), or None when there is nothing to frame
    bounds: tuple[tuple[float, float], tuple[float, float]] | None
    user_marker: tuple[float, float] | None
    markers: tuple[MapMarker, ...]
    map_key: str
    summary: str


def format_distance(meters: float) -> str | None:
    """850 → "850 m", 1234 → "1.2 km"; None for non-finite input."""
    if meters is None or not math.isfinite(meters):
        return None
    if meters < 1000:
        return f"{meters:.0f} m"
    return f"{meters / 1000:.1f} km"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def build_shop_card(shop: EnrichedShop, session: Session, pending: bool) -> ShopCard:
    detail = shop.detail
    if not session.is_authenticated or detail is None:
        toggle_state, toggle_label = TOGGLE_HIDDEN, None
    elif pending:
        toggle_state, toggle_label = TOGGLE_DISABLED, "..."
    else:
        toggle_state = TOGGLE_ENABLED
        toggle_label = "Unsubscribe" if detail.is_subscribed else "Subscribe"

    return ShopCard(
        shop_id=shop.id,
        name=shop.summary.name,
        address=shop.summary.address,
        distance_text=format_distance(shop.summary.distance_meters),
        subscriber_text=_plural(detail.subscriber_count, "subscriber") if detail else None,
        is_subscribed=bool(detail and detail.is_subscribed),
        toggle_state=toggle_state,
        toggle_label=toggle_label,
    )


def build_shop_cards(state: DiscoveryState, session: Session) -> list[ShopCard]:
    return [
        build_shop_card(shop, session, state.is_pending(shop.id))
        for shop in visible_shops(state)
    ]


def build_map_view(state: DiscoveryState, fallback: Position | None = None) -> MapView:
    """
    Centre, bounds and markers for the map.

    fallback is the centre used when neither a user position nor any shop is
    known. render() only builds a map once a position exists, so callers that
    need it invoke build_map_view directly.
    """
    shops = visible_shops(state)
    user = state.position

    if user is not None:
        center = (user.latitude, user.longitude)
    elif shops:
        first = shops[0].summary.position
        center = (first.latitude, first.longitude)
    elif fallback is not None:
        center = (fallback.latitude, fallback.longitude)
    else:
        center = MAP_FALLBACK_CENTER

    points = [(shop.summary.position.latitude, shop.summary.position.longitude) for shop in shops]
    if user is not None:
        points.append((user.latitude, user.longitude))
    bounds = None
    if points:
        lats = [lat for lat, _ in points]
        lngs = [lng for _, lng in points]
        bounds = ((min(lats), min(lngs)), (max(lats), max(lngs)))

    user_key = f"{user.latitude:.4f}-{user.longitude:.4f}" if user else "no-user"
    shop_key = "-".join(str(shop.id) for shop in shops) or "no-shops"

    return MapView(
        center=center,
        bounds=bounds,
        user_marker=(user.latitude, user.longitude) if user else None,
        markers=tuple(
            MapMarker(
                shop.id,
                shop.summary.position.latitude,
                shop.summary.position.longitude,
                shop.summary.name,
                shop.summary.address,
            )
            for shop in shops
        ),
        map_key=f"{user_key}-{shop_key}",
        summary=f"Showing {_plural(len(shops), 'shop')} within {state.radius_meters / 1000:g}km",
    )


def render(state: DiscoveryState, session: Session):
    """
    The view model for the current mode: a list of ShopCard or a MapView.

    None while a query error blocks rendering, or in map mode before a
    position is known.
    """
    if state.error is not None:
        return None
    if state.view_mode == VIEW_MODE_MAP:
        if state.position is None:
            return None
        return build_map_view(state)
    return build_shop_cards(state, session)
