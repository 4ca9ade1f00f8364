"""
DiscoveryViewModel: the state machine behind the nearby-shops page.

Responsibilities:
- Own the single DiscoveryState for one page visit and the reduce() loop.
- Run the full load sequence: locate → query → (if signed in) enrich.
- Re-enter the sequence on radius change, "use my location" and session change.
- Tag every load with a generation; results of superseded loads are dropped.
- Delegate subscription toggles to SubscriptionCoordinator.
- Notify listeners (the rendering layer) after every applied event.
"""
from __future__ import annotations

import logging
from typing import Callable

from .api.shops import query_nearby
from .const import (
    DEFAULT_LIMIT,
    DEFAULT_RADIUS,
    NOTICE_DETECTING,
    QUERY_FAILED_MESSAGE,
)
from .discovery_state import (
    DetailsLoaded,
    DiscoveryState,
    LoadFailed,
    LoadStarted,
    LocationNoticeChanged,
    PositionResolved,
    RadiusChanged,
    SearchChanged,
    ShopsLoaded,
    ViewModeChanged,
    reduce,
    visible_shops,
)
from .enricher import ShopEnricher
from .errors import MutationFailure, QueryFailure
from .geolocator import GeoLocator
from .models import ANONYMOUS, EnrichedShop, Position, Session
from .requests import ApiClient
from .subscriptions import SubscriptionCoordinator

_LOGGER = logging.getLogger(__name__)

Listener = Callable[[DiscoveryState], None]


class DiscoveryViewModel:
    """
    Composes GeoLocator, the shop query, ShopEnricher and
    SubscriptionCoordinator into one consistent DiscoveryState.
    """

    def __init__(
        self,
        client: ApiClient,
        geolocator: GeoLocator,
        session: Session = ANONYMOUS,
        radius_meters: int = DEFAULT_RADIUS,
        limit: int = DEFAULT_LIMIT,
        enricher: ShopEnricher | None = None,
    ) -> None:
        self._client = client
        self._geolocator = geolocator
        self.session = session
        self.limit = limit
        self.enricher = enricher or ShopEnricher(client)
        self.subscriptions = SubscriptionCoordinator(client, lambda: self.state, self._dispatch)

        # Monotonic load counter; only the latest load may apply its results
        self._generation: int = 0
        self._mounted: bool = True
        self._listeners: list[Listener] = []

        self.state = reduce(DiscoveryState(), RadiusChanged(radius_meters))

    @classmethod
    def from_config(
        cls, config: dict, geolocator: GeoLocator, session: Session = ANONYMOUS
    ) -> "DiscoveryViewModel":
        return cls(
            ApiClient.from_config(config, session),
            geolocator,
            session,
            radius_meters=config["radius_meters"],
            limit=config["limit"],
        )

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a callback fired with the new state; returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _dispatch(self, event) -> DiscoveryState:
        if not self._mounted:
            _LOGGER.debug("View closed, dropping %s", type(event).__name__)
            return self.state
        new_state = reduce(self.state, event)
        if new_state is self.state:
            return new_state
        self.state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Discovery listener failed: %s", exc)
        return new_state

    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    def _next_generation(self) -> int:
        self._generation += 1
        self._dispatch(LoadStarted(self._generation))
        return self._generation

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    @property
    def visible_shops(self) -> tuple[EnrichedShop, ...]:
        return visible_shops(self.state)

    # ------------------------------------------------------------------
    # Full load sequence
    # ------------------------------------------------------------------

    async def async_mount(self) -> None:
        """Initial load: acquire a position (never fails), then query and enrich."""
        generation = self._next_generation()
        fix = await self._geolocator.acquire()
        if not self._is_current(generation):
            _LOGGER.debug("Location for superseded load %s discarded", generation)
            return
        self._dispatch(PositionResolved(generation, fix))
        await self._load_shops(generation, fix.position)

    async def async_change_radius(self, radius_meters: int) -> None:
        """Re-query with a new radius, re-acquiring the position if none is cached."""
        self._dispatch(RadiusChanged(radius_meters))
        generation = self._next_generation()
        position = self.state.position
        if position is None:
            fix = await self._geolocator.acquire()
            if not self._is_current(generation):
                return
            self._dispatch(PositionResolved(generation, fix))
            position = fix.position
        await self._load_shops(generation, position)

    async def async_use_my_location(self) -> bool:
        """
        Explicit "use my location".

        On success re-runs the load with the new position and returns True.
        On failure only the provenance notice changes and False is returned.
        """
        if self._geolocator.is_supported:
            self._dispatch(LocationNoticeChanged(NOTICE_DETECTING))
        fix = await self._geolocator.acquire_on_demand()
        if fix.position is None:
            self._dispatch(LocationNoticeChanged(fix.notice, fix.source))
            return False

        generation = self._next_generation()
        self._dispatch(PositionResolved(generation, fix))
        await self._load_shops(generation, fix.position)
        return True

    async def async_set_session(self, session: Session) -> None:
        """Swap the session (sign in/out) and reload with the cached position."""
        self.session = session
        if self.state.position is None:
            await self.async_mount()
            return
        generation = self._next_generation()
        await self._load_shops(generation, self.state.position)

    async def _load_shops(self, generation: int, position: Position) -> None:
        radius = self.state.radius_meters
        client = self._client.with_session(self.session)
        try:
            summaries = await query_nearby(client, position, radius, self.limit)
        except QueryFailure as exc:
            if self._is_current(generation):
                _LOGGER.error("Nearby shop query failed: %s", exc)
            self._dispatch(LoadFailed(generation, exc.message or QUERY_FAILED_MESSAGE))
            return

        if not self._is_current(generation):
            _LOGGER.debug("Query result for superseded load %s discarded", generation)
            return
        self._dispatch(ShopsLoaded(generation, tuple(summaries)))

        if not self.session.is_authenticated or not summaries:
            return
        details = await self.enricher.enrich(summaries, self.session)
        if not self._is_current(generation):
            _LOGGER.debug("Details for superseded load %s discarded", generation)
            return
        self._dispatch(DetailsLoaded(generation, details))

    # ------------------------------------------------------------------
    # Pure presentation changes
    # ------------------------------------------------------------------

    def set_search_text(self, search_text: str) -> None:
        self._dispatch(SearchChanged(search_text))

    def set_view_mode(self, view_mode: str) -> None:
        self._dispatch(ViewModeChanged(view_mode))

    # ------------------------------------------------------------------
    # Write path: subscription toggle
    # ------------------------------------------------------------------

    async def async_toggle_subscription(
        self, shop_id: int, currently_subscribed: bool | None = None
    ) -> bool:
        """
        Toggle the viewer's subscription to shop_id.

        Returns True on success. A failed call leaves the rolled-back state
        with mutation_error set and returns False. AuthenticationRequired
        propagates to the caller.
        """
        if currently_subscribed is None:
            shop = self.state.get_shop(shop_id)
            currently_subscribed = bool(shop and shop.detail and shop.detail.is_subscribed)
        try:
            return await self.subscriptions.toggle(self.session, shop_id, currently_subscribed)
        except MutationFailure as exc:
            _LOGGER.debug("Subscription toggle for shop %s rolled back: %s", shop_id, exc.message)
            return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Mark the page as gone; in-flight results are dropped from now on."""
        self._mounted = False
        self._listeners.clear()
