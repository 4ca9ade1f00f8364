"""
SubscriptionCoordinator: optimistic subscribe/unsubscribe with exact rollback.

The pending-id set in DiscoveryState is the per-shop lock: a shop id is in it
exactly while its mutation is in flight, and a second toggle for the same id
is ignored. Toggles for different shops run independently.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .api.shops import subscribe_to_shop, unsubscribe_from_shop
from .const import AUTH_REQUIRED_MESSAGE, MUTATION_FAILED_MESSAGE
from .discovery_state import (
    DiscoveryState,
    SubscriptionFailed,
    SubscriptionStarted,
    SubscriptionSucceeded,
)
from .errors import ApiError, AuthenticationRequired, MutationFailure
from .models import Session
from .requests import ApiClient

_LOGGER = logging.getLogger(__name__)


class SubscriptionCoordinator:
    """Applies subscription toggles to the state owned by a view model."""

    def __init__(
        self,
        client: ApiClient,
        get_state: Callable[[], DiscoveryState],
        dispatch: Callable[[object], DiscoveryState],
    ) -> None:
        self._client = client
        self._get_state = get_state
        self._dispatch = dispatch

    async def toggle(self, session: Session, shop_id: int, currently_subscribed: bool) -> bool:
        """
        Flip the viewer's subscription to shop_id.

        The optimistic state is dispatched before the network call. Returns
        True when the server accepted the change and False when the toggle was
        ignored (already pending, or no detail known for the shop).

        Raises:
            AuthenticationRequired: without a session; nothing is changed.
            MutationFailure: the call failed; the state has been rolled back.
        """
        if not session.is_authenticated:
            raise AuthenticationRequired(AUTH_REQUIRED_MESSAGE)

        state = self._get_state()
        if state.is_pending(shop_id):
            _LOGGER.debug("Subscription change for shop %s already in flight, ignoring", shop_id)
            return False

        shop = state.get_shop(shop_id)
        if shop is None or shop.detail is None:
            _LOGGER.warning("No subscription details known for shop %s, cannot toggle", shop_id)
            return False

        previous = shop.detail
        generation = state.generation
        subscribe = not currently_subscribed
        if previous.is_subscribed != currently_subscribed:
            _LOGGER.debug(
                "Shop %s toggled with subscribed=%s but state says %s",
                shop_id, currently_subscribed, previous.is_subscribed,
            )

        started = self._dispatch(SubscriptionStarted(generation, shop_id, subscribe))
        if not started.is_pending(shop_id):
            _LOGGER.debug("Subscription change for shop %s was not applied, skipping call", shop_id)
            return False

        client = self._client.with_session(session)
        try:
            if subscribe:
                await subscribe_to_shop(client, shop_id)
            else:
                await unsubscribe_from_shop(client, shop_id)
        except asyncio.CancelledError:
            self._dispatch(
                SubscriptionFailed(generation, shop_id, previous, MUTATION_FAILED_MESSAGE)
            )
            raise
        except ApiError as exc:
            _LOGGER.error("Failed to update subscription for shop %s: %s", shop_id, exc)
            self._dispatch(SubscriptionFailed(generation, shop_id, previous, exc.message))
            raise MutationFailure(shop_id, exc.message) from exc
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to update subscription for shop %s: %s", shop_id, exc)
            self._dispatch(
                SubscriptionFailed(generation, shop_id, previous, MUTATION_FAILED_MESSAGE)
            )
            raise MutationFailure(shop_id, MUTATION_FAILED_MESSAGE) from exc

        self._dispatch(SubscriptionSucceeded(generation, shop_id))
        return True
