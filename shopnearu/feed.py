"""
SubscriptionFeed: the viewer's subscribed shops and the product feed they drive.

Product fetches for several shops run concurrently; a shop whose products
cannot be loaded contributes nothing instead of failing the feed.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging

from .api.shops import fetch_shop_products, fetch_user_subscriptions, unsubscribe_from_shop
from .const import MUTATION_FAILED_MESSAGE
from .errors import ApiError, AuthenticationRequired, MutationFailure
from .models import Session, ShopProduct, SubscribedShop
from .requests import ApiClient

_LOGGER = logging.getLogger(__name__)

ALL_SHOPS = "all"


class SubscriptionFeed:
    """Holds the subscribed shops and the products of the selected scope."""

    def __init__(self, client: ApiClient, session: Session) -> None:
        self._client = client.with_session(session)
        self.session = session
        self.shops: list[SubscribedShop] = []
        self.products: list[ShopProduct] = []
        self.selected: int | str = ALL_SHOPS

    async def async_load(self) -> list[SubscribedShop]:
        """Load the subscribed shops, then the products for the current scope."""
        if not self.session.is_authenticated:
            self.shops, self.products = [], []
            return self.shops

        self.shops = await fetch_user_subscriptions(self._client)
        if self.selected != ALL_SHOPS and self._find(self.selected) is None:
            self.selected = ALL_SHOPS
        await self.async_refresh_products()
        return self.shops

    async def async_select(self, shop_id: int | str) -> list[ShopProduct]:
        """Switch the product scope to one shop id or ALL_SHOPS."""
        if shop_id != ALL_SHOPS and self._find(shop_id) is None:
            raise ValueError(f"Not subscribed to shop {shop_id}")
        self.selected = shop_id
        return await self.async_refresh_products()

    async def async_refresh_products(self) -> list[ShopProduct]:
        if self.selected == ALL_SHOPS:
            shops = list(self.shops)
        else:
            shops = [shop for shop in self.shops if shop.id == self.selected]
        if not shops:
            self.products = []
            return self.products

        results = await asyncio.gather(
            *[fetch_shop_products(self._client, shop.id) for shop in shops],
            return_exceptions=True,
        )

        products: list[ShopProduct] = []
        for shop, result in zip(shops, results):
            if isinstance(result, BaseException):
                _LOGGER.warning("Failed to get products for shop %s: %s", shop.id, result)
                continue
            products.extend(
                dataclasses.replace(product, shop_id=shop.id, shop_name=shop.name)
                for product in result
            )
        self.products = products
        return self.products

    async def async_unsubscribe(self, shop_id: int) -> None:
        """Unsubscribe and drop the shop and its products from the feed."""
        if not self.session.is_authenticated:
            raise AuthenticationRequired("Please log in to manage subscriptions")
        try:
            await unsubscribe_from_shop(self._client, shop_id)
        except ApiError as exc:
            _LOGGER.error("Failed to unsubscribe from shop %s: %s", shop_id, exc)
            raise MutationFailure(shop_id, exc.message or MUTATION_FAILED_MESSAGE) from exc

        self.shops = [shop for shop in self.shops if shop.id != shop_id]
        self.products = [product for product in self.products if product.shop_id != shop_id]
        if self.selected == shop_id:
            self.selected = ALL_SHOPS

    def _find(self, shop_id) -> SubscribedShop | None:
        for shop in self.shops:
            if shop.id == shop_id:
                return shop
        return None
