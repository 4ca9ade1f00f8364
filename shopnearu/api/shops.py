"""
Shop endpoint wrappers for the shop API.

Responsible for:
- Querying shops within a radius of a position
- Fetching per-shop detail (subscriber count, viewer subscription flag)
- Subscribing to and unsubscribing from a shop
- Listing the viewer's subscriptions and a shop's products
- Mapping raw JSON records onto the dataclass models
"""
from __future__ import annotations

import logging

from shopnearu.errors import ApiError, QueryFailure
from shopnearu.models import (
    CatalogProduct,
    Position,
    ShopDetail,
    ShopProduct,
    ShopSummary,
    SubscribedShop,
)
from shopnearu.requests import ApiClient

_LOGGER = logging.getLogger(__name__)


def _parse_summary(raw: dict) -> ShopSummary | None:
    """Map a single raw nearby-shop record onto a ShopSummary."""
    try:
        return ShopSummary(
            id=int(raw["id"]),
            name=raw.get("name") or "",
            address=raw.get("address") or "",
            position=Position(float(raw["latitude"]), float(raw["longitude"])),
            distance_meters=max(0.0, float(raw.get("distance") or 0.0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        _LOGGER.warning("Skipping malformed shop record %s: %s", raw, e)
        return None


def _parse_detail(shop_id: int, raw: dict) -> ShopDetail:
    return ShopDetail(
        shop_id=shop_id,
        subscriber_count=int(raw.get("subscriber_count") or 0),
        is_subscribed=bool(raw.get("is_subscribed", False)),
    )


def _parse_subscribed_shop(raw: dict) -> SubscribedShop | None:
    try:
        return SubscribedShop(
            id=int(raw["id"]),
            name=raw.get("name") or "",
            owner_name=raw.get("owner_name") or "",
            type=raw.get("type") or "",
            address=raw.get("address") or "",
            position=Position(float(raw["latitude"]), float(raw["longitude"])),
            subscriber_count=max(0, int(raw.get("subscriber_count") or 0)),
            is_open=bool(raw.get("is_open", False)),
        )
    except (KeyError, TypeError, ValueError) as e:
        _LOGGER.warning("Skipping malformed subscription record %s: %s", raw, e)
        return None


def _parse_product(raw: dict) -> ShopProduct | None:
    try:
        catalog = raw.get("catalog_product")
        shop = raw.get("shop") or {}
        return ShopProduct(
            id=int(raw["id"]),
            shop_id=int(raw["shop_id"]),
            catalog_id=int(raw.get("catalog_id") or 0),
            price=float(raw.get("price") or 0.0),
            stock=int(raw.get("stock") or 0),
            is_available=bool(raw.get("is_available", False)),
            discount=float(raw.get("discount") or 0.0),
            catalog_product=CatalogProduct(
                id=int(catalog["id"]),
                name=catalog.get("name") or "",
                brand=catalog.get("brand") or "",
                category=catalog.get("category") or "",
                description=catalog.get("description") or "",
                image_url=catalog.get("image_url") or "",
            ) if catalog else None,
            shop_name=shop.get("name"),
        )
    except (KeyError, TypeError, ValueError) as e:
        _LOGGER.warning("Skipping malformed product record %s: %s", raw, e)
        return None


async def query_nearby(
    client: ApiClient, position: Position, radius: int, limit: int
) -> list[ShopSummary]:
    """
    Fetch shops within radius metres of position, in server order.

    Raises QueryFailure on any transport error or a payload that is not a list;
    an empty payload is an empty list.

    Corresponding CURL command:
    curl -X 'GET' 'http://localhost:8080/api/v1/shops?lat=13.08&lon=80.27&radius=5000&limit=20'
    """
    params = {
        "lat": str(position.latitude),
        "lon": str(position.longitude),
        "radius": str(int(radius)),
        "limit": str(int(limit)),
    }
    try:
        response = await client.request("shops", "GET", params=params)
    except ApiError as e:
        _LOGGER.error("Error while querying nearby shops: %s", e)
        raise QueryFailure(e.message, e.status) from e

    if not response.data:
        return []
    if not isinstance(response.data, list):
        _LOGGER.error("Unexpected nearby shops payload: %s", type(response.data).__name__)
        raise QueryFailure("Unexpected response from server")
    parsed = [_parse_summary(raw) for raw in response.data]
    return [shop for shop in parsed if shop is not None]


async def fetch_shop_details(client: ApiClient, shop_id: int) -> ShopDetail | None:
    """
    Fetch subscriber count and subscription flag for one shop.

    Requires an authenticated session; ApiError (401 when the session is
    missing or expired) propagates to the caller.

    Corresponding CURL command:
    curl -X 'GET' 'http://localhost:8080/api/v1/shops/7' -H 'Authorization: Bearer TOKEN'
    """
    response = await client.request(f"shops/{shop_id}", "GET")
    if not response.data:
        return None
    return _parse_detail(shop_id, response.data)


async def subscribe_to_shop(client: ApiClient, shop_id: int):
    """
    Corresponding CURL command:
    curl -X 'POST' 'http://localhost:8080/api/v1/shops/7/subscribe' -H 'Authorization: Bearer TOKEN'
    """
    response = await client.request(f"shops/{shop_id}/subscribe", "POST")
    return response.data


async def unsubscribe_from_shop(client: ApiClient, shop_id: int):
    """
    Corresponding CURL command:
    curl -X 'POST' 'http://localhost:8080/api/v1/shops/7/unsubscribe' -H 'Authorization: Bearer TOKEN'
    """
    response = await client.request(f"shops/{shop_id}/unsubscribe", "POST")
    return response.data


async def fetch_shop_products(client: ApiClient, shop_id: int) -> list[ShopProduct]:
    """Fetch the products of one shop; returns [] on any error."""
    try:
        response = await client.request(f"shops/{shop_id}/products", "GET")
    except ApiError as e:
        _LOGGER.warning("Failed to fetch products for shop %s: %s", shop_id, e)
        return []

    parsed = [_parse_product(raw) for raw in response.data or []]
    return [product for product in parsed if product is not None]


async def fetch_user_subscriptions(client: ApiClient) -> list[SubscribedShop]:
    """Fetch the shops the viewer is subscribed to; returns [] on any error."""
    try:
        response = await client.request("user/subscriptions", "GET")
    except ApiError as e:
        _LOGGER.warning("Failed to fetch user subscriptions: %s", e)
        return []

    parsed = [_parse_subscribed_shop(raw) for raw in response.data or []]
    return [shop for shop in parsed if shop is not None]
