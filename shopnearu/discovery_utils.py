"""
Pure helpers for the discovery state.

Responsibilities:
- Build the keyed join of summaries and details.
- Produce copies of a ShopDetail with the subscription edge added or removed.
- Match shops against the client-side search text.

No I/O here.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Iterable, Mapping

from .models import EnrichedShop, ShopDetail, ShopSummary

_LOGGER = logging.getLogger(__name__)


def unique_summaries(summaries: Iterable[ShopSummary]) -> list[ShopSummary]:
    """Drop repeated ids, keeping the first occurrence and the server order."""
    seen: set[int] = set()
    unique = []
    for summary in summaries:
        if summary.id in seen:
            _LOGGER.debug("Dropping duplicate shop id %s from query result", summary.id)
            continue
        seen.add(summary.id)
        unique.append(summary)
    return unique


def merge_details(
    shops: Iterable[EnrichedShop],
    details: Mapping[int, ShopDetail],
    skip_ids: frozenset[int] = frozenset(),
) -> tuple[EnrichedShop, ...]:
    """
    Attach details to shops by id.

    Details whose id is not among the shops are ignored, shops without a
    detail keep whatever they had, and ids in skip_ids are left untouched.
    """
    merged = []
    for shop in shops:
        detail = details.get(shop.id)
        if detail is None or shop.id in skip_ids:
            merged.append(shop)
        else:
            merged.append(dataclasses.replace(shop, detail=detail))

    extra = set(details) - {shop.id for shop in merged}
    if extra:
        _LOGGER.debug("Ignoring details for shops outside the result set: %s", sorted(extra))
    return tuple(merged)


def apply_subscription_flip(detail: ShopDetail, subscribe: bool) -> ShopDetail:
    """
    Return a copy of detail with the viewer's subscription edge added or removed.

    Subscribing adds exactly one subscriber; unsubscribing removes one and
    never goes below zero.
    """
    if subscribe:
        count = detail.subscriber_count + 1
    else:
        count = max(0, detail.subscriber_count - 1)
    return dataclasses.replace(detail, subscriber_count=count, is_subscribed=subscribe)


def matches_search(shop: EnrichedShop, search_text: str) -> bool:
    keyword = search_text.strip().lower()
    if not keyword:
        return True
    summary = shop.summary
    return keyword in summary.name.lower() or keyword in summary.address.lower()


def replace_shop(
    shops: tuple[EnrichedShop, ...], shop_id: int, detail: ShopDetail
) -> tuple[EnrichedShop, ...]:
    return tuple(
        dataclasses.replace(shop, detail=detail) if shop.id == shop_id else shop
        for shop in shops
    )
