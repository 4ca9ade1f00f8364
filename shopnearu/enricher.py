"""
ShopEnricher: concurrent, best-effort per-shop detail fetch.

One detail request per summary is issued at once and the batch is joined
with asyncio.gather(). A failing shop is simply left out of the result.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from .api.shops import fetch_shop_details
from .errors import ApiError
from .models import Session, ShopDetail, ShopSummary
from .requests import ApiClient

_LOGGER = logging.getLogger(__name__)


class ShopEnricher:
    """Fetches ShopDetail records for a batch of summaries."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def enrich(
        self, summaries: Iterable[ShopSummary], session: Session
    ) -> dict[int, ShopDetail]:
        """
        Return shop_id → ShopDetail for every shop whose detail fetch succeeded.

        Unauthenticated sessions get {} without any request. The key set is
        always a subset of the summaries' ids. Never raises.
        """
        if not session.is_authenticated:
            return {}

        shop_ids = list(dict.fromkeys(summary.id for summary in summaries))
        if not shop_ids:
            return {}

        client = self._client.with_session(session)
        results = await asyncio.gather(
            *[self._fetch_one(client, shop_id) for shop_id in shop_ids],
            return_exceptions=True,
        )

        details: dict[int, ShopDetail] = {}
        for shop_id, result in zip(shop_ids, results):
            if isinstance(result, BaseException):
                # _fetch_one already swallows everything it knows about
                _LOGGER.warning("Unexpected enrichment failure for shop %s: %s", shop_id, result)
                continue
            if result is None:
                continue
            # Key by the requested id, never by anything the server echoed back
            details[shop_id] = result

        _LOGGER.debug("Enriched %s of %s shops", len(details), len(shop_ids))
        return details

    async def _fetch_one(self, client: ApiClient, shop_id: int) -> ShopDetail | None:
        try:
            return await fetch_shop_details(client, shop_id)
        except ApiError as exc:
            if exc.is_unauthorized:
                _LOGGER.debug("Session rejected while enriching shop %s", shop_id)
            else:
                _LOGGER.warning("Failed to fetch details for shop %s: %s", shop_id, exc)
            return None
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Failed to fetch details for shop %s: %s", shop_id, exc)
            return None
