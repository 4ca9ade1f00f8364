"""
Tests for DiscoveryViewModel: the initial load, re-entry on radius change and
"use my location", stale-result discard, failure surfacing, and the
end-to-end list behaviour for anonymous and signed-in viewers.
"""

from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from shopnearu.const import (
    NOTICE_FALLBACK_UNSUPPORTED,
    NOTICE_NOT_SUPPORTED,
    NOTICE_ON_DEMAND_FAILED,
    NOTICE_PRECISE,
)
from shopnearu.discovery import DiscoveryViewModel
from shopnearu.discovery_state import LoadFailed
from shopnearu.enricher import ShopEnricher
from shopnearu.errors import ApiError, AuthenticationRequired, QueryFailure
from shopnearu.geolocator import GeoLocator
from shopnearu.models import Position, Session
from shopnearu.presentation import TOGGLE_HIDDEN, build_shop_cards, render
from shopnearu.requests import ApiClient, ApiResponse

from .test_common import (
    CHENNAI,
    FailingHost,
    SucceedingHost,
    make_detail,
    make_session,
    make_summary,
    make_view_model,
)
from .test_requests import make_response, make_session_factory

QUERY = "shopnearu.discovery.query_nearby"
FETCH_DETAILS = "shopnearu.enricher.fetch_shop_details"
SUBSCRIBE = "shopnearu.subscriptions.subscribe_to_shop"

THREE_SHOPS = [make_summary(1), make_summary(2), make_summary(3)]
BERLIN = Position(52.52, 13.405)


class TestInitialLoad(unittest.IsolatedAsyncioTestCase):

    async def test_anonymous_viewer_sees_detail_less_shops(self):
        """Default radius, fallback position, three shops, no session."""
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)) as mock_query:
            await view.async_mount()

        mock_query.assert_awaited_once()
        _, position, radius, limit = mock_query.await_args.args
        self.assertEqual(position, Position(13.0827, 80.2707))
        self.assertEqual((radius, limit), (5000, 20))

        self.assertEqual([shop.id for shop in view.state.shops], [1, 2, 3])
        self.assertTrue(all(shop.detail is None for shop in view.state.shops))
        self.assertEqual(view.state.location_notice, NOTICE_FALLBACK_UNSUPPORTED)
        view.enricher.enrich.assert_not_called()

        cards = build_shop_cards(view.state, view.session)
        self.assertTrue(all(card.subscriber_text is None for card in cards))
        self.assertTrue(all(card.toggle_state == TOGGLE_HIDDEN for card in cards))

    async def test_signed_in_viewer_with_one_401_keeps_other_details(self):
        view = make_view_model(host=None, session=make_session())
        view.enricher = ShopEnricher(view._client)

        async def fake_details(client, shop_id):
            if shop_id == 2:
                raise ApiError("token expired", 401)
            return make_detail(shop_id, subscriber_count=shop_id * 10)

        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)), \
                patch(FETCH_DETAILS, new=fake_details):
            await view.async_mount()

        self.assertIsNone(view.state.error)
        cards = {card.shop_id: card for card in render(view.state, view.session)}
        self.assertEqual(cards[1].subscriber_text, "10 subscribers")
        self.assertIsNone(cards[2].subscriber_text)
        self.assertEqual(cards[3].subscriber_text, "30 subscribers")

    async def test_precise_location_is_used(self):
        view = make_view_model(host=SucceedingHost(BERLIN))
        with patch(QUERY, new=AsyncMock(return_value=[])) as mock_query:
            await view.async_mount()
        self.assertEqual(mock_query.await_args.args[1], BERLIN)
        self.assertEqual(view.state.position, BERLIN)
        self.assertEqual(view.state.location_notice, NOTICE_PRECISE)

    async def test_query_failure_blocks_rendering_until_retry(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(side_effect=QueryFailure("server down", 500))):
            await view.async_mount()
        self.assertEqual(view.state.error, "server down")
        self.assertIsNone(render(view.state, view.session))

        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)):
            await view.async_change_radius(10000)
        self.assertIsNone(view.state.error)
        self.assertEqual(len(render(view.state, view.session)), 3)

    async def test_duplicate_ids_from_server_collapse(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(return_value=[make_summary(1), make_summary(1)])):
            await view.async_mount()
        self.assertEqual([shop.id for shop in view.state.shops], [1])


class TestMalformedResponses(unittest.IsolatedAsyncioTestCase):
    """Malformed server answers on the query path end in the error state."""

    def _view_with_transport(self) -> DiscoveryViewModel:
        client = ApiClient("http://test.local/api/v1", Session(), timeout=1, max_attempts=1)
        geolocator = GeoLocator(None, CHENNAI, timeout=0.05)
        return DiscoveryViewModel(client, geolocator, Session(), enricher=MagicMock())

    async def test_non_list_payload_sets_error(self):
        view = self._view_with_transport()
        answer = AsyncMock(return_value=ApiResponse(data=5))
        with patch.object(view._client, "request", new=answer):
            await view.async_mount()
        self.assertFalse(view.state.loading)
        self.assertEqual(view.state.error, "Unexpected response from server")
        self.assertIsNone(render(view.state, view.session))

    async def test_undecodable_body_sets_error(self):
        view = self._view_with_transport()
        response = make_response(200)
        response.text = AsyncMock(
            side_effect=UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        )
        factory, calls = make_session_factory([response])
        with patch("shopnearu.requests.aiohttp.ClientSession", side_effect=factory):
            await view.async_mount()
        self.assertEqual(len(calls), 1)
        self.assertFalse(view.state.loading)
        self.assertEqual(view.state.error, "Unexpected response from server")
        self.assertEqual(view.state.shops, ())


class TestReEntry(unittest.IsolatedAsyncioTestCase):

    async def test_radius_change_replaces_shops(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)):
            await view.async_mount()
        with patch(QUERY, new=AsyncMock(return_value=[make_summary(7)])) as mock_query:
            await view.async_change_radius(1000)
        self.assertEqual(mock_query.await_args.args[2], 1000)
        self.assertEqual([shop.id for shop in view.state.shops], [7])
        self.assertEqual(view.state.radius_meters, 1000)

    async def test_radius_change_without_position_acquires_one(self):
        host = SucceedingHost(BERLIN)
        view = make_view_model(host=host)
        with patch(QUERY, new=AsyncMock(return_value=[])) as mock_query:
            await view.async_change_radius(2000)
        self.assertEqual(host.calls, 1)
        self.assertEqual(mock_query.await_args.args[1], BERLIN)

    async def test_invalid_radius_is_rejected_without_query(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock()) as mock_query:
            with self.assertRaises(ValueError):
                await view.async_change_radius(1234)
        mock_query.assert_not_called()

    async def test_use_my_location_success_reloads(self):
        host = FailingHost()
        view = make_view_model(host=host)
        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)):
            await view.async_mount()
        self.assertEqual(view.state.position, CHENNAI)

        view._geolocator._host = SucceedingHost(BERLIN)
        with patch(QUERY, new=AsyncMock(return_value=[make_summary(8)])) as mock_query:
            self.assertTrue(await view.async_use_my_location())
        self.assertEqual(mock_query.await_args.args[1], BERLIN)
        self.assertEqual(view.state.position, BERLIN)
        self.assertEqual([shop.id for shop in view.state.shops], [8])

    async def test_use_my_location_failure_only_updates_notice(self):
        view = make_view_model(host=FailingHost())
        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)):
            await view.async_mount()
        shops_before = view.state.shops

        with patch(QUERY, new=AsyncMock()) as mock_query:
            self.assertFalse(await view.async_use_my_location())
        mock_query.assert_not_called()
        self.assertIs(view.state.shops, shops_before)
        self.assertEqual(view.state.position, CHENNAI)
        self.assertEqual(view.state.location_notice, NOTICE_ON_DEMAND_FAILED)

    async def test_use_my_location_unsupported_is_reported(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(return_value=[])):
            await view.async_mount()
            self.assertFalse(await view.async_use_my_location())
        self.assertEqual(view.state.location_notice, NOTICE_NOT_SUPPORTED)

    async def test_search_and_view_mode_do_not_requery(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)) as mock_query:
            await view.async_mount()
            view.set_search_text("shop 2")
            view.set_view_mode("map")
        self.assertEqual(mock_query.await_count, 1)
        self.assertEqual([shop.id for shop in view.visible_shops], [2])
        map_view = render(view.state, view.session)
        self.assertEqual([marker.shop_id for marker in map_view.markers], [2])

    async def test_signing_in_reloads_with_details(self):
        view = make_view_model(host=None, details={1: make_detail(1)})
        with patch(QUERY, new=AsyncMock(return_value=[make_summary(1)])):
            await view.async_mount()
            self.assertIsNone(view.state.shops[0].detail)
            await view.async_set_session(make_session())
        view.enricher.enrich.assert_awaited_once()
        self.assertEqual(view.state.shops[0].detail, make_detail(1))


class TestStaleResults(unittest.IsolatedAsyncioTestCase):

    async def test_superseded_query_result_is_discarded(self):
        view = make_view_model(host=None)
        first_gate = asyncio.Event()
        first_called = asyncio.Event()

        async def fake_query(client, position, radius, limit):
            if radius == 5000:
                first_called.set()
                await first_gate.wait()
                return [make_summary(1)]
            return [make_summary(2)]

        with patch(QUERY, new=fake_query):
            first = asyncio.ensure_future(view.async_mount())
            await first_called.wait()
            await view.async_change_radius(10000)
            self.assertEqual([shop.id for shop in view.state.shops], [2])

            first_gate.set()
            await first

        self.assertEqual([shop.id for shop in view.state.shops], [2])
        self.assertEqual(view.state.radius_meters, 10000)

    async def test_superseded_failure_is_discarded(self):
        view = make_view_model(host=None)
        gate = asyncio.Event()

        async def fake_query(client, position, radius, limit):
            if radius == 5000:
                await gate.wait()
                raise QueryFailure("late failure")
            return [make_summary(2)]

        with patch(QUERY, new=fake_query):
            first = asyncio.ensure_future(view.async_mount())
            await asyncio.sleep(0.01)
            await view.async_change_radius(2000)
            gate.set()
            await first

        self.assertIsNone(view.state.error)
        self.assertEqual([shop.id for shop in view.state.shops], [2])

    async def test_superseded_details_are_discarded(self):
        view = make_view_model(host=None, session=make_session())
        gate = asyncio.Event()

        async def slow_enrich(summaries, session):
            if summaries[0].id == 1:
                await gate.wait()
            return {summary.id: make_detail(summary.id) for summary in summaries}

        view.enricher.enrich = slow_enrich

        async def fake_query(client, position, radius, limit):
            return [make_summary(1)] if radius == 5000 else [make_summary(2)]

        with patch(QUERY, new=fake_query):
            first = asyncio.ensure_future(view.async_mount())
            await asyncio.sleep(0.01)
            await view.async_change_radius(20000)
            gate.set()
            await first

        self.assertEqual([shop.id for shop in view.state.shops], [2])
        self.assertIsNotNone(view.state.shops[0].detail)

    async def test_results_after_close_are_dropped(self):
        view = make_view_model(host=None)
        gate = asyncio.Event()

        async def fake_query(client, position, radius, limit):
            await gate.wait()
            return THREE_SHOPS

        with patch(QUERY, new=fake_query):
            task = asyncio.ensure_future(view.async_mount())
            await asyncio.sleep(0.01)
            view.close()
            gate.set()
            await task

        self.assertFalse(view.is_mounted)
        self.assertEqual(view.state.shops, ())

    async def test_stale_dispatch_returns_unchanged_state(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(return_value=THREE_SHOPS)):
            await view.async_mount()
        before = view.state
        self.assertIs(view._dispatch(LoadFailed(before.generation - 1, "old")), before)


class TestSubscriptionToggle(unittest.IsolatedAsyncioTestCase):

    async def _loaded_view(self, detail):
        view = make_view_model(host=None, session=make_session(), details={1: detail})
        with patch(QUERY, new=AsyncMock(return_value=[make_summary(1)])):
            await view.async_mount()
        return view

    async def test_failed_subscribe_shows_optimistic_then_reverts(self):
        view = await self._loaded_view(make_detail(1, 4, False))
        gate = asyncio.Event()
        observed = []
        view.add_listener(lambda state: observed.append(state.shops[0].detail))

        async def failing_subscribe(client, shop_id):
            await gate.wait()
            raise ApiError("Subscription service unavailable", 503)

        with patch(SUBSCRIBE, new=failing_subscribe):
            task = asyncio.ensure_future(view.async_toggle_subscription(1))
            await asyncio.sleep(0.01)
            card = build_shop_cards(view.state, view.session)[0]
            self.assertEqual(card.subscriber_text, "5 subscribers")
            self.assertTrue(card.is_subscribed)
            self.assertEqual(card.toggle_state, "disabled")
            gate.set()
            self.assertFalse(await task)

        self.assertEqual(view.state.shops[0].detail, make_detail(1, 4, False))
        self.assertEqual(view.state.mutation_error, "Subscription service unavailable")
        self.assertEqual(observed, [make_detail(1, 5, True), make_detail(1, 4, False)])

    async def test_successful_subscribe_stands(self):
        view = await self._loaded_view(make_detail(1, 4, False))
        with patch(SUBSCRIBE, new=AsyncMock()):
            self.assertTrue(await view.async_toggle_subscription(1))
        self.assertEqual(view.state.shops[0].detail, make_detail(1, 5, True))
        self.assertEqual(view.state.pending_subscription_shop_ids, frozenset())

    async def test_anonymous_toggle_raises(self):
        view = make_view_model(host=None)
        with patch(QUERY, new=AsyncMock(return_value=[make_summary(1)])):
            await view.async_mount()
        with self.assertRaises(AuthenticationRequired):
            await view.async_toggle_subscription(1, False)

    async def test_radius_change_abandons_pending_toggle(self):
        view = await self._loaded_view(make_detail(1, 4, False))
        gate = asyncio.Event()

        async def slow_subscribe(client, shop_id):
            await gate.wait()
            raise ApiError("late", 500)

        view.enricher.enrich = AsyncMock(return_value={1: make_detail(1, 9, False)})
        with patch(SUBSCRIBE, new=slow_subscribe), \
                patch(QUERY, new=AsyncMock(return_value=[make_summary(1)])):
            task = asyncio.ensure_future(view.async_toggle_subscription(1))
            await asyncio.sleep(0.01)
            await view.async_change_radius(2000)
            self.assertEqual(view.state.pending_subscription_shop_ids, frozenset())
            gate.set()
            await task

        # The late failure must not roll back the freshly loaded detail
        self.assertEqual(view.state.shops[0].detail, make_detail(1, 9, False))
        self.assertIsNone(view.state.mutation_error)

    async def test_toggle_after_close_sends_nothing(self):
        view = await self._loaded_view(make_detail(1, 4, False))
        view.close()
        mock_subscribe = AsyncMock()
        with patch(SUBSCRIBE, new=mock_subscribe):
            self.assertFalse(await view.async_toggle_subscription(1))
            self.assertFalse(await view.async_toggle_subscription(1))
        mock_subscribe.assert_not_awaited()
        self.assertEqual(view.state.pending_subscription_shop_ids, frozenset())
        self.assertEqual(view.state.shops[0].detail, make_detail(1, 4, False))
