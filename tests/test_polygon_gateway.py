"""Tests for the Polygon gateway, its payload parsing and the shared HTTP client."""

import unittest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx

from dashboard import http_client
from dashboard.cache import InMemoryCache
from dashboard.providers.polygon import (
    PolygonGateway,
    parse_aggs_response,
    parse_financials_response,
    parse_snapshot_response,
)
from dashboard.providers.rate_limiter import RateLimiter
from engine.domain.models import Position
from engine.gateway import MarketDataError, RateLimitError
from engine.services.market_data import MarketDataService
from engine.services.portfolio_service import PortfolioService
from engine.store import InMemoryPositionStore


def epoch_ms(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, 4, tzinfo=timezone.utc).timestamp() * 1000)


SNAPSHOT_PAYLOAD = {
    "status": "OK",
    "tickers": [
        {
            "ticker": "AAPL",
            "todaysChange": -7.9,
            "todaysChangePerc": -4.2,
            "day": {"o": 190.0, "h": 191.5, "l": 178.2, "c": 180.1, "v": 81234567},
            "lastTrade": {"p": 180.25},
            "prevDay": {"c": 188.15},
        },
        {
            "ticker": "MSFT",
            "todaysChange": 1.2,
            "todaysChangePerc": 0.3,
            "day": {},
            "prevDay": {"c": 400.0},
        },
    ],
}


class TestSnapshotParsing(unittest.TestCase):

    def test_full_entry(self):
        result = parse_snapshot_response(SNAPSHOT_PAYLOAD)
        aapl = result["AAPL"]
        self.assertEqual(aapl.current_price, 180.25)
        self.assertEqual(aapl.change, -7.9)
        self.assertEqual(aapl.change_percent, -4.2)
        self.assertEqual(aapl.day_high, 191.5)
        self.assertEqual(aapl.day_low, 178.2)
        self.assertEqual(aapl.volume, 81234567)

    def test_missing_day_fields_use_defaults(self):
        msft = parse_snapshot_response(SNAPSHOT_PAYLOAD)["MSFT"]
        self.assertEqual(msft.current_price, 400.0)
        self.assertAlmostEqual(msft.day_high, 408.0)
        self.assertAlmostEqual(msft.day_low, 392.0)
        self.assertEqual(msft.volume, 0)

    def test_no_price_anywhere(self):
        result = parse_snapshot_response({"tickers": [{"ticker": "ZZZ"}]})
        self.assertEqual(result["ZZZ"].current_price, 0)

    def test_empty_payload(self):
        self.assertEqual(parse_snapshot_response({"status": "OK"}), {})

    def test_malformed_entry_is_skipped(self):
        payload = {"tickers": [{"ticker": "BAD", "day": 5}, SNAPSHOT_PAYLOAD["tickers"][0]]}
        self.assertEqual(list(parse_snapshot_response(payload)), ["AAPL"])


class TestAggsAndFinancialsParsing(unittest.TestCase):

    def test_aggs(self):
        payload = {
            "results": [
                {"t": epoch_ms(date(2024, 5, 2)), "o": 10, "h": 12, "l": 9, "c": 11, "v": 500},
                {"t": epoch_ms(date(2024, 5, 1)), "o": 9, "h": 11, "l": 8, "c": 10, "v": 400},
            ]
        }
        bars = parse_aggs_response(payload)
        self.assertEqual([b.date for b in bars], [date(2024, 5, 1), date(2024, 5, 2)])
        self.assertEqual(bars[1].close, 11.0)
        self.assertEqual(bars[0].volume, 400.0)

    def test_aggs_without_results(self):
        self.assertEqual(parse_aggs_response({"resultsCount": 0}), [])

    def test_aggs_malformed(self):
        with self.assertRaises(MarketDataError):
            parse_aggs_response({"results": [{"t": 1, "o": 1}]})

    def test_financials(self):
        payload = {
            "results": [
                {
                    "financials": {
                        "income_statement": {
                            "revenues": {"value": 1000},
                            "gross_profit": {"value": 400},
                            "operating_income_loss": {"value": -50},
                        }
                    }
                },
                {"financials": {"income_statement": {"revenues": {"value": 900}}}},
                {"financials": {}},
            ]
        }
        periods = parse_financials_response(payload)
        self.assertEqual(len(periods), 3)
        self.assertEqual(periods[0].operating_income, -50.0)
        self.assertEqual(periods[1].revenue, 900.0)
        self.assertIsNone(periods[1].gross_profit)
        self.assertIsNone(periods[2].revenue)

    def test_financials_malformed(self):
        for payload in (
            {"results": [{"financials": {"income_statement": {"revenues": 5}}}]},
            {"results": [{"financials": "none"}]},
            {"results": [7]},
        ):
            with self.assertRaises(MarketDataError):
                parse_financials_response(payload)


class TestPolygonGateway(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.requests = []
        self.responses = {}

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            key = (request.url.path, request.url.params.get("ticker"))
            default = self.responses.get(request.url.path, (404, {"status": "NOT_FOUND"}))
            status, body = self.responses.get(key, default)
            return httpx.Response(status, json=body)

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.gateway = PolygonGateway(
            api_key="test-key",
            cache=InMemoryCache(),
            rate_limiter=RateLimiter(rpm=600),
            client=self.client,
        )

    async def asyncTearDown(self):
        await self.client.aclose()

    async def test_snapshot_request_and_cache(self):
        self.responses["/v2/snapshot/locale/us/markets/stocks/tickers"] = (200, SNAPSHOT_PAYLOAD)

        first = await self.gateway.get_snapshot(["MSFT", "AAPL"])
        second = await self.gateway.get_snapshot(["AAPL", "MSFT"])

        self.assertEqual(set(first), {"AAPL", "MSFT"})
        self.assertIs(first, second)
        self.assertEqual(len(self.requests), 1)
        params = self.requests[0].url.params
        self.assertEqual(params["tickers"], "AAPL,MSFT")
        self.assertEqual(params["apiKey"], "test-key")

        stats = self.gateway.get_stats()
        self.assertEqual(stats["provider"], "Polygon")
        self.assertEqual(stats["rate_limiter"]["total_requests"], 1)
        self.assertEqual(stats["cache"], {"size": 1})

    async def test_daily_bars_request(self):
        path = "/v2/aggs/ticker/AAPL/range/1/day/2024-01-01/2024-05-02"
        self.responses[path] = (
            200,
            {"results": [{"t": epoch_ms(date(2024, 5, 2)), "o": 1, "h": 2, "l": 0.5, "c": 1.5, "v": 10}]},
        )

        bars = await self.gateway.get_daily_bars("AAPL", date(2024, 1, 1), date(2024, 5, 2))

        self.assertEqual(len(bars), 1)
        params = self.requests[0].url.params
        self.assertEqual(params["adjusted"], "true")
        self.assertEqual(params["sort"], "asc")

    async def test_financials_request(self):
        self.responses["/vX/reference/financials"] = (200, {"results": []})
        self.assertEqual(await self.gateway.get_financials("AAPL"), [])
        params = self.requests[0].url.params
        self.assertEqual(params["ticker"], "AAPL")
        self.assertEqual(params["limit"], "5")

    async def test_ticker_name(self):
        self.responses["/v3/reference/tickers/AAPL"] = (200, {"results": {"name": "Apple Inc."}})
        self.assertEqual(await self.gateway.get_ticker_name("AAPL"), "Apple Inc.")

    async def test_ticker_name_missing(self):
        self.responses["/v3/reference/tickers/ZZZZ"] = (200, {"results": {}})
        self.assertIsNone(await self.gateway.get_ticker_name("ZZZZ"))

    async def test_client_error_raises_market_data_error(self):
        with self.assertRaises(MarketDataError) as ctx:
            await self.gateway.get_ticker_name("NOPE")
        self.assertNotIsInstance(ctx.exception, RateLimitError)

    @patch("dashboard.http_client.asyncio.sleep", new_callable=AsyncMock)
    async def test_rate_limit_raises_and_drains_bucket(self, _sleep):
        self.responses["/v2/snapshot/locale/us/markets/stocks/tickers"] = (429, {"status": "ERROR"})

        with self.assertRaises(RateLimitError):
            await self.gateway.get_snapshot(["AAPL"])

        self.assertEqual(self.gateway.rate_limiter.error_429_count, 1)
        self.assertEqual(self.gateway.rate_limiter.current_tokens, 0)

    async def test_bad_financials_for_one_symbol_do_not_block_refresh(self):
        self.responses["/v2/snapshot/locale/us/markets/stocks/tickers"] = (200, SNAPSHOT_PAYLOAD)
        self.responses[("/vX/reference/financials", "AAPL")] = (
            200,
            {"results": [{"financials": {"income_statement": {"revenues": 5}}}]},
        )
        self.responses[("/vX/reference/financials", "MSFT")] = (
            200,
            {"results": [{"financials": {"income_statement": {"revenues": {"value": 1000}, "gross_profit": {"value": 600}}}}]},
        )
        store = InMemoryPositionStore()
        for symbol in ("AAPL", "MSFT"):
            store.insert("u1", Position(id=store.new_id(), symbol=symbol, shares=1, avg_price=100, name=symbol))
        service = PortfolioService(store, MarketDataService(self.gateway), user_id="u1")

        state = await service.refresh()

        self.assertEqual(set(state.signals), {"AAPL", "MSFT"})
        self.assertFalse(state.signals["AAPL"].is_fallback)
        self.assertIsNone(state.signals["AAPL"].fundamentals)
        self.assertFalse(state.signals["MSFT"].is_fallback)
        self.assertEqual(state.signals["MSFT"].fundamentals.gross_margin, 60.0)

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            PolygonGateway(api_key="")


class TestHttpGet(unittest.IsolatedAsyncioTestCase):

    @patch("dashboard.http_client.asyncio.sleep", new_callable=AsyncMock)
    async def test_retries_server_errors_then_succeeds(self, sleep):
        statuses = iter([503, 502, 200])

        def handler(request):
            return httpx.Response(next(statuses), json={"ok": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            response = await http_client.http_get("https://example.test/x", client=client, retries=3)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(sleep.await_count, 2)

    @patch("dashboard.http_client.asyncio.sleep", new_callable=AsyncMock)
    async def test_honours_retry_after(self, sleep):
        statuses = iter([429, 200])

        def handler(request):
            return httpx.Response(next(statuses), headers={"Retry-After": "7"}, json={})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await http_client.http_get("https://example.test/x", client=client, retries=2)

        sleep.assert_awaited_once_with(7.0)

    @patch("dashboard.http_client.asyncio.sleep", new_callable=AsyncMock)
    async def test_connect_errors_exhaust_retries(self, _sleep):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(MarketDataError):
                await http_client.http_get("https://example.test/x", client=client, retries=2)


class TestRateLimiter(unittest.IsolatedAsyncioTestCase):

    async def test_waits_when_bucket_empty(self):
        now = [0.0]
        waits = []

        async def fake_sleep(seconds):
            waits.append(seconds)
            now[0] += seconds

        limiter = RateLimiter(rpm=2, clock=lambda: now[0], sleep=fake_sleep)

        self.assertTrue(await limiter.acquire())
        self.assertTrue(await limiter.acquire())
        self.assertFalse(await limiter.acquire(wait=False))
        self.assertTrue(await limiter.acquire())

        self.assertEqual(len(waits), 1)
        self.assertAlmostEqual(waits[0], 30.0)
        self.assertEqual(limiter.get_stats()["total_requests"], 3)

    def test_invalid_rpm(self):
        with self.assertRaises(ValueError):
            RateLimiter(rpm=0)


if __name__ == "__main__":
    unittest.main()
