"""Polygon.io market data gateway with rate limiting and caching."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx

from dashboard import http_client
from dashboard.cache import CacheInterface, InMemoryCache
from dashboard.config import POLYGON_BASE_URL
from engine.domain.models import DailyBar, FinancialsPeriod, Snapshot
from engine.gateway import MarketDataError, MarketDataGateway, RateLimitError

from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SNAPSHOT_ENDPOINT = "/v2/snapshot/locale/us/markets/stocks/tickers"
AGGS_ENDPOINT = "/v2/aggs/ticker/{symbol}/range/1/day/{from_date}/{to_date}"
FINANCIALS_ENDPOINT = "/vX/reference/financials"
TICKER_ENDPOINT = "/v3/reference/tickers/{symbol}"

# Placeholder day range when the session has no high/low yet
DAY_HIGH_FALLBACK_RATIO = 1.02
DAY_LOW_FALLBACK_RATIO = 0.98


class PolygonGateway(MarketDataGateway):
    """
    Polygon.io REST gateway.

    Features:
    - Batch snapshot, daily aggregates, financials, ticker reference
    - Token bucket limiter (free tier: 5 requests per minute)
    - Per-endpoint TTL cache
    - API key sent as the apiKey query parameter
    """

    name = "Polygon"

    def __init__(
        self,
        api_key: str,
        cache: Optional[CacheInterface] = None,
        rate_limiter: Optional[RateLimiter] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = POLYGON_BASE_URL,
        snapshot_ttl: int = 60,
        bars_ttl: int = 600,
        financials_ttl: int = 86400,
        ticker_name_ttl: int = 86400,
    ):
        if not api_key:
            raise ValueError("Polygon API key is required")

        self.api_key = api_key
        self.cache = cache or InMemoryCache()
        self.rate_limiter = rate_limiter or RateLimiter(rpm=5)
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.snapshot_ttl = snapshot_ttl
        self.bars_ttl = bars_ttl
        self.financials_ttl = financials_ttl
        self.ticker_name_ttl = ticker_name_ttl

        logger.info("Initialized PolygonGateway with RPM=%d", self.rate_limiter.rpm)

    async def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Rate-limited GET returning the decoded JSON body."""
        query = dict(params or {})
        query["apiKey"] = self.api_key

        await self.rate_limiter.acquire(wait=True)
        try:
            response = await http_client.http_get(
                f"{self.base_url}{endpoint}",
                params=query,
                client=self.client,
            )
        except RateLimitError:
            self.rate_limiter.record_429()
            raise

        try:
            payload = response.json()
        except ValueError as exc:
            raise MarketDataError(f"Invalid JSON from {endpoint}") from exc
        if not isinstance(payload, dict):
            raise MarketDataError(f"Unexpected payload from {endpoint}")
        return payload

    async def get_snapshot(self, symbols: Sequence[str]) -> Dict[str, Snapshot]:
        unique = sorted({s.upper() for s in symbols})
        if not unique:
            return {}

        cache_key = f"polygon_snapshot:{','.join(unique)}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        logger.info("Fetching snapshot for %d symbols from Polygon", len(unique))
        payload = await self._get_json(SNAPSHOT_ENDPOINT, {"tickers": ",".join(unique)})
        result = parse_snapshot_response(payload)

        self.cache.set(cache_key, result, self.snapshot_ttl)
        return result

    async def get_daily_bars(self, symbol: str, from_date: date, to_date: date) -> List[DailyBar]:
        cache_key = f"polygon_bars:{symbol}:{from_date.isoformat()}:{to_date.isoformat()}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        logger.info("Fetching daily bars for %s (%s..%s)", symbol, from_date, to_date)
        endpoint = AGGS_ENDPOINT.format(
            symbol=symbol,
            from_date=from_date.isoformat(),
            to_date=to_date.isoformat(),
        )
        payload = await self._get_json(endpoint, {"adjusted": "true", "sort": "asc"})
        bars = parse_aggs_response(payload)

        self.cache.set(cache_key, bars, self.bars_ttl)
        return bars

    async def get_financials(self, symbol: str, limit: int = 5) -> List[FinancialsPeriod]:
        cache_key = f"polygon_financials:{symbol}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        logger.info("Fetching financials for %s", symbol)
        payload = await self._get_json(FINANCIALS_ENDPOINT, {"ticker": symbol, "limit": limit})
        periods = parse_financials_response(payload)

        self.cache.set(cache_key, periods, self.financials_ttl)
        return periods

    async def get_ticker_name(self, symbol: str) -> Optional[str]:
        cache_key = f"polygon_name:{symbol}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        payload = await self._get_json(TICKER_ENDPOINT.format(symbol=symbol))
        name = ((payload.get("results") or {}).get("name") or "").strip() or None
        if name:
            self.cache.set(cache_key, name, self.ticker_name_ttl)
        return name

    def get_stats(self) -> Dict[str, Any]:
        return {
            "provider": self.name,
            "rate_limiter": self.rate_limiter.get_stats(),
            "cache": self.cache.stats(),
        }


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first_positive(*values: Any) -> float:
    """First truthy number, mirroring `a || b || c || 0`."""
    for value in values:
        number = _number(value)
        if number:
            return number
    return 0.0


def parse_snapshot_ticker(ticker: Dict[str, Any]) -> Snapshot:
    """Parse one entry of the snapshot `tickers` array."""
    day = ticker.get("day") or {}
    prev_day = ticker.get("prevDay") or {}
    last_trade = ticker.get("lastTrade") or {}

    price = _first_positive(last_trade.get("p"), day.get("c"), prev_day.get("c"))

    return Snapshot(
        symbol=str(ticker.get("ticker", "")).upper(),
        current_price=price,
        change=_number(ticker.get("todaysChange")) or 0.0,
        change_percent=_number(ticker.get("todaysChangePerc")) or 0.0,
        day_high=_number(day.get("h")) or price * DAY_HIGH_FALLBACK_RATIO,
        day_low=_number(day.get("l")) or price * DAY_LOW_FALLBACK_RATIO,
        volume=_number(day.get("v")) or 0.0,
    )


def parse_snapshot_response(payload: Dict[str, Any]) -> Dict[str, Snapshot]:
    tickers = payload.get("tickers")
    if tickers is None:
        return {}
    if not isinstance(tickers, list):
        raise MarketDataError("Snapshot payload has no ticker list")

    result: Dict[str, Snapshot] = {}
    for entry in tickers:
        if not isinstance(entry, dict) or not entry.get("ticker"):
            continue
        try:
            snapshot = parse_snapshot_ticker(entry)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed snapshot for %s: %s", entry.get("ticker"), exc)
            continue
        result[snapshot.symbol] = snapshot
    return result


def parse_aggs_response(payload: Dict[str, Any]) -> List[DailyBar]:
    """
    Convert aggregates `results` into DailyBars.

    Each result carries t (epoch ms), o, h, l, c, v.
    """
    results = payload.get("results") or []
    bars: List[DailyBar] = []

    try:
        for row in results:
            bar_date = datetime.fromtimestamp(row["t"] / 1000, tz=timezone.utc).date()
            bars.append(
                DailyBar(
                    date=bar_date,
                    open=float(row["o"]),
                    high=float(row["h"]),
                    low=float(row["l"]),
                    close=float(row["c"]),
                    volume=float(row.get("v") or 0),
                )
            )
    except (KeyError, TypeError, ValueError) as exc:
        raise MarketDataError(f"Malformed aggregates payload: {exc}") from exc

    bars.sort(key=lambda b: b.date)
    return bars


def parse_financials_response(payload: Dict[str, Any]) -> List[FinancialsPeriod]:
    """
    Convert vX financials `results` into periods, most recent first.

    Raises:
        MarketDataError: a result or statement is not an object
    """
    periods: List[FinancialsPeriod] = []

    try:
        for result in payload.get("results") or []:
            statement = ((result or {}).get("financials") or {}).get("income_statement") or {}

            def value(key: str) -> Optional[float]:
                return _number((statement.get(key) or {}).get("value"))

            periods.append(
                FinancialsPeriod(
                    revenue=value("revenues"),
                    gross_profit=value("gross_profit"),
                    operating_income=value("operating_income_loss"),
                )
            )
    except (AttributeError, TypeError, ValueError) as exc:
        raise MarketDataError(f"Malformed financials payload: {exc}") from exc
    return periods
