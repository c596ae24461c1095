"""Yahoo Finance gateway (yfinance), used when no Polygon key is configured."""

import asyncio
import logging
import math
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFRateLimitError

from dashboard.cache import CacheInterface, InMemoryCache
from engine.domain.models import DailyBar, FinancialsPeriod, Snapshot
from engine.gateway import MarketDataError, MarketDataGateway, RateLimitError

logger = logging.getLogger(__name__)

REVENUE_ROWS = ("Total Revenue", "Operating Revenue")
GROSS_PROFIT_ROWS = ("Gross Profit",)
OPERATING_INCOME_ROWS = ("Operating Income", "Total Operating Income As Reported")


class YahooGateway(MarketDataGateway):
    """
    yfinance-backed gateway.

    yfinance is blocking, so every call runs in the default executor,
    bounded by a semaphore.
    """

    name = "Yahoo"

    def __init__(
        self,
        cache: Optional[CacheInterface] = None,
        max_concurrent: int = 5,
        snapshot_ttl: int = 60,
        bars_ttl: int = 600,
        financials_ttl: int = 86400,
        ticker_name_ttl: int = 86400,
        ticker_factory=yf.Ticker,
    ):
        self.cache = cache or InMemoryCache()
        self.semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self.snapshot_ttl = snapshot_ttl
        self.bars_ttl = bars_ttl
        self.financials_ttl = financials_ttl
        self.ticker_name_ttl = ticker_name_ttl
        self._ticker_factory = ticker_factory

    async def _run(self, func, *args):
        """Run a blocking yfinance call off the event loop, mapping its errors."""
        async with self.semaphore:
            loop = asyncio.get_running_loop()
            try:
                return await loop.run_in_executor(None, func, *args)
            except YFRateLimitError as exc:
                raise RateLimitError("Yahoo Finance rate limit reached") from exc
            except MarketDataError:
                raise
            except Exception as exc:
                raise MarketDataError(f"yfinance call failed: {exc}") from exc

    async def get_snapshot(self, symbols: Sequence[str]) -> Dict[str, Snapshot]:
        unique = sorted({s.upper() for s in symbols})
        result: Dict[str, Snapshot] = {}

        for symbol in unique:
            cache_key = f"yahoo_snapshot:{symbol}"
            snapshot = self.cache.get(cache_key)
            if snapshot is None:
                snapshot = await self._run(self._fetch_snapshot, symbol)
                if snapshot is None:
                    logger.warning("No Yahoo quote for %s", symbol)
                    continue
                self.cache.set(cache_key, snapshot, self.snapshot_ttl)
            result[symbol] = snapshot

        logger.info("Yahoo snapshot: %d/%d symbols", len(result), len(unique))
        return result

    def _fetch_snapshot(self, symbol: str) -> Optional[Snapshot]:
        history = self._ticker_factory(symbol).history(period="5d", interval="1d")
        return snapshot_from_history(symbol, history)

    async def get_daily_bars(self, symbol: str, from_date: date, to_date: date) -> List[DailyBar]:
        cache_key = f"yahoo_bars:{symbol}:{from_date.isoformat()}:{to_date.isoformat()}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        def _download():
            # yfinance treats end as exclusive
            return self._ticker_factory(symbol).history(
                start=from_date.isoformat(),
                end=(to_date + timedelta(days=1)).isoformat(),
                interval="1d",
                auto_adjust=True,
            )

        frame = await self._run(_download)
        bars = bars_from_history(frame)
        logger.info("yfinance: loaded %d bars for %s", len(bars), symbol)

        self.cache.set(cache_key, bars, self.bars_ttl)
        return bars

    async def get_financials(self, symbol: str, limit: int = 5) -> List[FinancialsPeriod]:
        cache_key = f"yahoo_financials:{symbol}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        statement = await self._run(lambda: self._ticker_factory(symbol).quarterly_income_stmt)
        periods = financials_from_statement(statement, limit)

        self.cache.set(cache_key, periods, self.financials_ttl)
        return periods

    async def get_ticker_name(self, symbol: str) -> Optional[str]:
        cache_key = f"yahoo_name:{symbol}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        info = await self._run(lambda: self._ticker_factory(symbol).info)
        info = info or {}
        name = (info.get("longName") or info.get("shortName") or "").strip() or None
        if name:
            self.cache.set(cache_key, name, self.ticker_name_ttl)
        return name

    def get_stats(self) -> Dict[str, Any]:
        return {"provider": self.name, "cache": self.cache.stats()}


def _clean(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def snapshot_from_history(symbol: str, history: Optional[pd.DataFrame]) -> Optional[Snapshot]:
    """Last close vs. the previous close; day range and volume from the last row."""
    if history is None or history.empty:
        return None

    closes = history["Close"].dropna()
    if closes.empty:
        return None

    price = float(closes.iloc[-1])
    previous = float(closes.iloc[-2]) if len(closes) > 1 else price
    change = price - previous
    change_percent = change / previous * 100 if previous else 0.0

    last = history.iloc[-1]
    return Snapshot(
        symbol=symbol,
        current_price=price,
        change=change,
        change_percent=change_percent,
        day_high=_clean(last.get("High")) or price * 1.02,
        day_low=_clean(last.get("Low")) or price * 0.98,
        volume=_clean(last.get("Volume")) or 0.0,
    )


def bars_from_history(frame: Optional[pd.DataFrame]) -> List[DailyBar]:
    if frame is None or frame.empty:
        return []

    required = {"Open", "High", "Low", "Close"}
    if not required.issubset(frame.columns):
        raise MarketDataError(f"Missing columns: {sorted(required - set(frame.columns))}")

    frame = frame.dropna(subset=sorted(required)).sort_index()
    bars: List[DailyBar] = []
    for ts, row in frame.iterrows():
        bars.append(
            DailyBar(
                date=pd.Timestamp(ts).date(),
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=_clean(row.get("Volume")) or 0.0,
            )
        )
    return bars


def _row_value(statement: pd.DataFrame, rows: Sequence[str], column) -> Optional[float]:
    for row in rows:
        if row in statement.index:
            return _clean(statement.at[row, column])
    return None


def financials_from_statement(statement: Optional[pd.DataFrame], limit: int = 5) -> List[FinancialsPeriod]:
    """Quarterly income statement (periods as columns) into most-recent-first periods."""
    if statement is None or statement.empty:
        return []

    columns = sorted(statement.columns, reverse=True)[:limit]
    return [
        FinancialsPeriod(
            revenue=_row_value(statement, REVENUE_ROWS, column),
            gross_profit=_row_value(statement, GROSS_PROFIT_ROWS, column),
            operating_income=_row_value(statement, OPERATING_INCOME_ROWS, column),
        )
        for column in columns
    ]
