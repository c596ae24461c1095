"""Portfolio service - refresh cycle, position editing, charts and index strip."""

import asyncio
import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from engine.domain.metrics import (
    SMA_FAST,
    SMA_SLOW,
    chart_display_from,
    chart_fetch_from,
    sma_overlay,
)
from engine.domain.models import (
    ChartSeries,
    DailyBar,
    FinancialsPeriod,
    Holding,
    HoldingSignal,
    MarketIndex,
    PortfolioState,
    PortfolioTotals,
    Position,
)
from engine.domain.parsing import (
    PositionValidationError,
    is_valid_symbol,
    normalize_symbol,
    parse_position_input,
    sanitize_name,
    validate_avg_price,
    validate_shares,
)
from engine.domain.portfolio import aggregate, build_holdings
from engine.domain.signals import compute_signal
from engine.domain.view import FILTER_ALL, SORT_ALPHABETICAL, sorted_and_filtered
from engine.store import PositionStore

from .market_data import MarketDataService

logger = logging.getLogger(__name__)

BARS_LOOKBACK_DAYS = 365
FINANCIALS_LIMIT = 5

# Index-tracking ETFs shown above the portfolio
MARKET_INDEXES = (
    ("DIA", "Dow Jones"),
    ("SPY", "S&P 500"),
    ("QQQ", "NASDAQ"),
)


class PositionNotFoundError(LookupError):
    """No position with the given id for this user."""


class PortfolioService:
    """
    Owns the refresh cycle and the latest PortfolioState for one user.

    The state is replaced in a single assignment at the end of each cycle,
    so readers see either the previous or the new state, never a mix.
    """

    def __init__(
        self,
        store: PositionStore,
        market_data: MarketDataService,
        user_id: str = "local",
        rng: Optional[random.Random] = None,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.market_data = market_data
        self.user_id = user_id
        self.rng = rng
        self._today = today
        self._state = PortfolioState()
        self._refresh_lock = asyncio.Lock()
        self._name_repair_attempted: Set[str] = set()

    @property
    def state(self) -> PortfolioState:
        return self._state

    def positions(self) -> List[Position]:
        return self.store.list(self.user_id)

    # Refresh cycle

    async def refresh(self) -> PortfolioState:
        """
        Run one refresh cycle.

        Concurrent callers queue on the lock; each runs a full cycle.
        """
        async with self._refresh_lock:
            positions = self.positions()
            logger.info("Refresh started for %d positions", len(positions))

            signals = await self._compute_signals(positions)
            state = PortfolioState(
                holdings=build_holdings(positions, signals),
                signals=signals,
                totals=aggregate(positions, signals),
                refreshed_at=datetime.now(timezone.utc),
            )
            self._state = state

            fallbacks = sum(1 for s in signals.values() if s.is_fallback)
            logger.info(
                "Refresh complete: %d symbols, %d fallback, total value %.2f",
                len(signals),
                fallbacks,
                state.totals.total_value,
            )
            return state

    async def _compute_signals(self, positions: List[Position]) -> Dict[str, HoldingSignal]:
        first_by_symbol: Dict[str, Position] = {}
        for position in positions:
            first_by_symbol.setdefault(position.symbol, position)
        symbols = list(first_by_symbol)
        if not symbols:
            return {}

        batch = await self.market_data.snapshot(symbols)
        live = [s for s in symbols if s in batch.snapshots]

        to_date = self._today()
        from_date = to_date - timedelta(days=BARS_LOOKBACK_DAYS)
        extras = await asyncio.gather(
            *(self._fetch_extras(symbol, from_date, to_date) for symbol in live)
        )
        extras_by_symbol = dict(zip(live, extras))

        signals: Dict[str, HoldingSignal] = {}
        for symbol, position in first_by_symbol.items():
            bars, financials = extras_by_symbol.get(symbol, (None, None))
            signals[symbol] = compute_signal(
                position,
                batch.snapshots.get(symbol),
                bars,
                financials,
                status=batch.status_for(symbol),
                rng=self.rng,
            )
        return signals

    async def _fetch_extras(
        self, symbol: str, from_date: date, to_date: date
    ) -> Tuple[Optional[List[DailyBar]], Optional[List[FinancialsPeriod]]]:
        bars, financials = await asyncio.gather(
            self.market_data.daily_bars(symbol, from_date, to_date),
            self.market_data.financials(symbol, limit=FINANCIALS_LIMIT),
        )
        return bars, financials

    # Read side

    def view(self, sort_key: str = SORT_ALPHABETICAL, recommendation: str = FILTER_ALL) -> List[Holding]:
        """Current positions paired with the latest signals, filtered then sorted."""
        holdings = build_holdings(self.positions(), self._state.signals)
        return sorted_and_filtered(holdings, sort_key, recommendation)

    def totals(self) -> PortfolioTotals:
        return aggregate(self.positions(), self._state.signals)

    # Position editing

    async def add_position(
        self,
        symbol: str,
        shares,
        avg_price,
        name: Optional[str] = None,
    ) -> Position:
        """
        Validate and store a new position.

        Raises:
            PositionValidationError: bad symbol, shares or price
        """
        entry = parse_position_input(symbol, shares, avg_price, name)
        display_name = entry.name
        if not display_name:
            looked_up = await self.market_data.ticker_name(entry.symbol)
            display_name = sanitize_name(looked_up, entry.symbol)

        position = Position(
            id=self.store.new_id(),
            symbol=entry.symbol,
            shares=entry.shares,
            avg_price=entry.avg_price,
            name=display_name,
        )
        return self.store.insert(self.user_id, position)

    def update_position(
        self,
        position_id: str,
        shares=None,
        avg_price=None,
        name: Optional[str] = None,
    ) -> Position:
        """
        Edit shares, average price and/or name.

        Raises:
            PositionNotFoundError: unknown id
            PositionValidationError: values out of range
        """
        current = self._owned_position(position_id)

        fields = {}
        if shares is not None:
            fields["shares"] = validate_shares(shares)
        if avg_price is not None:
            fields["avg_price"] = validate_avg_price(avg_price)
        if name is not None:
            fields["name"] = sanitize_name(name, current.symbol)

        if not fields:
            return current

        updated = self.store.update(position_id, **fields)
        if updated is None:
            raise PositionNotFoundError(position_id)
        return updated

    def remove_position(self, position_id: str) -> None:
        self._owned_position(position_id)
        if not self.store.delete(position_id):
            raise PositionNotFoundError(position_id)

    def _owned_position(self, position_id: str) -> Position:
        for position in self.positions():
            if position.id == position_id:
                return position
        raise PositionNotFoundError(position_id)

    async def repair_legacy_names(self) -> int:
        """
        Replace names equal to the symbol with the company name. Returns repairs made.

        Holds the refresh lock so a cycle never reads a half-repaired list.
        """
        repaired = 0
        async with self._refresh_lock:
            for position in self.positions():
                if position.name != position.symbol or position.id in self._name_repair_attempted:
                    continue
                self._name_repair_attempted.add(position.id)

                name = await self.market_data.ticker_name(position.symbol)
                if not name or name == position.symbol:
                    continue
                if self.store.update(position.id, name=sanitize_name(name, position.symbol)):
                    logger.info("Repaired name for %s: %s", position.symbol, name)
                    repaired += 1
        return repaired

    # Charts and indexes

    async def chart(self, symbol: str, timeframe: str) -> ChartSeries:
        """
        Bars for the display window with SMA overlays.

        Raises:
            PositionValidationError: malformed symbol
            ValueError: unknown timeframe
        """
        symbol = normalize_symbol(symbol or "")
        if not is_valid_symbol(symbol):
            raise PositionValidationError(f"Invalid stock symbol: {symbol!r}")

        today = self._today()
        display_from = chart_display_from(timeframe, today)
        bars = await self.market_data.daily_bars(symbol, chart_fetch_from(display_from), today) or []

        overlay = sma_overlay(bars, display_from)
        return ChartSeries(
            symbol=symbol,
            timeframe=timeframe,
            display_from=display_from,
            bars=[b for b in bars if b.date >= display_from],
            sma50=overlay[SMA_FAST],
            sma200=overlay[SMA_SLOW],
        )

    async def market_indexes(self) -> List[MarketIndex]:
        batch = await self.market_data.snapshot([symbol for symbol, _ in MARKET_INDEXES])
        indexes = []
        for symbol, name in MARKET_INDEXES:
            snapshot = batch.snapshots.get(symbol)
            if snapshot is None:
                continue
            indexes.append(
                MarketIndex(
                    symbol=symbol,
                    name=name,
                    price=snapshot.current_price,
                    change=snapshot.change,
                    change_percent=snapshot.change_percent,
                )
            )
        return indexes
