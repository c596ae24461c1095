"""Market data service layer - turns gateway failures into typed outcomes."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from engine.domain.models import DailyBar, DataStatus, FinancialsPeriod, Snapshot
from engine.gateway import MarketDataError, MarketDataGateway, RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class SnapshotBatch:
    """
    Result of one batched snapshot request.

    status is LIVE when the request succeeded (symbols may still be missing
    from snapshots), RATE_LIMITED or ERROR when it failed as a whole.
    """
    snapshots: Dict[str, Snapshot] = field(default_factory=dict)
    status: DataStatus = DataStatus.LIVE

    def status_for(self, symbol: str) -> DataStatus:
        if self.status is not DataStatus.LIVE:
            return self.status
        return DataStatus.LIVE if symbol in self.snapshots else DataStatus.NO_DATA


class MarketDataService:
    """
    Wraps a MarketDataGateway so callers never see transport exceptions.

    Failures are logged at warning level and reported as None, an empty
    list or a degraded SnapshotBatch.
    """

    def __init__(self, gateway: MarketDataGateway):
        self.gateway = gateway

    async def snapshot(self, symbols: Sequence[str]) -> SnapshotBatch:
        if not symbols:
            return SnapshotBatch()
        try:
            snapshots = await self.gateway.get_snapshot(symbols)
        except RateLimitError as exc:
            logger.warning("Snapshot rate limited for %d symbols: %s", len(symbols), exc)
            return SnapshotBatch(status=DataStatus.RATE_LIMITED)
        except MarketDataError as exc:
            logger.warning("Snapshot failed for %d symbols: %s", len(symbols), exc)
            return SnapshotBatch(status=DataStatus.ERROR)
        except Exception as exc:
            logger.error("Unexpected snapshot error for %d symbols: %s", len(symbols), exc, exc_info=True)
            return SnapshotBatch(status=DataStatus.ERROR)

        missing = sorted(set(symbols) - set(snapshots))
        if missing:
            logger.warning("No snapshot data for: %s", ", ".join(missing))
        return SnapshotBatch(snapshots=dict(snapshots))

    async def daily_bars(self, symbol: str, from_date: date, to_date: date) -> Optional[List[DailyBar]]:
        try:
            bars = await self.gateway.get_daily_bars(symbol, from_date, to_date)
        except MarketDataError as exc:
            logger.warning("Daily bars unavailable for %s: %s", symbol, exc)
            return None
        except Exception as exc:
            logger.error("Unexpected error fetching bars for %s: %s", symbol, exc, exc_info=True)
            return None
        return bars or None

    async def financials(self, symbol: str, limit: int = 5) -> Optional[List[FinancialsPeriod]]:
        try:
            periods = await self.gateway.get_financials(symbol, limit=limit)
        except MarketDataError as exc:
            logger.warning("Financials unavailable for %s: %s", symbol, exc)
            return None
        except Exception as exc:
            logger.error("Unexpected error fetching financials for %s: %s", symbol, exc, exc_info=True)
            return None
        return periods or None

    def stats(self) -> Dict[str, Any]:
        return self.gateway.get_stats()

    async def ticker_name(self, symbol: str) -> Optional[str]:
        try:
            return await self.gateway.get_ticker_name(symbol)
        except MarketDataError as exc:
            logger.warning("Name lookup failed for %s: %s", symbol, exc)
            return None
        except Exception as exc:
            logger.error("Unexpected error looking up name for %s: %s", symbol, exc, exc_info=True)
            return None
