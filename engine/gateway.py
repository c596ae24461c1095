"""Market data gateway interface and its error types."""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from engine.domain.models import DailyBar, FinancialsPeriod, Snapshot


class MarketDataError(Exception):
    """Upstream request failed or returned an unusable payload."""


class RateLimitError(MarketDataError):
    """Upstream refused the request because of its rate limit."""


class MarketDataGateway(ABC):
    """
    Async source of quotes, daily bars, financials and ticker names.

    Implementations raise RateLimitError / MarketDataError on failure and
    never return partially parsed data.
    """

    name: str = "gateway"

    @abstractmethod
    async def get_snapshot(self, symbols: Sequence[str]) -> Dict[str, Snapshot]:
        """Batch quote lookup. Symbols without data are absent from the result."""
        pass

    @abstractmethod
    async def get_daily_bars(self, symbol: str, from_date: date, to_date: date) -> List[DailyBar]:
        """Daily OHLCV bars in ascending date order, both ends inclusive."""
        pass

    @abstractmethod
    async def get_financials(self, symbol: str, limit: int = 5) -> List[FinancialsPeriod]:
        """Income statement periods, most recent first."""
        pass

    @abstractmethod
    async def get_ticker_name(self, symbol: str) -> Optional[str]:
        """Company name, or None when the source does not know the symbol."""
        pass

    def get_stats(self) -> Dict[str, Any]:
        return {"provider": self.name}

    async def close(self) -> None:
        """Release network resources."""
        return None
