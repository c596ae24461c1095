"""Domain models for the portfolio signal engine."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Recommendation(str, Enum):
    """Heuristic trade recommendation."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class DataStatus(str, Enum):
    """Where a holding signal's numbers came from."""
    LIVE = "live"
    NO_DATA = "no_data"  # Provider returned nothing for the symbol
    RATE_LIMITED = "rate_limited"  # Provider throttled the snapshot call
    ERROR = "error"  # Snapshot call failed


class TechnicalTrend(str, Enum):
    """Short-run trend from the trailing 20 daily bars."""
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"
    RANGE_BOUND = "range-bound"
    NEUTRAL = "neutral"


class MomentumSignal(str, Enum):
    """Direction of today's move."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class Position:
    """User-owned equity position. Symbol and id never change after creation."""
    id: str
    symbol: str
    shares: float
    avg_price: float
    name: str = ""

    def __post_init__(self):
        if not self.shares > 0:
            raise ValueError(f"shares must be positive, got {self.shares!r}")
        if not self.avg_price > 0:
            raise ValueError(f"avg_price must be positive, got {self.avg_price!r}")
        if not self.name:
            object.__setattr__(self, "name", self.symbol)

    @property
    def cost_basis(self) -> float:
        return self.avg_price * self.shares

    def with_updates(
        self,
        shares: Optional[float] = None,
        avg_price: Optional[float] = None,
        name: Optional[str] = None,
    ) -> "Position":
        """Return an edited copy; only shares, avg_price and name are editable."""
        return replace(
            self,
            shares=self.shares if shares is None else shares,
            avg_price=self.avg_price if avg_price is None else avg_price,
            name=self.name if name is None else name,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "shares": self.shares,
            "avg_price": self.avg_price,
            "name": self.name,
        }


@dataclass
class Snapshot:
    """Point-in-time quote for a symbol."""
    symbol: str
    current_price: float
    change: float = 0.0
    change_percent: float = 0.0
    day_high: float = 0.0
    day_low: float = 0.0
    volume: float = 0.0


@dataclass
class DailyBar:
    """One daily OHLCV bar."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass
class FinancialsPeriod:
    """Income statement figures for one reporting period."""
    revenue: Optional[float] = None
    gross_profit: Optional[float] = None
    operating_income: Optional[float] = None


@dataclass
class Fundamentals:
    """Growth and margin ratios (percent). None means not computed."""
    revenue: Optional[float] = None
    revenue_growth_yoy: Optional[float] = None
    revenue_growth_qoq: Optional[float] = None
    gross_margin: Optional[float] = None
    operating_margin: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "revenue": self.revenue,
            "revenue_growth_yoy": self.revenue_growth_yoy,
            "revenue_growth_qoq": self.revenue_growth_qoq,
            "gross_margin": self.gross_margin,
            "operating_margin": self.operating_margin,
        }


@dataclass
class TechnicalSignals:
    """Support/resistance, trend and pattern flags from daily bars."""
    trend: TechnicalTrend = TechnicalTrend.NEUTRAL
    support_level: Optional[float] = None
    resistance_level: Optional[float] = None
    pattern_alerts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trend": self.trend.value,
            "support_level": self.support_level,
            "resistance_level": self.resistance_level,
            "pattern_alerts": list(self.pattern_alerts),
        }


@dataclass
class HoldingSignal:
    """Live metrics and heuristic signal for one symbol (recomputed every cycle)."""
    symbol: str
    current_price: float
    change: float
    change_percent: float
    day_high: float
    day_low: float
    volume: float
    recommendation: Recommendation
    reasoning: str
    rsi_proxy: int
    trend: MomentumSignal
    price_in_day_range_percent: int
    alerts: List[str] = field(default_factory=list)
    week52_high: Optional[float] = None
    week52_low: Optional[float] = None
    avg_volume: Optional[int] = None
    fundamentals: Optional[Fundamentals] = None
    technical: Optional[TechnicalSignals] = None
    data_status: DataStatus = DataStatus.LIVE

    @property
    def is_fallback(self) -> bool:
        return self.data_status != DataStatus.LIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "current_price": self.current_price,
            "change": self.change,
            "change_percent": self.change_percent,
            "day_high": self.day_high,
            "day_low": self.day_low,
            "volume": self.volume,
            "week52_high": self.week52_high,
            "week52_low": self.week52_low,
            "avg_volume": self.avg_volume,
            "recommendation": self.recommendation.value,
            "reasoning": self.reasoning,
            "alerts": list(self.alerts),
            "rsi_proxy": self.rsi_proxy,
            "trend": self.trend.value,
            "price_in_day_range_percent": self.price_in_day_range_percent,
            "fundamentals": self.fundamentals.to_dict() if self.fundamentals else None,
            "technical": self.technical.to_dict() if self.technical else None,
            "data_status": self.data_status.value,
        }


@dataclass
class Holding:
    """A position paired with its live signal."""
    position: Position
    signal: HoldingSignal

    @property
    def symbol(self) -> str:
        return self.position.symbol

    @property
    def current_value(self) -> float:
        return self.signal.current_price * self.position.shares

    @property
    def cost_basis(self) -> float:
        return self.position.cost_basis

    @property
    def gain_loss(self) -> float:
        return self.current_value - self.cost_basis

    @property
    def gain_loss_percent(self) -> float:
        if self.cost_basis <= 0:
            return 0.0
        return self.gain_loss / self.cost_basis * 100

    @property
    def daily_change(self) -> float:
        return self.signal.change * self.position.shares

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "signal": self.signal.to_dict(),
            "current_value": self.current_value,
            "cost_basis": self.cost_basis,
            "gain_loss": self.gain_loss,
            "gain_loss_percent": self.gain_loss_percent,
            "daily_change": self.daily_change,
        }


@dataclass
class PortfolioTotals:
    """Portfolio-level totals and same-day deltas."""
    total_value: float = 0.0
    total_cost: float = 0.0
    total_gain_loss: float = 0.0
    total_gain_loss_percent: float = 0.0
    total_value_daily_change: float = 0.0
    total_value_daily_change_percent: float = 0.0
    cost_basis_daily_change: float = 0.0
    cost_basis_daily_change_percent: float = 0.0
    pl_daily_change: float = 0.0
    pl_daily_change_percent: float = 0.0
    return_daily_change_percent: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_value": self.total_value,
            "total_cost": self.total_cost,
            "total_gain_loss": self.total_gain_loss,
            "total_gain_loss_percent": self.total_gain_loss_percent,
            "total_value_daily_change": self.total_value_daily_change,
            "total_value_daily_change_percent": self.total_value_daily_change_percent,
            "cost_basis_daily_change": self.cost_basis_daily_change,
            "cost_basis_daily_change_percent": self.cost_basis_daily_change_percent,
            "pl_daily_change": self.pl_daily_change,
            "pl_daily_change_percent": self.pl_daily_change_percent,
            "return_daily_change_percent": self.return_daily_change_percent,
        }


@dataclass
class SmaPoint:
    """One point of a moving-average series."""
    date: date
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "value": self.value}


@dataclass
class ChartSeries:
    """Candles plus SMA overlays for a single symbol, trimmed to the display window."""
    symbol: str
    timeframe: str
    display_from: date
    bars: List[DailyBar] = field(default_factory=list)
    sma50: List[SmaPoint] = field(default_factory=list)
    sma200: List[SmaPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "display_from": self.display_from.isoformat(),
            "bars": [b.to_dict() for b in self.bars],
            "sma50": [p.to_dict() for p in self.sma50],
            "sma200": [p.to_dict() for p in self.sma200],
        }


@dataclass
class MarketIndex:
    """Index-tracking ETF quote shown above the portfolio."""
    symbol: str
    name: str
    price: float
    change: float
    change_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "change": self.change,
            "change_percent": self.change_percent,
        }


@dataclass
class PortfolioState:
    """Result of one refresh cycle; replaced as a whole, never mutated."""
    holdings: List[Holding] = field(default_factory=list)
    signals: Dict[str, HoldingSignal] = field(default_factory=dict)
    totals: PortfolioTotals = field(default_factory=PortfolioTotals)
    refreshed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "holdings": [h.to_dict() for h in self.holdings],
            "totals": self.totals.to_dict(),
            "refreshed_at": self.refreshed_at.isoformat() if self.refreshed_at else None,
        }
