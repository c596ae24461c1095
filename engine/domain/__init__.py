"""Domain layer - models and pure portfolio analytics."""

from .metrics import classify_technical, compute_sma, sma_overlay
from .models import (
    ChartSeries,
    DailyBar,
    DataStatus,
    FinancialsPeriod,
    Fundamentals,
    Holding,
    HoldingSignal,
    MarketIndex,
    MomentumSignal,
    PortfolioState,
    PortfolioTotals,
    Position,
    Recommendation,
    SmaPoint,
    Snapshot,
    TechnicalSignals,
    TechnicalTrend,
)
from .portfolio import aggregate, build_holdings
from .signals import compute_signal, fallback_signal
from .view import filter_holdings, sort_holdings, sorted_and_filtered

__all__ = [
    "ChartSeries",
    "DailyBar",
    "DataStatus",
    "FinancialsPeriod",
    "Fundamentals",
    "Holding",
    "HoldingSignal",
    "MarketIndex",
    "MomentumSignal",
    "PortfolioState",
    "PortfolioTotals",
    "Position",
    "Recommendation",
    "SmaPoint",
    "Snapshot",
    "TechnicalSignals",
    "TechnicalTrend",
    "aggregate",
    "build_holdings",
    "classify_technical",
    "compute_signal",
    "compute_sma",
    "fallback_signal",
    "filter_holdings",
    "sma_overlay",
    "sort_holdings",
    "sorted_and_filtered",
]
