"""
Pure calculation functions over daily bar series.

No I/O, no state. Used both for per-holding technical signals and for
the moving-average overlays of the chart view.
"""

import logging
import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .models import DailyBar, SmaPoint, TechnicalSignals, TechnicalTrend

logger = logging.getLogger(__name__)

MIN_BARS_FOR_TECHNICAL = 20
SUPPORT_LOOKBACK = 50
TREND_WINDOW = 20
TREND_HALF = 10
TREND_UP_RATIO = 1.02
TREND_DOWN_RATIO = 0.98
LOWER_LOWS_WINDOW = 5
BREAKOUT_TOUCH_RATIO = 0.99
BREAKOUT_FAIL_RATIO = 0.97
SUPPORT_CUSHION_RATIO = 1.05

ALERT_LOWER_LOWS = "⚠️ Lower lows - bearish pattern"
ALERT_FAILED_BREAKOUT = "📉 Failed breakout attempt"
ALERT_ABOVE_SUPPORT = "✅ Above support - constructive base"
ALERT_BROKEN_SUPPORT = "🚨 Broken support level"

SMA_FAST = 50
SMA_SLOW = 200

# Calendar days fetched before the display window so a 200-day SMA is warm.
CHART_WARMUP_DAYS = 300
CHART_TIMEFRAMES = ("1D", "1W", "1M", "3M", "1Y", "5Y")


def bars_to_frame(bars: Sequence[DailyBar]) -> pd.DataFrame:
    """
    Convert bars into an OHLCV DataFrame indexed by date.

    Args:
        bars: Bars ordered ascending by date

    Returns:
        DataFrame with columns Open, High, Low, Close, Volume
    """
    df = pd.DataFrame(
        {
            "Open": [float(b.open) for b in bars],
            "High": [float(b.high) for b in bars],
            "Low": [float(b.low) for b in bars],
            "Close": [float(b.close) for b in bars],
            "Volume": [float(b.volume) for b in bars],
        },
        index=pd.Index([b.date for b in bars], name="Date"),
    )
    return df


def compute_sma(bars: Sequence[DailyBar], period: int) -> List[SmaPoint]:
    """
    Calculate the trailing simple moving average of closing prices.

    Indices with an incomplete window produce no point, so the result has
    max(0, len(bars) - period + 1) entries.

    Args:
        bars: Bars ordered ascending by date
        period: Window length in bars

    Returns:
        List of SmaPoint aligned to the last bar of each window
    """
    if period < 1:
        raise ValueError(f"SMA period must be >= 1, got {period}")
    if len(bars) < period:
        return []

    closes = bars_to_frame(bars)["Close"]
    sma = closes.rolling(window=period).mean()

    return [
        SmaPoint(date=bars[i].date, value=float(sma.iloc[i]))
        for i in range(period - 1, len(bars))
    ]


def trim_series(points: Iterable[SmaPoint], display_from: date) -> List[SmaPoint]:
    """Keep only points on or after display_from."""
    return [p for p in points if p.date >= display_from]


def sma_overlay(
    bars: Sequence[DailyBar],
    display_from: date,
    periods: Tuple[int, ...] = (SMA_FAST, SMA_SLOW),
) -> Dict[int, List[SmaPoint]]:
    """
    Build SMA overlays for a chart.

    Averages run over the full history first and are trimmed afterwards,
    so the first visible point still averages a complete window.
    """
    return {
        period: trim_series(compute_sma(bars, period), display_from)
        for period in periods
    }


def summarize_range(bars: Sequence[DailyBar]) -> Optional[Tuple[float, float, int]]:
    """
    Calculate high/low extremes and average volume over the bars.

    Returns:
        (max high, min low, rounded mean volume) or None for an empty series
    """
    if not bars:
        return None

    df = bars_to_frame(bars)
    mean_volume = float(df["Volume"].mean())
    return (
        float(df["High"].max()),
        float(df["Low"].min()),
        int(round(mean_volume)) if math.isfinite(mean_volume) else 0,
    )


def classify_trend(closes: pd.Series) -> TechnicalTrend:
    """Compare mean close of the latest half-window against the earlier half."""
    first_avg = float(closes.iloc[:TREND_HALF].mean())
    last_avg = float(closes.iloc[-TREND_HALF:].mean())

    if last_avg > first_avg * TREND_UP_RATIO:
        return TechnicalTrend.UPTREND
    if last_avg < first_avg * TREND_DOWN_RATIO:
        return TechnicalTrend.DOWNTREND
    return TechnicalTrend.RANGE_BOUND


def classify_technical(
    bars: Sequence[DailyBar],
    current_price: Optional[float] = None,
) -> TechnicalSignals:
    """
    Derive support/resistance, trend and pattern alerts from daily bars.

    Args:
        bars: Bars ordered ascending by date
        current_price: Live price; defaults to the last close

    Returns:
        TechnicalSignals; neutral with no levels when fewer than 20 bars
    """
    if len(bars) < MIN_BARS_FOR_TECHNICAL:
        return TechnicalSignals()

    df = bars_to_frame(bars)
    price = float(df["Close"].iloc[-1]) if current_price is None else float(current_price)

    window = df.tail(SUPPORT_LOOKBACK)
    support = float(window["Low"].min())
    resistance = float(window["High"].max())

    recent = df.tail(TREND_WINDOW)
    signals = TechnicalSignals(
        trend=classify_trend(recent["Close"]),
        support_level=support,
        resistance_level=resistance,
    )

    # Each low at or below the one before it
    if recent["Low"].tail(LOWER_LOWS_WINDOW).is_monotonic_decreasing:
        signals.pattern_alerts.append(ALERT_LOWER_LOWS)

    touched_resistance = bool((recent["High"] >= resistance * BREAKOUT_TOUCH_RATIO).any())
    if touched_resistance and price < resistance * BREAKOUT_FAIL_RATIO:
        signals.pattern_alerts.append(ALERT_FAILED_BREAKOUT)

    if price > support * SUPPORT_CUSHION_RATIO:
        signals.pattern_alerts.append(ALERT_ABOVE_SUPPORT)
    elif price < support:
        signals.pattern_alerts.append(ALERT_BROKEN_SUPPORT)

    logger.debug(
        "Technical: trend=%s support=%.2f resistance=%.2f alerts=%d",
        signals.trend.value, support, resistance, len(signals.pattern_alerts),
    )
    return signals


def chart_display_from(timeframe: str, today: date) -> date:
    """
    First date shown for a chart timeframe.

    Args:
        timeframe: One of 1D, 1W, 1M, 3M, 1Y, 5Y
        today: Reference date (end of the window)
    """
    if timeframe == "1D":
        return today - timedelta(days=1)
    if timeframe == "1W":
        return today - timedelta(days=7)

    offsets = {
        "1M": pd.DateOffset(months=1),
        "3M": pd.DateOffset(months=3),
        "1Y": pd.DateOffset(years=1),
        "5Y": pd.DateOffset(years=5),
    }
    if timeframe not in offsets:
        raise ValueError(f"Unknown chart timeframe: {timeframe!r}")
    return (pd.Timestamp(today) - offsets[timeframe]).date()


def chart_fetch_from(display_from: date) -> date:
    """First date to request so the slow SMA has history at the display boundary."""
    return display_from - timedelta(days=CHART_WARMUP_DAYS)
