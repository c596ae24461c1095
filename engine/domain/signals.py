"""
Per-holding signal computation.

Turns a snapshot plus optional daily bars and financial statements into a
HoldingSignal. Total over well-typed input: missing data degrades to the
fallback signal or to absent optional fields, never to an exception.
"""

import logging
import math
import random
from typing import List, Optional, Sequence

from .metrics import classify_technical, summarize_range
from .models import (
    DailyBar,
    DataStatus,
    FinancialsPeriod,
    Fundamentals,
    HoldingSignal,
    MomentumSignal,
    Position,
    Recommendation,
    Snapshot,
)

logger = logging.getLogger(__name__)

# changePercent cutoffs, evaluated in this order
STRONG_DROP_PCT = -3.0
STRONG_GAIN_PCT = 3.0
PULLBACK_PCT = -1.5
MOMENTUM_PCT = 1.5

# (low, span): rsi_proxy = low + randrange(span)
RSI_STRONG_DROP = (20, 20)
RSI_STRONG_GAIN = (65, 20)
RSI_PULLBACK = (30, 15)
RSI_MOMENTUM = (60, 15)
RSI_NEUTRAL = (30, 40)
RSI_FALLBACK = 50

RSI_OVERSOLD = 30
RSI_OVERBOUGHT = 70

DAY_RANGE_HIGH_PCT = 95
DAY_RANGE_LOW_PCT = 5
HIGH_VOLUME_RATIO = 2.0
LOW_VOLUME_RATIO = 0.3
WEEK52_PROXIMITY_PCT = 5.0

FALLBACK_RANGE_RATIO = 0.02

REASON_STRONG_DROP = "Significant price drop presents buying opportunity"
REASON_STRONG_GAIN = "Strong gains - consider taking profits"
REASON_PULLBACK = "Price pullback - potential accumulation zone"
REASON_MOMENTUM = "Upward momentum - good exit opportunity"
REASON_NEUTRAL = "Market conditions neutral"

FALLBACK_REASONS = {
    DataStatus.NO_DATA: "No data available - stock may not be trading",
    DataStatus.RATE_LIMITED: "Rate limit reached - please wait before refreshing",
    DataStatus.ERROR: "Error fetching data - please refresh",
}

ALERT_NEAR_DAY_HIGH = "📈 Trading near day's high"
ALERT_NEAR_DAY_LOW = "📉 Trading near day's low"
ALERT_HIGH_VOLUME = "🔊 Unusually high volume - significant interest"
ALERT_LOW_VOLUME = "🔇 Low volume - weak conviction"

_rng = random.Random()


def classify_change(change_percent: float, rng: Optional[random.Random] = None):
    """
    Map today's percent change to (recommendation, rsi_proxy, reasoning).

    The rsi_proxy is presentational jitter inside a fixed band per bucket
    and has no influence on the recommendation.
    """
    rng = rng or _rng

    if change_percent < STRONG_DROP_PCT:
        rec, band, reason = Recommendation.BUY, RSI_STRONG_DROP, REASON_STRONG_DROP
    elif change_percent > STRONG_GAIN_PCT:
        rec, band, reason = Recommendation.SELL, RSI_STRONG_GAIN, REASON_STRONG_GAIN
    elif change_percent < PULLBACK_PCT:
        rec, band, reason = Recommendation.BUY, RSI_PULLBACK, REASON_PULLBACK
    elif change_percent > MOMENTUM_PCT:
        rec, band, reason = Recommendation.SELL, RSI_MOMENTUM, REASON_MOMENTUM
    else:
        rec, band, reason = Recommendation.HOLD, RSI_NEUTRAL, REASON_NEUTRAL

    low, span = band
    return rec, low + rng.randrange(span), reason


def momentum_signal(change_percent: float) -> MomentumSignal:
    if change_percent > 0:
        return MomentumSignal.BULLISH
    if change_percent < 0:
        return MomentumSignal.BEARISH
    return MomentumSignal.NEUTRAL


def price_in_day_range(price: float, day_high: float, day_low: float) -> float:
    """Position of price within today's range in percent; 50 for an empty or non-finite range."""
    day_range = day_high - day_low
    if not day_range > 0:
        return 50.0
    pct = (price - day_low) / day_range * 100
    return pct if math.isfinite(pct) else 50.0


def _finite(value: float, default: float = 0.0) -> float:
    return value if math.isfinite(value) else default


def _rounded(value: Optional[float], digits: int = 2) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return round(value, digits)


def build_alerts(
    rsi_proxy: int,
    range_pct: float,
    volume: float,
    avg_volume: float,
    price: float,
    week52_high: float,
    week52_low: float,
) -> List[str]:
    """Assemble alerts in display order, appending only those that fire."""
    alerts: List[str] = []

    if rsi_proxy < RSI_OVERSOLD:
        alerts.append(f"⚠️ Oversold (RSI: {rsi_proxy}) - potential reversal")
    elif rsi_proxy > RSI_OVERBOUGHT:
        alerts.append(f"⚠️ Overbought (RSI: {rsi_proxy}) - possible pullback")

    if range_pct > DAY_RANGE_HIGH_PCT:
        alerts.append(ALERT_NEAR_DAY_HIGH)
    elif range_pct < DAY_RANGE_LOW_PCT:
        alerts.append(ALERT_NEAR_DAY_LOW)

    volume_ratio = volume / avg_volume if avg_volume > 0 else 1.0
    if volume_ratio > HIGH_VOLUME_RATIO:
        alerts.append(ALERT_HIGH_VOLUME)
    elif volume_ratio < LOW_VOLUME_RATIO and volume > 0:
        alerts.append(ALERT_LOW_VOLUME)

    if week52_high > 0:
        distance_to_high = (week52_high - price) / week52_high * 100
        if distance_to_high <= WEEK52_PROXIMITY_PCT:
            alerts.append(f"🔥 Near 52-week high (${week52_high:,.2f})")
    if week52_low > 0:
        distance_to_low = (price - week52_low) / week52_low * 100
        if distance_to_low <= WEEK52_PROXIMITY_PCT:
            alerts.append(f"❄️ Near 52-week low (${week52_low:,.2f})")

    return alerts


def _growth(current: float, previous: Optional[float]) -> Optional[float]:
    if not previous:
        return None
    return _rounded((current - previous) / previous * 100, 1)


def compute_fundamentals(financials: Sequence[FinancialsPeriod]) -> Optional[Fundamentals]:
    """
    Derive margins and revenue growth from statements ordered most recent first.

    QoQ compares period 0 with period 1, YoY period 0 with period 4. A ratio
    is left as None when its period is missing or the denominator is zero.
    """
    if not financials:
        return None

    latest = financials[0]
    fundamentals = Fundamentals()
    revenue = latest.revenue
    if not revenue or not math.isfinite(revenue):
        return fundamentals

    fundamentals.revenue = revenue
    if latest.gross_profit is not None:
        fundamentals.gross_margin = _rounded(latest.gross_profit / revenue * 100, 1)
    if latest.operating_income is not None:
        fundamentals.operating_margin = _rounded(latest.operating_income / revenue * 100, 1)
    if len(financials) >= 2:
        fundamentals.revenue_growth_qoq = _growth(revenue, financials[1].revenue)
    if len(financials) >= 5:
        fundamentals.revenue_growth_yoy = _growth(revenue, financials[4].revenue)

    return fundamentals


def fallback_signal(position: Position, status: DataStatus = DataStatus.NO_DATA) -> HoldingSignal:
    """Signal used when no snapshot was obtainable for the position this cycle."""
    if status == DataStatus.LIVE:
        status = DataStatus.NO_DATA
    price = position.avg_price
    return HoldingSignal(
        symbol=position.symbol,
        current_price=price,
        change=0.0,
        change_percent=0.0,
        day_high=price * (1 + FALLBACK_RANGE_RATIO),
        day_low=price * (1 - FALLBACK_RANGE_RATIO),
        volume=0,
        recommendation=Recommendation.HOLD,
        reasoning=FALLBACK_REASONS[status],
        rsi_proxy=RSI_FALLBACK,
        trend=MomentumSignal.NEUTRAL,
        price_in_day_range_percent=50,
        data_status=status,
    )


def compute_signal(
    position: Position,
    snapshot: Optional[Snapshot] = None,
    bars: Optional[Sequence[DailyBar]] = None,
    financials: Optional[Sequence[FinancialsPeriod]] = None,
    *,
    status: DataStatus = DataStatus.NO_DATA,
    rng: Optional[random.Random] = None,
) -> HoldingSignal:
    """
    Compute the holding signal for one position.

    Args:
        position: The user's position
        snapshot: Today's quote, or None when the provider had nothing
        bars: Up to a year of daily bars, ascending
        financials: Income statements, most recent first
        status: Why the snapshot is missing (ignored when it is present)
        rng: Random source for the RSI-proxy jitter

    Returns:
        HoldingSignal (fallback variant when snapshot is None)
    """
    if snapshot is None:
        logger.debug("No snapshot for %s (%s), using fallback", position.symbol, status.value)
        return fallback_signal(position, status)

    price = snapshot.current_price
    change_percent = snapshot.change_percent

    summary = summarize_range(bars) if bars else None
    if summary is not None:
        week52_high, week52_low, avg_volume = summary
    else:
        week52_high, week52_low, avg_volume = (
            snapshot.day_high, snapshot.day_low, int(round(_finite(snapshot.volume))),
        )

    recommendation, rsi_proxy, reasoning = classify_change(change_percent, rng)
    range_pct = price_in_day_range(price, snapshot.day_high, snapshot.day_low)

    alerts = build_alerts(
        rsi_proxy=rsi_proxy,
        range_pct=range_pct,
        volume=snapshot.volume,
        avg_volume=avg_volume,
        price=price,
        week52_high=week52_high,
        week52_low=week52_low,
    )

    return HoldingSignal(
        symbol=position.symbol,
        current_price=round(_finite(price), 2),
        change=round(_finite(snapshot.change), 2),
        change_percent=round(_finite(change_percent), 2),
        day_high=round(_finite(snapshot.day_high), 2),
        day_low=round(_finite(snapshot.day_low), 2),
        volume=int(_finite(snapshot.volume)),
        week52_high=_rounded(week52_high),
        week52_low=_rounded(week52_low),
        avg_volume=avg_volume,
        recommendation=recommendation,
        reasoning=reasoning,
        alerts=alerts,
        rsi_proxy=rsi_proxy,
        trend=momentum_signal(change_percent),
        price_in_day_range_percent=int(min(100, max(0, round(range_pct)))),
        fundamentals=compute_fundamentals(financials) if financials else None,
        technical=classify_technical(bars, price) if bars else None,
        data_status=DataStatus.LIVE,
    )
