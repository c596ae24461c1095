"""Portfolio-level aggregation over positions and their holding signals."""

import logging
from typing import Dict, List, Sequence

from .models import Holding, HoldingSignal, PortfolioTotals, Position

logger = logging.getLogger(__name__)


def build_holdings(
    positions: Sequence[Position],
    signals: Dict[str, HoldingSignal],
) -> List[Holding]:
    """
    Pair positions with their signals, preserving position order.

    Positions without a signal (before the first refresh completes) are skipped.
    """
    holdings = []
    for position in positions:
        signal = signals.get(position.symbol)
        if signal is None:
            logger.debug("No signal yet for %s, skipping", position.symbol)
            continue
        holdings.append(Holding(position=position, signal=signal))
    return holdings


def aggregate(
    positions: Sequence[Position],
    signals: Dict[str, HoldingSignal],
) -> PortfolioTotals:
    """
    Fold positions and live signals into portfolio totals.

    Args:
        positions: Current position list
        signals: Map of symbol -> HoldingSignal for this cycle

    Returns:
        PortfolioTotals. total_gain_loss is total_value - total_cost exactly.
        pl_daily_change_percent divides the day's dollar change by the
        cumulative gain/loss (not by cost), matching the dashboard's figures.
    """
    total_value = 0.0
    total_cost = 0.0
    total_daily_change = 0.0

    for holding in build_holdings(positions, signals):
        total_value += holding.current_value
        total_cost += holding.cost_basis
        total_daily_change += holding.daily_change

    total_gain_loss = total_value - total_cost
    total_gain_loss_percent = total_gain_loss / total_cost * 100 if total_cost > 0 else 0.0
    value_change_percent = total_daily_change / total_value * 100 if total_value else 0.0
    pl_change_percent = total_daily_change / total_gain_loss * 100 if total_gain_loss else 0.0

    return PortfolioTotals(
        total_value=total_value,
        total_cost=total_cost,
        total_gain_loss=total_gain_loss,
        total_gain_loss_percent=total_gain_loss_percent,
        total_value_daily_change=total_daily_change,
        total_value_daily_change_percent=value_change_percent,
        cost_basis_daily_change=0.0,
        cost_basis_daily_change_percent=0.0,
        pl_daily_change=total_daily_change,
        pl_daily_change_percent=pl_change_percent,
        return_daily_change_percent=pl_change_percent,
    )
