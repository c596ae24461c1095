"""Sorting and filtering of computed holdings. Pure; no refetch or recompute."""

from typing import List, Sequence

from .models import Holding

SORT_ALPHABETICAL = "alphabetical"
SORT_POSITION_VALUE = "position-value"
SORT_PL = "pl"
SORT_KEYS = (SORT_ALPHABETICAL, SORT_POSITION_VALUE, SORT_PL)

FILTER_ALL = "all"
FILTER_VALUES = (FILTER_ALL, "BUY", "SELL", "HOLD")


def sort_holdings(holdings: Sequence[Holding], key: str = SORT_ALPHABETICAL) -> List[Holding]:
    """
    Order holdings by symbol (ascending), position value or P/L (descending).

    Ties keep their input order.
    """
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {key!r}")
    if key == SORT_ALPHABETICAL:
        return sorted(holdings, key=lambda h: h.symbol)
    if key == SORT_POSITION_VALUE:
        return sorted(holdings, key=lambda h: h.current_value, reverse=True)
    return sorted(holdings, key=lambda h: h.gain_loss, reverse=True)


def filter_holdings(holdings: Sequence[Holding], recommendation: str = FILTER_ALL) -> List[Holding]:
    """Keep holdings whose recommendation matches, or all of them for 'all'."""
    if recommendation not in FILTER_VALUES:
        raise ValueError(f"Unknown recommendation filter: {recommendation!r}")
    if recommendation == FILTER_ALL:
        return list(holdings)
    return [h for h in holdings if h.signal.recommendation.value == recommendation]


def sorted_and_filtered(
    holdings: Sequence[Holding],
    sort_key: str = SORT_ALPHABETICAL,
    recommendation: str = FILTER_ALL,
) -> List[Holding]:
    return sort_holdings(filter_holdings(holdings, recommendation), sort_key)
