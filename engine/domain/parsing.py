"""Pure functions for position input parsing and validation."""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

MAX_SHARES = 1_000_000_000
MAX_AVG_PRICE = 1_000_000
MAX_NAME_LENGTH = 100

Number = Union[str, int, float]


class PositionValidationError(ValueError):
    """User-entered position data outside accepted ranges."""


@dataclass
class PositionInput:
    """Validated position fields, ready to be stored."""
    symbol: str
    shares: float
    avg_price: float
    name: Optional[str] = None


def normalize_symbol(symbol: str) -> str:
    """
    Normalize ticker symbol.

    Args:
        symbol: Raw input (may have spaces, leading $, lower case)

    Returns:
        Upper-case symbol without $
    """
    return symbol.strip().upper().replace("$", "")


def is_valid_symbol(symbol: str) -> bool:
    """US equity symbols: 1-5 upper-case letters."""
    return bool(re.fullmatch(r"[A-Z]{1,5}", symbol))


def safe_float(value: Number) -> Optional[float]:
    """
    Safely convert to float, accepting a comma as decimal separator.

    Returns:
        Float value or None if invalid
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return float(str(value).strip().replace(",", "."))
    except (ValueError, AttributeError):
        return None


def validate_shares(value: Number) -> float:
    shares = safe_float(value)
    if shares is None or not 0 < shares <= MAX_SHARES:
        raise PositionValidationError(
            "Invalid number of shares. Please enter a positive number."
        )
    return shares


def validate_avg_price(value: Number) -> float:
    price = safe_float(value)
    if price is None or not 0 < price <= MAX_AVG_PRICE:
        raise PositionValidationError("Invalid price. Please enter a positive number.")
    return price


def sanitize_name(name: Optional[str], symbol: str) -> str:
    """Trim and cap the display name; empty names fall back to the symbol."""
    cleaned = (name or "").strip() or symbol
    return cleaned[:MAX_NAME_LENGTH]


def parse_position_input(
    symbol: str,
    shares: Number,
    avg_price: Number,
    name: Optional[str] = None,
) -> PositionInput:
    """
    Validate raw add-position input.

    Raises:
        PositionValidationError: symbol, shares or price out of range
    """
    normalized = normalize_symbol(symbol or "")
    if not is_valid_symbol(normalized):
        raise PositionValidationError(
            "Invalid stock symbol. Please use 1-5 uppercase letters (e.g., AAPL, MSFT)."
        )

    return PositionInput(
        symbol=normalized,
        shares=validate_shares(shares),
        avg_price=validate_avg_price(avg_price),
        name=sanitize_name(name, normalized) if name else None,
    )


def parse_portfolio_text(text: str) -> List[PositionInput]:
    """
    Parse a seed portfolio.

    Format: "SYMBOL SHARES AVG_PRICE", one entry per line or separated by ';'.
    Example:
        AAPL 50 150
        MSFT 30 380.5

    Invalid entries are logged and skipped.
    """
    entries: List[PositionInput] = []

    for raw in re.split(r"[;\n]+", text or ""):
        parts = raw.split()
        if not parts:
            continue
        if len(parts) < 3:
            logger.warning("Skipping incomplete portfolio entry: %r", raw.strip())
            continue
        try:
            entries.append(parse_position_input(parts[0], parts[1], parts[2]))
        except PositionValidationError as exc:
            logger.warning("Skipping portfolio entry %r: %s", raw.strip(), exc)

    logger.debug("Parsed %d positions from portfolio text", len(entries))
    return entries
