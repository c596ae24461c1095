"""Unit tests for position input validation and seed parsing."""

import pytest

from engine.domain.models import Position
from engine.domain.parsing import (
    PositionValidationError,
    is_valid_symbol,
    normalize_symbol,
    parse_portfolio_text,
    parse_position_input,
    safe_float,
    sanitize_name,
)


def test_normalize_symbol():
    assert normalize_symbol(" $aapl ") == "AAPL"


@pytest.mark.parametrize("symbol", ["A", "AAPL", "GOOGL"])
def test_valid_symbols(symbol):
    assert is_valid_symbol(symbol)


@pytest.mark.parametrize("symbol", ["", "TOOLONG", "BRK.B", "AB1", "aapl"])
def test_invalid_symbols(symbol):
    assert not is_valid_symbol(symbol)


def test_safe_float_accepts_comma_decimal():
    assert safe_float("12,5") == 12.5
    assert safe_float(3) == 3.0
    assert safe_float("abc") is None


def test_parse_position_input_valid():
    entry = parse_position_input("msft", "30", "380.5", "  Microsoft  ")
    assert entry.symbol == "MSFT"
    assert entry.shares == 30.0
    assert entry.avg_price == 380.5
    assert entry.name == "Microsoft"


def test_parse_position_input_without_name():
    assert parse_position_input("AAPL", 1, 1).name is None


@pytest.mark.parametrize(
    "symbol,shares,price",
    [
        ("AAPL1", 1, 1),
        ("AAPL", 0, 100),
        ("AAPL", -5, 100),
        ("AAPL", 1_000_000_001, 100),
        ("AAPL", "ten", 100),
        ("AAPL", 10, 0),
        ("AAPL", 10, 1_000_001),
    ],
)
def test_parse_position_input_rejects(symbol, shares, price):
    with pytest.raises(PositionValidationError):
        parse_position_input(symbol, shares, price)


def test_validation_error_is_value_error():
    assert issubclass(PositionValidationError, ValueError)


def test_sanitize_name():
    assert sanitize_name("", "AAPL") == "AAPL"
    assert sanitize_name(None, "AAPL") == "AAPL"
    assert len(sanitize_name("x" * 250, "AAPL")) == 100


def test_parse_portfolio_text_skips_bad_entries():
    entries = parse_portfolio_text("AAPL 50 150; MSFT 30 380,5\nBAD\nTSLA -1 200\n")
    assert [(e.symbol, e.shares, e.avg_price) for e in entries] == [
        ("AAPL", 50.0, 150.0),
        ("MSFT", 30.0, 380.5),
    ]


def test_position_rejects_non_positive_values():
    with pytest.raises(ValueError):
        Position(id="1", symbol="AAPL", shares=0, avg_price=10)
    with pytest.raises(ValueError):
        Position(id="1", symbol="AAPL", shares=1, avg_price=-1)


def test_position_name_defaults_to_symbol():
    assert Position(id="1", symbol="AAPL", shares=1, avg_price=1).name == "AAPL"
