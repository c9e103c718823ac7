"""
Unit tests for core/data_types.py
"""

import math
from datetime import datetime, timedelta

import polars as pl
import pytest
from pydantic import ValidationError

from quant_forecast_system.core.data_types import (
    Bar,
    BarInterval,
    bars_to_frame,
    validate_bar_sequence,
)
from quant_forecast_system.core.exceptions import InvalidInputError


def _bar(minute: int, close: float = 10.0, symbol: str = "abc", **kwargs) -> Bar:
    return Bar(
        symbol=symbol,
        timestamp=datetime(2024, 1, 2, 9, 30) + timedelta(minutes=minute),
        open=close,
        high=close + 1,
        low=close - 1,
        close=close,
        **kwargs,
    )


class TestBarInterval:
    """Tests for BarInterval enum."""

    def test_durations(self):
        assert BarInterval.MINUTE_15.duration == timedelta(minutes=15)
        assert BarInterval.MINUTE_60.duration == timedelta(hours=1)
        assert BarInterval.DAY_1.duration == timedelta(days=1)


class TestBar:
    """Tests for Bar model."""

    def test_symbol_normalized(self):
        """Symbols are upper-cased and stripped."""
        assert _bar(0, symbol=" abc ").symbol == "ABC"

    def test_high_below_low_rejected(self):
        with pytest.raises(ValidationError):
            Bar(
                symbol="ABC",
                timestamp=datetime(2024, 1, 2, 9, 30),
                open=10,
                high=9,
                low=11,
                close=10,
            )

    def test_nan_prices_allowed(self):
        """Missing prices pass through for the cleaner to repair."""
        bar = Bar(
            symbol="ABC",
            timestamp=datetime(2024, 1, 2, 9, 30),
            open=10,
            high=float("nan"),
            low=9,
            close=10,
        )
        assert math.isnan(bar.high)

    def test_immutable(self):
        bar = _bar(0)
        with pytest.raises(ValidationError):
            bar.close = 11.0

    def test_key_and_to_dict(self):
        bar = _bar(0)
        assert bar.key == ("ABC", datetime(2024, 1, 2, 9, 30))
        d = bar.to_dict()
        assert d["timestamp"] == "2024-01-02T09:30:00"
        assert d["interval"] == "15m"


class TestValidateBarSequence:
    """Tests for validate_bar_sequence."""

    def test_empty_rejected(self):
        with pytest.raises(InvalidInputError):
            validate_bar_sequence([])

    def test_unordered_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_bar_sequence([_bar(15), _bar(0)])
        assert exc_info.value.field_name == "timestamp"

    def test_duplicate_timestamp_rejected(self):
        with pytest.raises(InvalidInputError):
            validate_bar_sequence([_bar(0), _bar(0)])

    def test_mixed_symbols_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_bar_sequence([_bar(0, symbol="A"), _bar(15, symbol="B")])
        assert exc_info.value.field_name == "symbol"

    def test_valid_sequence(self):
        validate_bar_sequence([_bar(0), _bar(15), _bar(30)])


class TestBarsToFrame:
    """Tests for bars_to_frame."""

    def test_columns_and_dtypes(self):
        df = bars_to_frame([_bar(0), _bar(15)])
        assert df.height == 2
        assert df.schema["close"] == pl.Float64
        assert df.schema["is_suspended"] == pl.Boolean

    def test_prev_close_fallback(self):
        """Missing prev_close uses the preceding close, or the own close on row 0."""
        bars = [_bar(0, close=10.0), _bar(15, close=12.0), _bar(30, close=13.0, prev_close=11.5)]
        assert bars_to_frame(bars)["prev_close"].to_list() == [10.0, 10.0, 11.5]
