"""
Pydantic models and type definitions for the forecasting pipeline.

Defines the immutable bar record consumed by the feature stage and the
helpers that turn a bar sequence into a columnar frame.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Sequence

import polars as pl
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from quant_forecast_system.core.exceptions import InvalidInputError


class BarInterval(str, Enum):
    """Bar granularity enum."""

    MINUTE_1 = "1m"
    MINUTE_5 = "5m"
    MINUTE_15 = "15m"
    MINUTE_30 = "30m"
    MINUTE_60 = "60m"
    DAY_1 = "1d"

    @property
    def duration(self) -> timedelta:
        """Wall-clock length of one bar."""
        if self is BarInterval.DAY_1:
            return timedelta(days=1)
        return timedelta(minutes=int(self.value[:-1]))


class Bar(BaseModel):
    """One trading interval for one instrument.

    Prices are plain floats: the feature stage works in float64 and NaN
    values are allowed through so the cleaner can repair feature cells.
    A non-finite close cannot be repaired and is rejected at labelling.
    """

    symbol: str = Field(..., min_length=1, description="Instrument code")
    timestamp: datetime = Field(..., description="Bar open time")
    open: float = Field(..., description="Open price")
    high: float = Field(..., description="High price")
    low: float = Field(..., description="Low price")
    close: float = Field(..., description="Close price")
    volume: float = Field(default=0.0, description="Traded volume")
    amount: float = Field(default=0.0, description="Traded notional")
    prev_close: float | None = Field(default=None, description="Previous bar close")
    is_suspended: bool = Field(default=False, description="Trading suspended flag")
    interval: BarInterval = Field(default=BarInterval.MINUTE_15, description="Bar granularity")

    model_config = ConfigDict(frozen=True)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Validate and normalize symbol."""
        return v.upper().strip()

    @model_validator(mode="after")
    def validate_high_low(self) -> "Bar":
        """Reject bars whose high is below their low (finite values only)."""
        if math.isfinite(self.high) and math.isfinite(self.low) and self.high < self.low:
            raise ValueError(f"High price ({self.high}) must be >= low price ({self.low})")
        return self

    @property
    def key(self) -> tuple[str, datetime]:
        """Uniqueness key of the bar."""
        return (self.symbol, self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with JSON-serializable types."""
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "amount": self.amount,
            "prev_close": self.prev_close,
            "is_suspended": self.is_suspended,
            "interval": self.interval.value,
        }


def validate_bar_sequence(bars: Sequence[Bar]) -> None:
    """Check that a bar sequence is usable by the feature stage.

    Args:
        bars: Bars for a single instrument.

    Raises:
        InvalidInputError: If the sequence is empty, mixes symbols, or its
            timestamps are not strictly ascending.
    """
    if len(bars) == 0:
        raise InvalidInputError("Bar sequence is empty", field_name="bars")

    symbol = bars[0].symbol
    for i in range(1, len(bars)):
        if bars[i].symbol != symbol:
            raise InvalidInputError(
                f"Bar sequence mixes symbols {symbol} and {bars[i].symbol}",
                field_name="symbol",
                details={"index": i},
            )
        if bars[i].timestamp <= bars[i - 1].timestamp:
            raise InvalidInputError(
                "Bar timestamps must be strictly ascending",
                field_name="timestamp",
                details={"index": i, "timestamp": bars[i].timestamp.isoformat()},
            )


def bars_to_frame(bars: Sequence[Bar]) -> pl.DataFrame:
    """Convert a bar sequence to a polars DataFrame, one column per field.

    ``prev_close`` falls back to the preceding bar's close (or the bar's own
    close for the first row) when the source did not supply it.
    """
    prev_close = []
    for i, bar in enumerate(bars):
        if bar.prev_close is not None:
            prev_close.append(bar.prev_close)
        elif i > 0:
            prev_close.append(bars[i - 1].close)
        else:
            prev_close.append(bar.close)

    return pl.DataFrame(
        {
            "timestamp": [bar.timestamp for bar in bars],
            "open": [bar.open for bar in bars],
            "high": [bar.high for bar in bars],
            "low": [bar.low for bar in bars],
            "close": [bar.close for bar in bars],
            "volume": [bar.volume for bar in bars],
            "amount": [bar.amount for bar in bars],
            "prev_close": prev_close,
            "is_suspended": [bar.is_suspended for bar in bars],
        },
        schema={
            "timestamp": pl.Datetime,
            "open": pl.Float64,
            "high": pl.Float64,
            "low": pl.Float64,
            "close": pl.Float64,
            "volume": pl.Float64,
            "amount": pl.Float64,
            "prev_close": pl.Float64,
            "is_suspended": pl.Boolean,
        },
    )
