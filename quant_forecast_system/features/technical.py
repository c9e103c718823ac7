"""
Technical indicators module.

Implements the causal rolling indicators appended to the base feature
matrix:
- Trend (simple and exponential moving averages, VWAP)
- Momentum (RSI, rate of change, price acceleration)
- Volatility (Bollinger position, high-low range)

Every indicator at index ``t`` reads only bars at or before ``t``. Warm-up
rows use an explicit fallback value rather than NaN.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np
import polars as pl
from numpy.lib.stride_tricks import sliding_window_view

from quant_forecast_system.core.data_types import Bar, bars_to_frame
from quant_forecast_system.core.exceptions import InvalidInputError, ShapeMismatchError
from quant_forecast_system.features.basic import FeatureMatrix

logger = logging.getLogger(__name__)


class TechnicalIndicator(ABC):
    """Abstract base class for technical indicators."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        """Compute the indicator and return named arrays."""
        pass

    def validate_input(self, df: pl.DataFrame, required_columns: list[str]) -> None:
        """Validate that required columns exist."""
        missing = [col for col in required_columns if col not in df.columns]
        if missing:
            raise InvalidInputError(f"Missing required columns: {missing}", field_name=self.name)

    @staticmethod
    def _column(df: pl.DataFrame, name: str) -> np.ndarray:
        return df[name].to_numpy().astype(np.float64)


# =============================================================================
# TREND INDICATORS
# =============================================================================


class SMA(TechnicalIndicator):
    """Simple moving average; the close itself until a full window exists."""

    def __init__(self, period: int = 5):
        super().__init__("SMA")
        self.period = period

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["close"])
        close = self._column(df, "close")
        result = close.copy()
        if len(close) >= self.period:
            result[self.period - 1 :] = sliding_window_view(close, self.period).mean(axis=1)
        return {f"sma_{self.period}": result}


class EMA(TechnicalIndicator):
    """Exponential moving average seeded with the first close."""

    def __init__(self, period: int = 12):
        super().__init__("EMA")
        self.period = period

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["close"])
        close = self._column(df, "close")
        return {f"ema_{self.period}": self._ema(close, self.period)}

    @staticmethod
    def _ema(arr: np.ndarray, period: int) -> np.ndarray:
        """Compute exponential moving average with alpha = 2 / (period + 1)."""
        alpha = 2.0 / (period + 1)
        result = np.empty(len(arr))
        if len(arr) == 0:
            return result
        result[0] = arr[0]
        for i in range(1, len(arr)):
            result[i] = alpha * arr[i] + (1 - alpha) * result[i - 1]
        return result


class VWAP(TechnicalIndicator):
    """Rolling volume-weighted average price from traded notional."""

    def __init__(self, period: int = 5):
        super().__init__("VWAP")
        self.period = period

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["close", "volume", "amount"])
        close = self._column(df, "close")
        result = close.copy()
        if len(close) >= self.period:
            total_amount = sliding_window_view(self._column(df, "amount"), self.period).sum(axis=1)
            total_volume = sliding_window_view(self._column(df, "volume"), self.period).sum(axis=1)
            tail = result[self.period - 1 :]
            traded = total_volume > 0
            tail[traded] = total_amount[traded] / total_volume[traded]
        return {f"vwap_{self.period}": result}


# =============================================================================
# MOMENTUM INDICATORS
# =============================================================================


class RSI(TechnicalIndicator):
    """
    Relative Strength Index with Wilder smoothing.

    The first average gain/loss is the plain mean of the first ``period``
    close-to-close changes; later values are smoothed as
    ``avg = (prev_avg * (period - 1) + current) / period``. Rows before the
    first full window read 50. A zero average loss sets the
    relative-strength ratio to 100.
    """

    def __init__(self, period: int = 14):
        super().__init__("RSI")
        self.period = period

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["close"])
        close = self._column(df, "close")
        return {f"rsi_{self.period}": self._rsi(close, self.period)}

    @staticmethod
    def _rsi(close: np.ndarray, period: int) -> np.ndarray:
        result = np.full(len(close), 50.0)
        if len(close) <= period:
            return result

        delta = np.diff(close)
        gains = np.where(delta > 0, delta, 0.0)
        losses = np.where(delta < 0, -delta, 0.0)

        avg_gain = gains[:period].mean()
        avg_loss = losses[:period].mean()
        for i in range(period, len(close)):
            if i > period:
                avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
                avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
            rs = avg_gain / avg_loss if avg_loss > 0 else 100.0
            result[i] = 100.0 - 100.0 / (1.0 + rs)
        return result


class Momentum(TechnicalIndicator):
    """Rate of change over ``period`` bars; 0 until ``period`` bars precede."""

    def __init__(self, period: int = 10):
        super().__init__("Momentum")
        self.period = period

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["close"])
        close = self._column(df, "close")
        result = np.zeros(len(close))
        p = self.period
        if len(close) > p:
            with np.errstate(divide="ignore", invalid="ignore"):
                result[p:] = (close[p:] - close[:-p]) / close[:-p]
        return {f"momentum_{p}": result}


class PriceAcceleration(TechnicalIndicator):
    """Second difference of close over three points, scaled by the oldest."""

    def __init__(self):
        super().__init__("PriceAcceleration")

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["close"])
        close = self._column(df, "close")
        result = np.zeros(len(close))
        if len(close) > 2:
            with np.errstate(divide="ignore", invalid="ignore"):
                result[2:] = (close[2:] - 2 * close[1:-1] + close[:-2]) / close[:-2]
        return {"acceleration_3": result}


# =============================================================================
# VOLATILITY INDICATORS
# =============================================================================


class BollingerPosition(TechnicalIndicator):
    """
    Position of the close inside the Bollinger band.

    ``(close - mean) / (2 * std)`` over ``period`` bars using the population
    standard deviation. Warm-up rows and flat windows (zero deviation) read 0.
    """

    def __init__(self, period: int = 20):
        super().__init__("BollingerPosition")
        self.period = period

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["close"])
        close = self._column(df, "close")
        result = np.zeros(len(close))
        if len(close) >= self.period:
            windows = sliding_window_view(close, self.period)
            mean = windows.mean(axis=1)
            std = windows.std(axis=1)
            tail = close[self.period - 1 :]
            spread = std > 0
            position = np.zeros(len(tail))
            position[spread] = (tail[spread] - mean[spread]) / (2.0 * std[spread])
            result[self.period - 1 :] = position
        return {f"bollinger_position_{self.period}": result}


class RangeVolatility(TechnicalIndicator):
    """(highest high - lowest low) / close over ``period`` bars; 0 during warm-up."""

    def __init__(self, period: int = 10):
        super().__init__("RangeVolatility")
        self.period = period

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        self.validate_input(df, ["high", "low", "close"])
        close = self._column(df, "close")
        result = np.zeros(len(close))
        if len(close) >= self.period:
            highest = sliding_window_view(self._column(df, "high"), self.period).max(axis=1)
            lowest = sliding_window_view(self._column(df, "low"), self.period).min(axis=1)
            with np.errstate(divide="ignore", invalid="ignore"):
                result[self.period - 1 :] = (highest - lowest) / close[self.period - 1 :]
        return {f"volatility_{self.period}": result}


# =============================================================================
# AUGMENTER
# =============================================================================


def default_indicators() -> list[TechnicalIndicator]:
    """The eight indicators of the standard pipeline, in column order."""
    return [
        SMA(5),
        EMA(12),
        RSI(14),
        BollingerPosition(20),
        Momentum(10),
        RangeVolatility(10),
        VWAP(5),
        PriceAcceleration(),
    ]


INDICATOR_FEATURE_NAMES: list[str] = [
    "sma_5",
    "ema_12",
    "rsi_14",
    "bollinger_position_20",
    "momentum_10",
    "volatility_10",
    "vwap_5",
    "acceleration_3",
]


class TechnicalIndicatorAugmenter:
    """Appends indicator columns to a base feature matrix."""

    def __init__(self, indicators: list[TechnicalIndicator] | None = None):
        self.indicators = indicators if indicators is not None else default_indicators()

    def compute(self, df: pl.DataFrame) -> dict[str, np.ndarray]:
        """Run every indicator over a bar frame, keeping insertion order."""
        results: dict[str, np.ndarray] = {}
        for indicator in self.indicators:
            results.update(indicator.compute(df))
        return results

    def augment(self, base: FeatureMatrix, bars: Sequence[Bar] | pl.DataFrame) -> FeatureMatrix:
        """Return a new matrix: base columns followed by indicator columns.

        Raises:
            ShapeMismatchError: If the base matrix and bars differ in length.
        """
        df = bars if isinstance(bars, pl.DataFrame) else bars_to_frame(bars)
        if df.height != base.n_rows:
            raise ShapeMismatchError(
                f"Base features have {base.n_rows} rows but {df.height} bars were given",
                expected=(df.height, base.n_columns),
                actual=(base.n_rows, base.n_columns),
            )

        indicator_values = self.compute(df)
        names = list(base.names) + list(indicator_values)
        if indicator_values:
            values = np.column_stack([base.values, *indicator_values.values()])
        else:
            values = base.values.copy()

        logger.debug(f"Appended {len(indicator_values)} indicator columns to {base.n_rows} rows")
        return FeatureMatrix(values=values, names=names)
