"""
Base feature extraction.

Turns an ordered bar sequence into the per-timestep feature matrix that the
indicator augmenter extends. All columns are computed with polars
expressions on the frame produced by ``bars_to_frame``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import polars as pl

from quant_forecast_system.core.data_types import Bar, bars_to_frame, validate_bar_sequence
from quant_forecast_system.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


BASE_FEATURE_NAMES: list[str] = [
    "open",
    "high",
    "low",
    "close",
    "log_volume",
    "amount",
    "close_change_ratio",
    "volume_change_ratio",
    "range_ratio",
    "prev_close_ratio",
    "average_price",
    "is_suspended",
]


@dataclass
class FeatureMatrix:
    """2D float64 feature array with one named column per feature slot."""

    values: np.ndarray
    names: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.values = np.asarray(self.values, dtype=np.float64)
        if self.values.ndim != 2:
            raise InvalidInputError(
                f"Feature matrix must be 2D, got {self.values.ndim}D",
                field_name="values",
            )
        if not self.names:
            self.names = [f"f{i}" for i in range(self.values.shape[1])]
        if len(self.names) != self.values.shape[1]:
            raise InvalidInputError(
                f"{len(self.names)} names for {self.values.shape[1]} columns",
                field_name="names",
            )

    @property
    def n_rows(self) -> int:
        return self.values.shape[0]

    @property
    def n_columns(self) -> int:
        return self.values.shape[1]

    def column(self, name: str) -> np.ndarray:
        """Return one column by name."""
        return self.values[:, self.names.index(name)]

    def with_values(self, values: np.ndarray) -> "FeatureMatrix":
        """Same column names over a new array of the same width."""
        return FeatureMatrix(values=values, names=list(self.names))


class BasicFeatureExtractor:
    """Computes the fixed base column set from raw bars.

    Columns: open, high, low, close, log1p(volume), amount, close-over-close
    change, volume change (denominator shifted by one), (high - low) / open,
    change against the bar's previous close, average trade price (amount /
    volume, close when volume is 0) and a 0/1 suspension flag. Ratios that
    need a predecessor row are 0 on the first row; the previous-close ratio
    reads the bar's own field and is defined everywhere.
    """

    feature_names: list[str] = BASE_FEATURE_NAMES

    def extract(self, bars: Sequence[Bar]) -> FeatureMatrix:
        """Build the base feature matrix.

        Args:
            bars: Time-ordered bars for one instrument.

        Returns:
            FeatureMatrix with ``len(bars)`` rows and 12 columns.

        Raises:
            InvalidInputError: If ``bars`` is empty or out of order.
        """
        validate_bar_sequence(bars)
        return self.extract_frame(bars_to_frame(bars))

    def extract_frame(self, df: pl.DataFrame) -> FeatureMatrix:
        """Build the base feature matrix from a bar frame."""
        if df.height == 0:
            raise InvalidInputError("Bar frame is empty", field_name="bars")

        close = pl.col("close")
        volume = pl.col("volume")
        prev_bar_close = close.shift(1)
        prev_bar_volume = volume.shift(1)

        features = df.select(
            pl.col("open"),
            pl.col("high"),
            pl.col("low"),
            close,
            volume.log1p().alias("log_volume"),
            pl.col("amount"),
            ((close - prev_bar_close) / prev_bar_close).fill_null(0.0).alias("close_change_ratio"),
            ((volume - prev_bar_volume) / (prev_bar_volume + 1.0)).fill_null(0.0).alias("volume_change_ratio"),
            ((pl.col("high") - pl.col("low")) / pl.col("open")).alias("range_ratio"),
            ((close - pl.col("prev_close")) / pl.col("prev_close")).alias("prev_close_ratio"),
            pl.when(volume > 0)
            .then(pl.col("amount") / volume)
            .otherwise(close)
            .alias("average_price"),
            pl.col("is_suspended").cast(pl.Float64),
        )

        logger.debug(f"Extracted {features.width} base features for {features.height} bars")
        return FeatureMatrix(values=features.to_numpy().astype(np.float64), names=list(features.columns))
