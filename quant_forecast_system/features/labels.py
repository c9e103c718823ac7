"""
Forward-looking label construction.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from quant_forecast_system.core.data_types import Bar
from quant_forecast_system.core.exceptions import InsufficientDataError, InvalidInputError

logger = logging.getLogger(__name__)


class LabelBuilder:
    """Builds the (n - H, H) matrix of forward price-change ratios.

    Cell ``(i, j)`` is ``(close[i + j + 1] - close[i]) / close[i]``: the
    change from the anchor close at row ``i`` to the close ``j + 1`` bars
    later.
    """

    def __init__(self, horizon: int):
        if horizon < 1:
            raise InvalidInputError("Label horizon must be at least 1", field_name="horizon")
        self.horizon = horizon

    def build(self, bars: Sequence[Bar]) -> np.ndarray:
        """Build labels from bars.

        Raises:
            InsufficientDataError: If there are not more bars than the horizon.
        """
        return self.build_from_close(np.array([bar.close for bar in bars], dtype=np.float64))

    def build_from_close(self, close: np.ndarray) -> np.ndarray:
        """Build labels from a close-price series."""
        close = np.asarray(close, dtype=np.float64)
        n_rows = len(close) - self.horizon
        if n_rows <= 0:
            raise InsufficientDataError(
                f"Need more than {self.horizon} bars to build labels, got {len(close)}",
                required=self.horizon + 1,
                available=len(close),
            )

        anchor = close[:n_rows, None]
        offsets = np.arange(1, self.horizon + 1)
        future = close[np.arange(n_rows)[:, None] + offsets]
        with np.errstate(divide="ignore", invalid="ignore"):
            labels = (future - anchor) / anchor

        logger.debug(f"Built {n_rows}x{self.horizon} label matrix")
        return labels

    def anchor_closes(self, close: np.ndarray) -> np.ndarray:
        """Close price each label row is measured against."""
        close = np.asarray(close, dtype=np.float64)
        return close[: max(len(close) - self.horizon, 0)].copy()
