"""
Conversion of normalized model outputs back to price space.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

from quant_forecast_system.core.exceptions import InvalidInputError, NotFittedError
from quant_forecast_system.features.normalization import MinMaxNormalizer


class PricePathMode(str, Enum):
    """How a vector of predicted change ratios becomes prices."""

    # price_k = price_{k-1} * (1 + r_k)
    CUMULATIVE = "cumulative"
    # price_k = last_price * (1 + r_k), matching how labels are anchored
    ANCHORED = "anchored"


class PredictionDenormalizer:
    """Inverts label normalization and projects price paths."""

    def __init__(self, label_normalizer: MinMaxNormalizer):
        if not label_normalizer.is_fitted:
            raise NotFittedError("label normalizer")
        self.label_normalizer = label_normalizer

    def denormalize(self, outputs: np.ndarray) -> np.ndarray:
        """Model outputs (normalized) to price-change ratios."""
        return self.label_normalizer.inverse_transform(outputs)

    @staticmethod
    def to_price_path(
        ratios: np.ndarray,
        last_price: float,
        mode: PricePathMode = PricePathMode.CUMULATIVE,
    ) -> np.ndarray:
        """Project prices from change ratios along the last axis.

        Args:
            ratios: ``(H,)`` or ``(n, H)`` change ratios.
            last_price: Close of the bar the prediction starts from.
            mode: Compounding or anchored projection.
        """
        if not np.isfinite(last_price) or last_price <= 0:
            raise InvalidInputError(f"Last price must be positive, got {last_price}", field_name="last_price")
        ratios = np.asarray(ratios, dtype=np.float64)
        if mode == PricePathMode.CUMULATIVE:
            return last_price * np.cumprod(1.0 + ratios, axis=-1)
        return last_price * (1.0 + ratios)

    def predict_prices(
        self,
        outputs: np.ndarray,
        last_price: float,
        mode: PricePathMode = PricePathMode.CUMULATIVE,
    ) -> np.ndarray:
        return self.to_price_path(self.denormalize(outputs), last_price, mode)
