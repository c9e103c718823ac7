"""
Regression quality metrics for multi-step forecasts.

MSE and MAE come from scikit-learn; MAPE and R² carry an epsilon guard so
all-equal or zero actuals never raise. Directional accuracy compares the
sign of consecutive first differences, counting zero as non-negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

from quant_forecast_system.core.exceptions import ShapeMismatchError

EPSILON = 1e-10


def _pair(predictions: np.ndarray, actuals: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    predictions = np.asarray(predictions, dtype=np.float64)
    actuals = np.asarray(actuals, dtype=np.float64)
    if predictions.shape != actuals.shape:
        raise ShapeMismatchError(
            "Predictions and actuals must have the same shape",
            expected=actuals.shape,
            actual=predictions.shape,
        )
    return predictions, actuals


def mse(predictions: np.ndarray, actuals: np.ndarray) -> float:
    predictions, actuals = _pair(predictions, actuals)
    if predictions.size == 0:
        return 0.0
    return float(mean_squared_error(actuals.reshape(-1), predictions.reshape(-1)))


def mae(predictions: np.ndarray, actuals: np.ndarray) -> float:
    predictions, actuals = _pair(predictions, actuals)
    if predictions.size == 0:
        return 0.0
    return float(mean_absolute_error(actuals.reshape(-1), predictions.reshape(-1)))


def rmse(predictions: np.ndarray, actuals: np.ndarray) -> float:
    return float(np.sqrt(mse(predictions, actuals)))


def mape(predictions: np.ndarray, actuals: np.ndarray) -> float:
    """Mean absolute percentage error, in percent."""
    predictions, actuals = _pair(predictions, actuals)
    if predictions.size == 0:
        return 0.0
    return float(np.mean(np.abs(predictions - actuals) / (np.abs(actuals) + EPSILON)) * 100.0)


def r2(predictions: np.ndarray, actuals: np.ndarray) -> float:
    """1 - SS_res / (SS_tot + eps) over all cells."""
    predictions, actuals = _pair(predictions, actuals)
    if predictions.size == 0:
        return 0.0
    ss_res = np.sum((actuals - predictions) ** 2)
    ss_tot = np.sum((actuals - actuals.mean()) ** 2)
    return float(1.0 - ss_res / (ss_tot + EPSILON))


def directional_accuracy(predictions: np.ndarray, actuals: np.ndarray) -> float:
    """
    Share of consecutive steps whose predicted and actual moves agree.

    A 1D input is one series. For a 2D ``(n, H)`` input each column is a
    series along axis 0 and the pairs of all columns are pooled. Returns 0
    when there are fewer than two points along axis 0.
    """
    predictions, actuals = _pair(predictions, actuals)
    if predictions.ndim == 0 or predictions.shape[0] < 2:
        return 0.0
    predicted_up = np.diff(predictions, axis=0) >= 0
    actual_up = np.diff(actuals, axis=0) >= 0
    return float(np.mean(predicted_up == actual_up))


@dataclass(frozen=True)
class RegressionMetrics:
    """The six summary scalars of a forecast evaluation."""

    mse: float
    mae: float
    rmse: float
    mape: float
    r2: float
    directional_accuracy: float
    n_samples: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mse": self.mse,
            "mae": self.mae,
            "rmse": self.rmse,
            "mape": self.mape,
            "r2": self.r2,
            "directional_accuracy": self.directional_accuracy,
            "n_samples": self.n_samples,
        }

    def summary_lines(self) -> list[str]:
        """Human-readable lines for a caller to print or log."""
        return [
            f"MSE: {self.mse:.6f}",
            f"MAE: {self.mae:.6f}",
            f"RMSE: {self.rmse:.6f}",
            f"MAPE: {self.mape:.2f}%",
            f"R2: {self.r2:.4f}",
            f"Directional accuracy: {self.directional_accuracy:.2%}",
        ]


def compute_metrics(predictions: np.ndarray, actuals: np.ndarray) -> RegressionMetrics:
    """All six metrics for one set of predictions."""
    predictions, actuals = _pair(predictions, actuals)
    error = mse(predictions, actuals)
    return RegressionMetrics(
        mse=error,
        mae=mae(predictions, actuals),
        rmse=float(np.sqrt(error)),
        mape=mape(predictions, actuals),
        r2=r2(predictions, actuals),
        directional_accuracy=directional_accuracy(predictions, actuals),
        n_samples=int(predictions.shape[0]) if predictions.ndim else 0,
    )
