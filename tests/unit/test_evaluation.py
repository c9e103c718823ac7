"""
Unit tests for models/evaluation.py
"""

import numpy as np
import pytest

from quant_forecast_system.core.exceptions import ShapeMismatchError
from quant_forecast_system.models.evaluation import (
    RegressionMetrics,
    compute_metrics,
    directional_accuracy,
    mae,
    mape,
    mse,
    r2,
    rmse,
)


class TestPointMetrics:
    """Tests for MSE, MAE, RMSE, MAPE and R2."""

    def test_known_values(self):
        predictions = np.array([1.0, 2.0, 3.0])
        actuals = np.array([1.0, 2.0, 5.0])
        assert mse(predictions, actuals) == pytest.approx(4.0 / 3.0)
        assert mae(predictions, actuals) == pytest.approx(2.0 / 3.0)
        assert rmse(predictions, actuals) == pytest.approx(np.sqrt(4.0 / 3.0))
        assert mape(predictions, actuals) == pytest.approx(40.0 / 3.0)

    def test_perfect_r2(self):
        actuals = np.array([[1.0, 2.0], [3.0, 4.0]])
        assert r2(actuals, actuals) == pytest.approx(1.0)

    def test_guards_against_zero_denominators(self):
        """Zero actuals and constant actuals never raise."""
        zeros = np.zeros(3)
        assert np.isfinite(mape(np.ones(3), zeros))
        assert np.isfinite(r2(np.ones(3), zeros))

    def test_shape_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            mse(np.zeros(3), np.zeros(4))

    def test_empty_input(self):
        empty = np.empty((0, 3))
        assert mse(empty, empty) == 0.0
        assert r2(empty, empty) == 0.0


class TestDirectionalAccuracy:
    """Tests for directional_accuracy."""

    def test_same_direction(self):
        assert directional_accuracy(np.array([1.0, 2.0, 3.0]), np.array([10.0, 11.0, 15.0])) == 1.0

    def test_opposite_direction(self):
        assert directional_accuracy(np.array([3.0, 2.0, 1.0]), np.array([1.0, 2.0, 3.0])) == 0.0

    def test_flat_counts_as_up(self):
        assert directional_accuracy(np.array([1.0, 1.0]), np.array([1.0, 2.0])) == 1.0

    def test_two_dimensional_pools_columns(self):
        predictions = np.array([[1.0, 2.0], [2.0, 1.0]])
        actuals = np.array([[1.0, 1.0], [2.0, 2.0]])
        assert directional_accuracy(predictions, actuals) == 0.5

    def test_single_point(self):
        assert directional_accuracy(np.array([1.0]), np.array([1.0])) == 0.0


class TestComputeMetrics:
    """Tests for compute_metrics and RegressionMetrics."""

    def test_bundle(self):
        predictions = np.array([[0.1, 0.2], [0.3, 0.4]])
        metrics = compute_metrics(predictions, predictions + 0.1)
        assert isinstance(metrics, RegressionMetrics)
        assert metrics.mse == pytest.approx(0.01)
        assert metrics.rmse == pytest.approx(0.1)
        assert metrics.n_samples == 2
        assert set(metrics.to_dict()) == {"mse", "mae", "rmse", "mape", "r2", "directional_accuracy", "n_samples"}

    def test_summary_lines(self):
        lines = compute_metrics(np.ones(3), np.ones(3)).summary_lines()
        assert lines[0] == "MSE: 0.000000"
        assert lines[-1] == "Directional accuracy: 100.00%"
