"""
Unit tests for features/cleaning.py
"""

import numpy as np
import pytest

from quant_forecast_system.core.exceptions import InvalidInputError
from quant_forecast_system.features.cleaning import OutlierCleaner


class TestOutlierCleaner:
    """Tests for OutlierCleaner."""

    def test_non_finite_replaced_by_column_mean(self):
        matrix = np.array([[1.0, np.nan], [3.0, 4.0], [np.inf, 6.0]])
        cleaned = OutlierCleaner().clean(matrix)
        assert cleaned[2, 0] == pytest.approx(2.0)
        assert cleaned[0, 1] == pytest.approx(5.0)
        assert np.all(np.isfinite(cleaned))

    def test_outlier_clipped_to_threshold(self):
        column = np.zeros(21)
        column[-1] = 1000.0
        mean, std = column.mean(), column.std(ddof=1)
        cleaned = OutlierCleaner(threshold=3.0).clean(column.reshape(-1, 1))
        assert cleaned[-1, 0] == pytest.approx(mean + 3.0 * std)
        np.testing.assert_array_equal(cleaned[:-1, 0], 0.0)

    def test_negative_outlier_clipped_below(self):
        column = np.zeros(21)
        column[0] = -1000.0
        mean, std = column.mean(), column.std(ddof=1)
        cleaned = OutlierCleaner().clean(column.reshape(-1, 1))
        assert cleaned[0, 0] == pytest.approx(mean - 3.0 * std)

    def test_all_nan_column_filled_with_zero(self):
        matrix = np.array([[np.nan, 1.0], [np.nan, 2.0]])
        cleaned = OutlierCleaner().clean(matrix)
        np.testing.assert_array_equal(cleaned[:, 0], 0.0)

    def test_constant_column_unchanged(self):
        matrix = np.full((5, 2), 7.0)
        np.testing.assert_array_equal(OutlierCleaner().clean(matrix), matrix)

    def test_input_not_modified(self):
        matrix = np.array([[1.0], [np.nan], [3.0]])
        OutlierCleaner().clean(matrix)
        assert np.isnan(matrix[1, 0])

    def test_empty_matrix(self):
        assert OutlierCleaner().clean(np.empty((0, 3))).shape == (0, 3)

    def test_rejects_non_2d(self):
        with pytest.raises(InvalidInputError):
            OutlierCleaner().clean(np.zeros(3))

    def test_rejects_non_positive_threshold(self):
        with pytest.raises(InvalidInputError):
            OutlierCleaner(threshold=0.0)
