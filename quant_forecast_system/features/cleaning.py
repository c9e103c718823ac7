"""
Missing-value repair and outlier clipping for feature matrices.
"""

from __future__ import annotations

import logging

import numpy as np

from quant_forecast_system.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class OutlierCleaner:
    """
    Column-wise NaN/Inf repair and winsorization.

    For each column the mean and sample standard deviation are taken over its
    finite cells. Non-finite cells become the mean; finite cells further than
    ``threshold`` deviations from the mean are clipped to that distance on
    the same side. A column without any finite cell is filled with 0.

    The input array is never modified.
    """

    def __init__(self, threshold: float = 3.0):
        if threshold <= 0:
            raise InvalidInputError("Outlier threshold must be positive", field_name="threshold")
        self.threshold = threshold

    def clean(self, matrix: np.ndarray) -> np.ndarray:
        """Return a repaired copy of ``matrix``.

        Args:
            matrix: 2D numeric array (rows = timesteps).

        Returns:
            New float64 array of the same shape.
        """
        values = np.array(matrix, dtype=np.float64, copy=True)
        if values.ndim != 2:
            raise InvalidInputError(f"Expected a 2D matrix, got {values.ndim}D", field_name="matrix")
        if values.size == 0:
            return values

        finite = np.isfinite(values)
        repaired = int((~finite).sum())
        clipped = 0

        for col in range(values.shape[1]):
            column = values[:, col]
            mask = finite[:, col]
            n_finite = int(mask.sum())
            if n_finite == 0:
                column[:] = 0.0
                continue

            mean = column[mask].mean()
            std = column[mask].std(ddof=1) if n_finite > 1 else 0.0
            column[~mask] = mean

            limit = self.threshold * std
            deviation = column - mean
            outliers = np.abs(deviation) > limit
            if outliers.any():
                clipped += int(outliers.sum())
                column[outliers] = mean + np.sign(deviation[outliers]) * limit

        if repaired or clipped:
            logger.debug(
                f"Cleaned feature matrix: {repaired} non-finite cells replaced, {clipped} outliers clipped",
                extra={"extra_data": {"shape": list(values.shape)}},
            )
        return values
