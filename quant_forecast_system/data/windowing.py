"""
Sliding-window dataset construction and batch iteration.

This is the single place where array rank and dtype are normalized:
feature windows are always float64 ``(n, T, F)`` and label windows are
always float64 ``(m, H)``. Downstream components rely on that layout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from quant_forecast_system.core.exceptions import InvalidInputError, ShapeMismatchError

logger = logging.getLogger(__name__)


@dataclass
class WindowedDataset:
    """Feature windows and the label rows anchored at their last timestep.

    Attributes:
        feature_windows: ``(n, T, F)``; window ``i`` covers feature rows
            ``[i, i + T)``.
        label_windows: ``(m, H)``; row ``i`` is label row ``i + T - 1``.
            ``m <= n`` and may be 0.
    """

    feature_windows: np.ndarray
    label_windows: np.ndarray
    time_steps: int

    @property
    def n_feature_windows(self) -> int:
        return self.feature_windows.shape[0]

    @property
    def n_label_windows(self) -> int:
        return self.label_windows.shape[0]

    @property
    def n_samples(self) -> int:
        """Number of complete (features, labels) pairs."""
        return min(self.n_feature_windows, self.n_label_windows)

    @property
    def n_features(self) -> int:
        return self.feature_windows.shape[2]

    @property
    def horizon(self) -> int:
        return self.label_windows.shape[1]

    @property
    def is_empty(self) -> bool:
        return self.n_samples == 0

    def paired(self) -> tuple[np.ndarray, np.ndarray]:
        """Feature and label windows truncated to a common count."""
        n = self.n_samples
        return self.feature_windows[:n], self.label_windows[:n]

    def latest_window(self) -> np.ndarray:
        """The window ending at the most recent feature row, shape ``(1, T, F)``."""
        if self.n_feature_windows == 0:
            raise InvalidInputError("No feature windows available", field_name="feature_windows")
        return self.feature_windows[-1:]

    def subset(self, indices: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Paired windows at the given sample indices."""
        features, labels = self.paired()
        return features[indices], labels[indices]


class WindowDatasetBuilder:
    """Slices feature and label matrices into aligned fixed-length windows."""

    def __init__(self, time_steps: int):
        if time_steps < 1:
            raise InvalidInputError("Window length must be at least 1", field_name="time_steps")
        self.time_steps = time_steps

    def feature_windows(self, features: np.ndarray) -> np.ndarray:
        """All ``N - T + 1`` windows of a 2D feature matrix (none when ``T > N``)."""
        features = self._as_matrix(features, "features")
        n_rows, n_features = features.shape
        n_windows = n_rows - self.time_steps + 1
        if n_windows <= 0:
            return np.empty((0, self.time_steps, n_features), dtype=np.float64)
        # sliding_window_view puts the window axis last: (n, F, T) -> (n, T, F)
        windows = sliding_window_view(features, self.time_steps, axis=0)
        return np.ascontiguousarray(windows.transpose(0, 2, 1))

    def label_windows(self, labels: np.ndarray, n_feature_rows: int) -> np.ndarray:
        """Label rows anchored at each feature window's last timestep.

        Rows are reconciled to ``min(n_feature_rows, len(labels))`` first, so
        with labels from the label builder (``N - H`` rows) the count is
        ``N - T - H + 1``. A non-positive count yields an empty ``(0, H)``
        array.
        """
        labels = self._as_matrix(labels, "labels")
        usable_rows = min(n_feature_rows, labels.shape[0])
        n_windows = usable_rows - self.time_steps + 1
        if n_windows <= 0:
            return np.empty((0, labels.shape[1]), dtype=np.float64)
        start = self.time_steps - 1
        return labels[start : start + n_windows].copy()

    def build(self, features: np.ndarray, labels: np.ndarray | None = None) -> WindowedDataset:
        """Window a feature matrix and, when given, its label matrix.

        Raises:
            ShapeMismatchError: If the label matrix is longer than the
                feature matrix; such rows cannot be anchored to any window.
        """
        features = self._as_matrix(features, "features")
        feature_windows = self.feature_windows(features)

        if labels is None:
            label_windows = np.empty((0, 0), dtype=np.float64)
        else:
            labels = self._as_matrix(labels, "labels")
            if labels.shape[0] > features.shape[0]:
                raise ShapeMismatchError(
                    f"Label matrix has {labels.shape[0]} rows, more than {features.shape[0]} feature rows",
                    expected=(features.shape[0], labels.shape[1]),
                    actual=labels.shape,
                )
            label_windows = self.label_windows(labels, features.shape[0])
            if label_windows.shape[0] == 0:
                logger.warning(
                    f"No label windows for {features.shape[0]} rows with window length {self.time_steps}",
                    extra={"extra_data": {"label_rows": labels.shape[0]}},
                )

        logger.debug(
            f"Built {feature_windows.shape[0]} feature windows and {label_windows.shape[0]} label windows"
        )
        return WindowedDataset(
            feature_windows=feature_windows,
            label_windows=label_windows,
            time_steps=self.time_steps,
        )

    @staticmethod
    def _as_matrix(values: np.ndarray, name: str) -> np.ndarray:
        array = np.asarray(values, dtype=np.float64)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2:
            raise InvalidInputError(f"{name} must be 1D or 2D, got {array.ndim}D", field_name=name)
        return array


class BatchIterator:
    """
    Iterates paired windows in fixed-size batches.

    The last batch holds the remainder. With ``shuffle`` the sample order is
    redrawn on every ``reset`` from a generator seeded once at construction,
    so a run is repeatable for a given seed.
    """

    def __init__(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        batch_size: int,
        shuffle: bool = False,
        seed: int | None = None,
    ):
        if batch_size < 1:
            raise InvalidInputError("Batch size must be at least 1", field_name="batch_size")
        if features.shape[0] != labels.shape[0]:
            raise ShapeMismatchError(
                f"{features.shape[0]} feature windows but {labels.shape[0]} label windows",
                expected=(features.shape[0],),
                actual=(labels.shape[0],),
            )
        self.features = features
        self.labels = labels
        self.batch_size = batch_size
        self.shuffle = shuffle
        self._rng = np.random.default_rng(seed)
        self._order = np.arange(features.shape[0])
        self._cursor = 0
        self.reset()

    @property
    def total_examples(self) -> int:
        return self.features.shape[0]

    @property
    def num_batches(self) -> int:
        return -(-self.total_examples // self.batch_size)

    @property
    def cursor(self) -> int:
        return self._cursor

    def reset(self) -> None:
        """Rewind to the first batch (reshuffling when enabled)."""
        self._cursor = 0
        if self.shuffle:
            self._order = self._rng.permutation(self.total_examples)

    def has_next(self) -> bool:
        return self._cursor < self.total_examples

    def next_batch(self) -> tuple[np.ndarray, np.ndarray]:
        if not self.has_next():
            raise InvalidInputError("Batch iterator is exhausted; call reset()", field_name="cursor")
        indices = self._order[self._cursor : self._cursor + self.batch_size]
        self._cursor += len(indices)
        return self.features[indices], self.labels[indices]

    def __iter__(self) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        self.reset()
        while self.has_next():
            yield self.next_batch()

    def __len__(self) -> int:
        return self.num_batches
