"""
Chronological train/test splitting and sequential k-fold partitioning.

Splits operate on window indices, never on bars, and never reorder
samples:
- Train/test: the first ``floor(ratio * N)`` windows train, the rest test,
  clamped so the test partition is never empty
- K-fold: contiguous validation blocks; the training part of each fold is
  everything before the block followed by everything after it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generator

import numpy as np
from sklearn.model_selection import BaseCrossValidator

from quant_forecast_system.core.exceptions import InsufficientDataError, InvalidInputError

logger = logging.getLogger(__name__)


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class SplitIndices:
    """Chronological train/test partition of ``n_samples`` windows."""

    train_indices: np.ndarray
    test_indices: np.ndarray

    @property
    def train_size(self) -> int:
        return len(self.train_indices)

    @property
    def test_size(self) -> int:
        return len(self.test_indices)

    def to_dict(self) -> dict[str, Any]:
        return {"train_size": self.train_size, "test_size": self.test_size}


@dataclass
class FoldSpec:
    """One k-fold partition."""

    fold_index: int
    validation_start: int
    validation_end: int
    train_indices: np.ndarray

    @property
    def validation_indices(self) -> np.ndarray:
        return np.arange(self.validation_start, self.validation_end)

    @property
    def is_usable(self) -> bool:
        """Both partitions hold at least one sample."""
        return len(self.train_indices) > 0 and self.validation_end > self.validation_start

    def to_dict(self) -> dict[str, Any]:
        return {
            "fold_index": self.fold_index,
            "validation_start": self.validation_start,
            "validation_end": self.validation_end,
            "train_size": len(self.train_indices),
            "validation_size": self.validation_end - self.validation_start,
        }


# =============================================================================
# Train/test split
# =============================================================================


def chronological_split(n_samples: int, train_ratio: float) -> SplitIndices:
    """
    Split ``n_samples`` windows into leading train and trailing test indices.

    ``train_size = floor(train_ratio * n_samples)``, capped at
    ``n_samples - 2`` and raised to 1 when that cap allows it. For two
    samples this leaves an empty train partition, which the caller rejects.

    Raises:
        InvalidInputError: If ``train_ratio`` is outside (0, 1).
        InsufficientDataError: If ``n_samples < 2``.
    """
    if not 0.0 < train_ratio < 1.0:
        raise InvalidInputError(f"Train ratio must be in (0, 1), got {train_ratio}", field_name="train_ratio")
    if n_samples < 2:
        raise InsufficientDataError(
            f"Need at least 2 windows to split, got {n_samples}",
            required=2,
            available=n_samples,
        )

    requested = int(np.floor(train_ratio * n_samples))
    train_size = min(requested, n_samples - 2)
    if train_size < 1 and n_samples >= 3:
        train_size = 1
    train_size = max(train_size, 0)

    if train_size != requested:
        logger.debug(f"Train size clamped from {requested} to {train_size} for {n_samples} windows")

    indices = np.arange(n_samples)
    return SplitIndices(train_indices=indices[:train_size], test_indices=indices[train_size:])


# =============================================================================
# K-fold
# =============================================================================


class SequentialKFold(BaseCrossValidator):
    """
    K-fold over contiguous, chronologically ordered blocks.

    Fold size is ``n_samples // k``; the last fold absorbs the remainder.
    The fold count is capped at the sample count (never below 2).

    Example:
        >>> cv = SequentialKFold(n_splits=5)
        >>> for train_idx, val_idx in cv.split(X):
        ...     model.fit(X[train_idx], y[train_idx])
    """

    def __init__(self, n_splits: int = 5):
        """Initialize sequential K-fold.

        Raises:
            InvalidInputError: If n_splits < 2.
        """
        if n_splits < 2:
            raise InvalidInputError(f"n_splits must be >= 2, got {n_splits}", field_name="n_splits")
        self.n_splits = n_splits

    def effective_splits(self, n_samples: int) -> int:
        """Folds actually produced for ``n_samples`` windows."""
        return max(2, min(self.n_splits, n_samples))

    def get_n_splits(
        self,
        X: np.ndarray | None = None,
        y: np.ndarray | None = None,
        groups: np.ndarray | None = None,
    ) -> int:
        """Return number of splits (capped by the sample count when X is given)."""
        if X is None:
            return self.n_splits
        return self.effective_splits(len(X))

    def fold_specs(self, n_samples: int) -> list[FoldSpec]:
        """Describe every fold for ``n_samples`` windows, usable or not.

        Raises:
            InsufficientDataError: If there are no samples.
        """
        if n_samples < 1:
            raise InsufficientDataError("Cannot build folds over zero windows", required=1, available=n_samples)

        k = self.effective_splits(n_samples)
        if k != self.n_splits:
            logger.warning(f"Requested {self.n_splits} folds for {n_samples} windows; using {k}")

        fold_size = n_samples // k
        indices = np.arange(n_samples)
        specs = []
        for fold in range(k):
            start = fold * fold_size
            end = (fold + 1) * fold_size if fold < k - 1 else n_samples
            train = np.concatenate([indices[:start], indices[end:]])
            specs.append(FoldSpec(fold_index=fold, validation_start=start, validation_end=end, train_indices=train))
        return specs

    def split(
        self,
        X: np.ndarray,
        y: np.ndarray | None = None,
        groups: np.ndarray | None = None,
    ) -> Generator[tuple[np.ndarray, np.ndarray], None, None]:
        """Generate train/validation indices for every fold.

        Yields:
            Tuple of (train_indices, validation_indices) for each fold.
        """
        for spec in self.fold_specs(len(X)):
            yield spec.train_indices, spec.validation_indices

    def _iter_test_indices(self, X=None, y=None, groups=None):
        for spec in self.fold_specs(len(X)):
            yield spec.validation_indices
