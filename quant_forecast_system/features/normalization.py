"""
Min-max normalization with persistence.

Every transform returns a new array; inputs are never modified. Fitted
parameters round-trip through a JSON document so that an inference run can
invert model outputs without the training data.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
from pydantic import BaseModel, Field, ValidationError

from quant_forecast_system.core.exceptions import (
    InvalidInputError,
    NotFittedError,
    PersistenceError,
    ShapeMismatchError,
)

logger = logging.getLogger(__name__)


class NormalizerState(BaseModel):
    """Serializable fitted parameters of a MinMaxNormalizer."""

    data_min: list[float] = Field(..., min_length=1)
    data_max: list[float] = Field(..., min_length=1)
    target_min: float = 0.0
    target_max: float = 1.0
    per_column: bool = False


class MinMaxNormalizer:
    """
    Linear rescaling of an observed value range onto [target_min, target_max].

    The global variant keeps one min/max for the whole array; the per-column
    variant keeps one pair per column (last axis), so it also applies to
    3D window tensors whose last axis is the feature axis.

    Degenerate ranges:
        - zero observed range: transform yields the target midpoint and the
          inverse yields the observed minimum.
        - zero or negative target range: the inverse yields the observed
          minimum.
    """

    def __init__(
        self,
        target_min: float = 0.0,
        target_max: float = 1.0,
        per_column: bool = False,
    ):
        if not (np.isfinite(target_min) and np.isfinite(target_max)):
            raise InvalidInputError("Target range bounds must be finite", field_name="target_range")
        self.target_min = float(target_min)
        self.target_max = float(target_max)
        self.per_column = per_column
        self._data_min: np.ndarray | None = None
        self._data_max: np.ndarray | None = None

    @property
    def is_fitted(self) -> bool:
        return self._data_min is not None

    @property
    def data_min(self) -> np.ndarray:
        self._check_fitted()
        return self._data_min.copy()

    @property
    def data_max(self) -> np.ndarray:
        self._check_fitted()
        return self._data_max.copy()

    def fit(self, matrix: np.ndarray) -> "MinMaxNormalizer":
        """Record the observed range over the finite values of ``matrix``.

        Raises:
            InvalidInputError: If the array is empty or has no finite value
                (in some column, for the per-column variant).
        """
        values = np.asarray(matrix, dtype=np.float64)
        if values.size == 0:
            raise InvalidInputError("Cannot fit a normalizer on an empty array", field_name="matrix")

        if self.per_column:
            flat = values.reshape(-1, values.shape[-1]) if values.ndim > 1 else values.reshape(-1, 1)
            masked = np.where(np.isfinite(flat), flat, np.nan)
            if np.isnan(masked).all(axis=0).any():
                raise InvalidInputError("Every column needs at least one finite value", field_name="matrix")
            self._data_min = np.nanmin(masked, axis=0)
            self._data_max = np.nanmax(masked, axis=0)
        else:
            finite = values[np.isfinite(values)]
            if finite.size == 0:
                raise InvalidInputError("Array has no finite values", field_name="matrix")
            self._data_min = np.array([finite.min()])
            self._data_max = np.array([finite.max()])

        logger.debug(
            f"Fitted {'per-column' if self.per_column else 'global'} normalizer",
            extra={"extra_data": {"columns": len(self._data_min)}},
        )
        return self

    def transform(self, matrix: np.ndarray) -> np.ndarray:
        """Map values onto the target range, returning a new array."""
        values, data_min, data_range = self._prepare(matrix)
        target_range = self.target_max - self.target_min
        midpoint = (self.target_min + self.target_max) / 2.0
        safe_range = np.where(data_range > 0, data_range, 1.0)
        scaled = (values - data_min) / safe_range * target_range + self.target_min
        return np.where(data_range > 0, scaled, midpoint)

    def inverse_transform(self, matrix: np.ndarray) -> np.ndarray:
        """Map target-range values back to the observed range, returning a new array."""
        values, data_min, data_range = self._prepare(matrix)
        target_range = self.target_max - self.target_min
        if target_range <= 0:
            return np.broadcast_to(data_min, values.shape).copy()
        restored = data_min + (values - self.target_min) * data_range / target_range
        return np.where(data_range > 0, restored, data_min)

    def fit_transform(self, matrix: np.ndarray) -> np.ndarray:
        return self.fit(matrix).transform(matrix)

    def _prepare(self, matrix: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        self._check_fitted()
        values = np.asarray(matrix, dtype=np.float64)
        if self.per_column:
            n_columns = len(self._data_min)
            width = values.shape[-1] if values.ndim > 0 else 0
            if width != n_columns:
                raise ShapeMismatchError(
                    f"Normalizer fitted on {n_columns} columns, got {width}",
                    expected=(n_columns,),
                    actual=tuple(values.shape),
                )
            data_min = self._data_min
            data_range = self._data_max - self._data_min
        else:
            data_min = self._data_min[0]
            data_range = np.float64(self._data_max[0] - self._data_min[0])
        return values, data_min, data_range

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise NotFittedError(self.__class__.__name__)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def get_state(self) -> NormalizerState:
        self._check_fitted()
        return NormalizerState(
            data_min=self._data_min.tolist(),
            data_max=self._data_max.tolist(),
            target_min=self.target_min,
            target_max=self.target_max,
            per_column=self.per_column,
        )

    @classmethod
    def from_state(cls, state: NormalizerState) -> "MinMaxNormalizer":
        if len(state.data_min) != len(state.data_max):
            raise InvalidInputError("data_min and data_max lengths differ", field_name="state")
        normalizer = cls(state.target_min, state.target_max, per_column=state.per_column)
        normalizer._data_min = np.array(state.data_min, dtype=np.float64)
        normalizer._data_max = np.array(state.data_max, dtype=np.float64)
        return normalizer

    def save(self, path: Path | str) -> Path:
        """Write the fitted parameters as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.get_state().model_dump_json(indent=2))
        return path

    @classmethod
    def load(cls, path: Path | str) -> "MinMaxNormalizer":
        """Restore a normalizer saved with ``save``.

        Raises:
            PersistenceError: If the file is missing or not a valid state.
        """
        path = Path(path)
        if not path.exists():
            raise PersistenceError(f"Normalizer file not found: {path}", path=str(path))
        try:
            with open(path) as f:
                state = NormalizerState.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Corrupt normalizer file: {e}", path=str(path)) from e
        return cls.from_state(state)


class NormalizerStore:
    """Feature and label normalizers saved side by side per model id.

    Layout: ``<models_dir>/<model_id>/feature_normalizer.json`` and
    ``label_normalizer.json``.
    """

    FEATURE_FILE = "feature_normalizer.json"
    LABEL_FILE = "label_normalizer.json"

    def __init__(self, models_dir: Path | str):
        self.models_dir = Path(models_dir)

    def model_dir(self, model_id: str) -> Path:
        return self.models_dir / model_id

    def exists(self, model_id: str) -> bool:
        directory = self.model_dir(model_id)
        return (directory / self.FEATURE_FILE).exists() and (directory / self.LABEL_FILE).exists()

    def save(
        self,
        model_id: str,
        feature_normalizer: MinMaxNormalizer,
        label_normalizer: MinMaxNormalizer,
    ) -> Path:
        directory = self.model_dir(model_id)
        feature_normalizer.save(directory / self.FEATURE_FILE)
        label_normalizer.save(directory / self.LABEL_FILE)
        logger.info(f"Saved normalizers for {model_id} to {directory}")
        return directory

    def load(self, model_id: str) -> tuple[MinMaxNormalizer, MinMaxNormalizer]:
        """Return ``(feature_normalizer, label_normalizer)`` for a model id."""
        directory = self.model_dir(model_id)
        feature_normalizer = MinMaxNormalizer.load(directory / self.FEATURE_FILE)
        label_normalizer = MinMaxNormalizer.load(directory / self.LABEL_FILE)
        logger.info(f"Loaded normalizers for {model_id} from {directory}")
        return feature_normalizer, label_normalizer
