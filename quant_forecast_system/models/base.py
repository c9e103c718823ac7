"""
Sequence-regression model contract.

The training orchestrator and prediction service only talk to models
through this interface: one batch update (``fit``), ``predict``, ``score``,
``save`` and ``load``. Windows are float64 ``(n, T, F)`` and targets are
``(n, H)``; implementations never need to re-derive ranks.
"""

from __future__ import annotations

import hashlib
import json
import logging
import pickle
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np

from quant_forecast_system.core.exceptions import (
    InvalidInputError,
    NotFittedError,
    PersistenceError,
    ShapeMismatchError,
)

logger = logging.getLogger(__name__)

# Bumped when the saved metadata layout changes
ARTIFACT_FORMAT_VERSION = 1


class SequenceRegressor(ABC):
    """
    Abstract base for models mapping a feature window to a label vector.

    Subclasses implement the batch update, prediction and artefact I/O.
    The base class validates shapes, keeps training counters, computes the
    MSE score and writes the JSON metadata with an artefact checksum.
    """

    ARTIFACT_SUFFIX = ".pkl"

    def __init__(self, name: str, version: str = "1.0.0", **params: Any):
        """
        Initialize base model.

        Args:
            name: Model identifier
            version: Version string
            **params: Hyperparameters, stored and saved with the model
        """
        self._name = name
        self._version = version
        self._params: dict[str, Any] = dict(params)
        self._is_fitted = False
        self._model: Any = None
        self._input_shape: tuple[int, int] | None = None
        self._feature_width: int | None = None
        self._output_size: int | None = None
        self._n_updates = 0
        self._n_samples_seen = 0
        self._last_fit_at: datetime | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    @property
    def params(self) -> dict[str, Any]:
        return self._params.copy()

    @property
    def is_fitted(self) -> bool:
        return self._is_fitted

    @property
    def input_shape(self) -> tuple[int, int] | None:
        """``(time_steps, n_features)`` seen on the first fit."""
        return self._input_shape

    @property
    def output_size(self) -> int | None:
        return self._output_size

    @property
    def n_updates(self) -> int:
        return self._n_updates

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    @abstractmethod
    def fit(self, features: np.ndarray, labels: np.ndarray) -> "SequenceRegressor":
        """Apply one training update for a batch of windows.

        Args:
            features: ``(b, T, F)`` feature windows
            labels: ``(b, H)`` targets

        Returns:
            self for method chaining
        """
        pass

    @abstractmethod
    def predict(self, features: np.ndarray) -> np.ndarray:
        """Predict ``(n, H)`` targets for ``(n, T, F)`` windows."""
        pass

    def build(self, input_size: int, output_size: int) -> "SequenceRegressor":
        """
        Fix the per-step feature width and the horizon before the first update.

        Backends that can allocate their weights up front do so here; the
        others still build lazily on the first ``fit``. Either way, batches
        of another width are rejected afterwards.

        Args:
            input_size: Features per timestep (F)
            output_size: Forecast horizon (H)

        Returns:
            self for method chaining
        """
        if input_size < 1 or output_size < 1:
            raise InvalidInputError(
                f"Model sizes must be positive, got input {input_size} and output {output_size}",
                field_name="input_size" if input_size < 1 else "output_size",
            )
        if self._is_fitted:
            raise InvalidInputError(f"Model {self._name} is already trained", field_name="model")
        self._feature_width = input_size
        self._output_size = output_size
        self._build(input_size, output_size)
        return self

    def _build(self, input_size: int, output_size: int) -> None:
        """Allocate backend state for known sizes. Default: wait for ``fit``."""

    def score(self, features: np.ndarray, labels: np.ndarray) -> float:
        """Mean squared error of the predictions on a batch (lower is better)."""
        features, labels = self._validate_batch(features, labels)
        predictions = self.predict(features)
        return float(np.mean((predictions - labels) ** 2))

    @abstractmethod
    def _save_artifact(self, path: Path) -> None:
        """Write the fitted estimator to ``path``."""
        pass

    @abstractmethod
    def _load_artifact(self, path: Path) -> None:
        """Restore the estimator written by ``_save_artifact``."""
        pass

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, path: str | Path) -> Path:
        """
        Serialize model to disk.

        Writes the artefact (``path`` + ``ARTIFACT_SUFFIX``) and a JSON
        metadata file with hyperparameters, shapes and a SHA256 checksum.

        Args:
            path: Path to save model (without extension)

        Returns:
            Path of the metadata file
        """
        if not self._is_fitted:
            raise NotFittedError(f"model {self._name}")

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        artifact_path = path.with_suffix(self.ARTIFACT_SUFFIX)
        self._save_artifact(artifact_path)

        metadata = {
            "class": self.__class__.__name__,
            "name": self._name,
            "version": self._version,
            "format_version": ARTIFACT_FORMAT_VERSION,
            "params": self._serialize_params(self._params),
            "input_shape": list(self._input_shape) if self._input_shape else None,
            "output_size": self._output_size,
            "n_updates": self._n_updates,
            "n_samples_seen": self._n_samples_seen,
            "last_fit_at": self._last_fit_at.isoformat() if self._last_fit_at else None,
            "checksum": self._compute_checksum(artifact_path),
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        metadata_path = path.with_suffix(".json")
        with open(metadata_path, "w") as f:
            json.dump(metadata, f, indent=2, default=str)

        logger.info(f"Saved model {self._name} v{self._version} to {artifact_path}")
        return metadata_path

    @classmethod
    def load(cls, path: str | Path) -> "SequenceRegressor":
        """
        Deserialize a model saved with ``save``.

        Args:
            path: Path to saved model (without extension)

        Returns:
            A fitted model instance

        Raises:
            PersistenceError: If files are missing, the checksum does not
                match or the metadata belongs to another model class
        """
        path = Path(path)
        artifact_path = path.with_suffix(cls.ARTIFACT_SUFFIX)
        metadata_path = path.with_suffix(".json")

        if not metadata_path.exists():
            raise PersistenceError(f"Metadata file not found: {metadata_path}", path=str(metadata_path))
        if not artifact_path.exists():
            raise PersistenceError(f"Model file not found: {artifact_path}", path=str(artifact_path))

        with open(metadata_path, "r") as f:
            metadata = json.load(f)

        if metadata.get("class") != cls.__name__:
            raise PersistenceError(
                f"Saved model is a {metadata.get('class')}, not a {cls.__name__}",
                path=str(metadata_path),
            )
        if metadata.get("format_version") != ARTIFACT_FORMAT_VERSION:
            raise PersistenceError(
                f"Unsupported artefact format {metadata.get('format_version')}",
                path=str(metadata_path),
            )
        if metadata.get("checksum") != cls._compute_checksum(artifact_path):
            raise PersistenceError(
                "Model checksum verification failed - file may be corrupted",
                path=str(artifact_path),
            )

        model = cls(name=metadata["name"], version=metadata["version"], **metadata.get("params", {}))
        model._input_shape = tuple(metadata["input_shape"]) if metadata.get("input_shape") else None
        model._output_size = metadata.get("output_size")
        model._n_updates = metadata.get("n_updates", 0)
        model._n_samples_seen = metadata.get("n_samples_seen", 0)
        if metadata.get("last_fit_at"):
            model._last_fit_at = datetime.fromisoformat(metadata["last_fit_at"])
        model._load_artifact(artifact_path)
        model._is_fitted = True

        logger.info(f"Loaded model {model.name} v{model.version} from {artifact_path}")
        return model

    def get_metadata(self) -> dict[str, Any]:
        return {
            "name": self._name,
            "version": self._version,
            "is_fitted": self._is_fitted,
            "input_shape": self._input_shape,
            "output_size": self._output_size,
            "n_updates": self._n_updates,
            "params": self._params,
        }

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    def _validate_batch(
        self,
        features: np.ndarray,
        labels: np.ndarray | None = None,
        check_fitted: bool = True,
    ) -> tuple[np.ndarray, np.ndarray | None]:
        """
        Validate a batch against the canonical window layout.

        Raises:
            NotFittedError: If ``check_fitted`` and no update has happened yet
            ShapeMismatchError: On wrong rank, counts or widths
            InvalidInputError: If the features or labels contain NaN or Inf
        """
        if check_fitted and not self._is_fitted:
            raise NotFittedError(f"model {self._name}")

        features = np.asarray(features, dtype=np.float64)
        if features.ndim != 3:
            raise ShapeMismatchError(
                f"Expected (batch, time_steps, features) windows, got {features.ndim}D",
                actual=features.shape,
            )
        if self._input_shape is not None and features.shape[1:] != self._input_shape:
            raise ShapeMismatchError(
                f"Model {self._name} expects windows of shape {self._input_shape}",
                expected=self._input_shape,
                actual=features.shape[1:],
            )
        if self._feature_width is not None and features.shape[2] != self._feature_width:
            raise ShapeMismatchError(
                f"Model {self._name} was built for {self._feature_width} features per step",
                expected=(self._feature_width,),
                actual=(features.shape[2],),
            )
        if not np.all(np.isfinite(features)):
            raise InvalidInputError("Feature windows contain NaN or Inf values", field_name="features")

        if labels is not None:
            labels = np.asarray(labels, dtype=np.float64)
            if labels.ndim != 2 or labels.shape[0] != features.shape[0]:
                raise ShapeMismatchError(
                    f"Expected ({features.shape[0]}, horizon) labels",
                    actual=labels.shape,
                )
            if self._output_size is not None and labels.shape[1] != self._output_size:
                raise ShapeMismatchError(
                    f"Model {self._name} predicts {self._output_size} steps",
                    expected=(self._output_size,),
                    actual=(labels.shape[1],),
                )
            if not np.all(np.isfinite(labels)):
                raise InvalidInputError("Label windows contain NaN or Inf values", field_name="labels")
        return features, labels

    def _record_update(self, features: np.ndarray, labels: np.ndarray) -> None:
        """Bookkeeping after a successful batch update."""
        if self._input_shape is None:
            self._input_shape = (features.shape[1], features.shape[2])
            self._output_size = labels.shape[1]
        self._is_fitted = True
        self._n_updates += 1
        self._n_samples_seen += features.shape[0]
        self._last_fit_at = datetime.now(timezone.utc)

    def _pickle_model(self, path: Path) -> None:
        with open(path, "wb") as f:
            pickle.dump(self._model, f)

    def _unpickle_model(self, path: Path) -> None:
        # pickle executes code on load; only load artefacts this project wrote
        with open(path, "rb") as f:
            self._model = pickle.load(f)

    @staticmethod
    def _compute_checksum(path: Path) -> str:
        """Compute SHA256 checksum of file."""
        sha256_hash = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                sha256_hash.update(chunk)
        return sha256_hash.hexdigest()

    def _serialize_params(self, params: dict[str, Any]) -> dict[str, Any]:
        """Serialize parameters to JSON-compatible format."""
        serialized = {}
        for key, value in params.items():
            if isinstance(value, (str, int, float, bool, type(None))):
                serialized[key] = value
            elif isinstance(value, (list, tuple)):
                serialized[key] = list(value)
            elif isinstance(value, dict):
                serialized[key] = self._serialize_params(value)
            else:
                serialized[key] = str(value)
        return serialized

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self._name!r}, version={self._version!r}, fitted={self._is_fitted})"
