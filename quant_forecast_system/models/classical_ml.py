"""
Classical machine learning sequence regressor.

A linear baseline on flattened windows: scikit-learn ``SGDRegressor`` per
horizon step (``MultiOutputRegressor``), updated incrementally with
``partial_fit`` so it follows the same batch contract as the LSTM.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np
from sklearn.linear_model import SGDRegressor
from sklearn.multioutput import MultiOutputRegressor

from quant_forecast_system.models.base import SequenceRegressor


class SGDSequenceRegressor(SequenceRegressor):
    """
    Linear model over ``T * F`` flattened window values.

    Fast to train and torch-free; useful as a reference point for the LSTM
    and in cross-validation smoke runs.
    """

    def __init__(
        self,
        name: str = "sgd",
        version: str = "1.0.0",
        alpha: float = 1e-4,
        learning_rate: str = "invscaling",
        eta0: float = 0.01,
        random_state: int = 42,
        **kwargs: Any,
    ):
        """
        Initialize SGD model.

        Args:
            name: Model identifier
            version: Version string
            alpha: L2 regularization strength
            learning_rate: scikit-learn learning-rate schedule
            eta0: Initial learning rate
            random_state: Random seed
            **kwargs: Additional parameters
        """
        super().__init__(
            name,
            version,
            alpha=alpha,
            learning_rate=learning_rate,
            eta0=eta0,
            random_state=random_state,
            **kwargs,
        )

    def fit(self, features: np.ndarray, labels: np.ndarray) -> "SGDSequenceRegressor":
        """One ``partial_fit`` pass over the batch."""
        features, labels = self._validate_batch(features, labels, check_fitted=False)
        if self._model is None:
            self._build(features.shape[2], labels.shape[1])
        self._model.partial_fit(self._flatten(features), labels)
        self._record_update(features, labels)
        return self

    def _build(self, input_size: int, output_size: int) -> None:
        # one SGDRegressor per horizon step, fitted on flattened windows
        self._model = MultiOutputRegressor(
            SGDRegressor(
                penalty="l2",
                alpha=self._params["alpha"],
                learning_rate=self._params["learning_rate"],
                eta0=self._params["eta0"],
                random_state=self._params["random_state"],
            )
        )

    def predict(self, features: np.ndarray) -> np.ndarray:
        features, _ = self._validate_batch(features)
        predictions = np.asarray(self._model.predict(self._flatten(features)), dtype=np.float64)
        return predictions.reshape(features.shape[0], -1)

    def get_coefficients(self) -> np.ndarray:
        """``(H, T * F)`` weights, one row per horizon step."""
        return np.vstack([estimator.coef_ for estimator in self._model.estimators_])

    @staticmethod
    def _flatten(features: np.ndarray) -> np.ndarray:
        return features.reshape(features.shape[0], -1)

    def _save_artifact(self, path: Path) -> None:
        self._pickle_model(path)

    def _load_artifact(self, path: Path) -> None:
        self._unpickle_model(path)
