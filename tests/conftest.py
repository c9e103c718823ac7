"""
Pytest fixtures for the Quant Forecast System tests.
"""

import json
import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from quant_forecast_system.models.base import SequenceRegressor  # noqa: E402


class MeanRegressor(SequenceRegressor):
    """Predicts the running mean of every label seen so far.

    Deterministic and torch-free, so orchestrator tests can reason about
    exact losses.
    """

    ARTIFACT_SUFFIX = ".mean"

    def __init__(self, name: str = "mean", version: str = "1.0.0", **kwargs):
        super().__init__(name, version, **kwargs)
        self._sum = None
        self._count = 0
        self.fit_calls = 0

    def fit(self, features, labels):
        features, labels = self._validate_batch(features, labels, check_fitted=False)
        if self._sum is None:
            self._sum = np.zeros(labels.shape[1])
        self._sum += labels.sum(axis=0)
        self._count += labels.shape[0]
        self.fit_calls += 1
        self._record_update(features, labels)
        return self

    def predict(self, features):
        features, _ = self._validate_batch(features)
        mean = self._sum / self._count
        return np.tile(mean, (features.shape[0], 1))

    def _save_artifact(self, path):
        with open(path, "w") as f:
            json.dump({"sum": self._sum.tolist(), "count": self._count}, f)

    def _load_artifact(self, path):
        with open(path) as f:
            state = json.load(f)
        self._sum = np.array(state["sum"])
        self._count = state["count"]


class AlwaysUpRegressor(MeanRegressor):
    """Ignores the data and predicts the same normalized output every step."""

    def __init__(self, name: str = "always_up", version: str = "1.0.0", output: float = 1.0, **kwargs):
        super().__init__(name, version, output=output, **kwargs)
        self.output = output

    def predict(self, features):
        features, _ = self._validate_batch(features)
        return np.full((features.shape[0], self._output_size), self.output)


class FailingRegressor(MeanRegressor):
    """Raises a foreign exception from ``fit``."""

    def fit(self, features, labels):
        raise RuntimeError("backend exploded")


@pytest.fixture
def synthetic_bars():
    """300 random-walk bars on the session grid."""
    from quant_forecast_system.data.synthetic import generate_synthetic_bars

    return generate_synthetic_bars(300, symbol="SYN", seed=7)


@pytest.fixture
def trending_bars():
    """100 bars with strictly increasing closes."""
    from quant_forecast_system.data.synthetic import generate_trending_bars

    return generate_trending_bars(100)


@pytest.fixture
def small_feature_settings():
    """Short window and horizon so small bar sets produce windows."""
    from quant_forecast_system.config.settings import FeatureSettings

    return FeatureSettings(time_steps=10, predict_steps=5)


@pytest.fixture
def fast_training_settings():
    """A few epochs, no time budget pressure."""
    from quant_forecast_system.config.settings import TrainingSettings

    return TrainingSettings(batch_size=16, epochs=3, max_epochs=3, k_folds=3, seed=123)


@pytest.fixture
def mean_regressor_factory():
    """Zero-argument factory for the deterministic test model."""
    return MeanRegressor


@pytest.fixture
def processed_trend(trending_bars, small_feature_settings):
    """Fit-path output for the trending fixture with T=10, H=5."""
    from quant_forecast_system.features.feature_pipeline import FeaturePipeline

    return FeaturePipeline(small_feature_settings).process(trending_bars)
