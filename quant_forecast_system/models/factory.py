"""Construction of sequence models from settings."""

from __future__ import annotations

from functools import partial
from typing import Callable

from quant_forecast_system.config.settings import ModelSettings
from quant_forecast_system.core.exceptions import ConfigurationError
from quant_forecast_system.models.base import SequenceRegressor
from quant_forecast_system.models.classical_ml import SGDSequenceRegressor
from quant_forecast_system.models.deep_learning import LSTMRegressor

MODEL_CLASSES: dict[str, type[SequenceRegressor]] = {
    "lstm": LSTMRegressor,
    "sgd": SGDSequenceRegressor,
}


def model_class(variant: str) -> type[SequenceRegressor]:
    """Model class registered for a variant name."""
    try:
        return MODEL_CLASSES[variant]
    except KeyError:
        raise ConfigurationError(
            f"Unknown model variant '{variant}'; expected one of {sorted(MODEL_CLASSES)}",
            config_key="model.variant",
        ) from None


def create_model(
    settings: ModelSettings,
    input_size: int | None = None,
    output_size: int | None = None,
    name: str | None = None,
) -> SequenceRegressor:
    """Build an unfitted model for ``settings.variant``.

    With both ``input_size`` (features per step) and ``output_size``
    (horizon) the model is built eagerly and locked to those widths;
    otherwise it sizes itself on the first batch.
    """
    cls = model_class(settings.variant)
    if cls is LSTMRegressor:
        model: SequenceRegressor = LSTMRegressor(
            name=name or "lstm",
            lstm_layer1_size=settings.lstm_layer1_size,
            lstm_layer2_size=settings.lstm_layer2_size,
            dense_layer_size=settings.dense_layer_size,
            learning_rate=settings.learning_rate,
            dropout=settings.dropout,
            weight_decay=settings.weight_decay,
        )
    else:
        model = SGDSequenceRegressor(name=name or "sgd", alpha=settings.weight_decay)

    if input_size is not None and output_size is not None:
        model.build(input_size, output_size)
    return model


def model_factory(
    settings: ModelSettings,
    input_size: int | None = None,
    output_size: int | None = None,
    name: str | None = None,
) -> Callable[[], SequenceRegressor]:
    """Zero-argument factory, as expected by the training orchestrator."""
    return partial(create_model, settings, input_size, output_size, name)
