"""
Central configuration management using Pydantic settings.

Provides type-safe configuration with validation, environment variable
support, and YAML configuration file loading. Components receive the
section they need through their constructors.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quant_forecast_system.core.data_types import BarInterval
from quant_forecast_system.core.exceptions import ConfigurationError

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_DIR = Path(__file__).resolve().parent


class FeatureSettings(BaseModel):
    """Feature, label and window configuration."""

    time_steps: int = Field(default=60, ge=1, description="Window length T in bars")
    predict_steps: int = Field(default=32, ge=1, description="Label horizon H in bars")
    outlier_threshold: float = Field(default=3.0, gt=0, description="Clip distance in standard deviations")
    normalizer_target_min: float = Field(default=0.0, description="Lower bound of the normalized range")
    normalizer_target_max: float = Field(default=1.0, description="Upper bound of the normalized range")
    per_column_normalization: bool = Field(default=False, description="Fit min/max per column instead of globally")


class TrainingSettings(BaseModel):
    """Training loop configuration settings."""

    batch_size: int = Field(default=64, ge=1, description="Windows per batch")
    epochs: int = Field(default=100, ge=1, description="Requested epoch count")
    max_epochs: int = Field(default=100, ge=1, description="Epoch ceiling applied to any request")
    train_test_split: float = Field(default=0.8, gt=0.0, lt=1.0, description="Chronological train fraction")
    k_folds: int = Field(default=5, ge=2, description="Cross-validation folds")
    shuffle: bool = Field(default=False, description="Shuffle training batches each epoch")
    compute_epoch_loss: bool = Field(default=True, description="Re-score the training set after each epoch")
    time_budget_seconds: float | None = Field(default=7200.0, gt=0, description="Wall-clock budget for the epoch loop")
    patience: int | None = Field(default=None, ge=1, description="Early-stop after N epochs without validation improvement")
    seed: int | None = Field(default=42, description="Global random seed")

    @property
    def effective_epochs(self) -> int:
        """Requested epochs capped at the ceiling."""
        return min(self.epochs, self.max_epochs)


class ModelSettings(BaseModel):
    """Sequence model configuration settings."""

    variant: Literal["lstm", "sgd"] = Field(default="lstm", description="Model implementation")
    lstm_layer1_size: int = Field(default=128, ge=1, description="First LSTM layer width")
    lstm_layer2_size: int = Field(default=64, ge=1, description="Second LSTM layer width")
    dense_layer_size: int = Field(default=32, ge=1, description="Dense layer width")
    learning_rate: float = Field(default=0.001, gt=0, description="Optimizer learning rate")
    dropout: float = Field(default=0.2, ge=0.0, lt=1.0, description="Dropout rate")
    weight_decay: float = Field(default=1e-4, ge=0.0, description="L2 penalty")
    models_dir: Path = Field(default=BASE_DIR / "models", description="Models directory")


class DataSettings(BaseModel):
    """Bar source configuration settings."""

    data_dir: Path = Field(default=BASE_DIR / "data", description="Directory of per-symbol CSV files")
    symbols: list[str] = Field(default_factory=list, description="Instruments to process")
    interval: BarInterval = Field(default=BarInterval.MINUTE_15, description="Bar granularity")
    history_days: int = Field(default=3 * 365, ge=1, description="History fetched for training")


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format (json or text)")
    file_path: Path | None = Field(default=None, description="Log file path")
    max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate after this many bytes")
    backup_count: int = Field(default=5, description="Rotated files to keep")
    use_colors: bool | None = Field(default=None, description="ANSI colours on console text (auto when unset)")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate the level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application settings
    app_name: str = "Quant Forecast System"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", description="Environment (development, staging, production)")

    # Component settings
    features: FeatureSettings = Field(default_factory=FeatureSettings)
    training: TrainingSettings = Field(default_factory=TrainingSettings)
    model: ModelSettings = Field(default_factory=ModelSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_target_range(self) -> "Settings":
        """Normalized range bounds must be ordered."""
        if self.features.normalizer_target_max < self.features.normalizer_target_min:
            raise ValueError("features.normalizer_target_max must be >= normalizer_target_min")
        return self

    @classmethod
    def load_yaml_config(cls, config_path: Path) -> dict[str, Any]:
        """Load configuration from a YAML file."""
        if config_path.exists():
            with open(config_path, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    @classmethod
    def from_yaml(cls, config_path: Path) -> "Settings":
        """Build settings from a YAML file layered over environment values.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid.
        """
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                config_file=str(config_path),
            )
        try:
            config = cls.load_yaml_config(config_path)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Cannot parse configuration file: {e}",
                config_file=str(config_path),
            ) from e
        return build_settings(**config)


def build_settings(**overrides: Any) -> Settings:
    """Construct settings, surfacing validation failures as ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(f"Invalid configuration: {first['msg']}", config_key=key) from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Loads the bundled ``pipeline.yaml`` when present, then applies
    environment variables and the ``.env`` file.
    """
    config_path = CONFIG_DIR / "pipeline.yaml"
    if config_path.exists():
        return Settings.from_yaml(config_path)
    return build_settings()


def reload_settings() -> Settings:
    """Drop the cached settings and load them again."""
    get_settings.cache_clear()
    return get_settings()
