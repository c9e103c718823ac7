"""Configuration management for the forecasting pipeline."""

from .settings import (
    DataSettings,
    FeatureSettings,
    LoggingSettings,
    ModelSettings,
    Settings,
    TrainingSettings,
    build_settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "FeatureSettings",
    "TrainingSettings",
    "ModelSettings",
    "DataSettings",
    "LoggingSettings",
    "build_settings",
    "get_settings",
    "reload_settings",
]
