"""
Core infrastructure layer for the forecasting pipeline.

Contains type definitions, exceptions and seeding utilities shared by
the data, feature and model layers.
"""

from .data_types import Bar, BarInterval, bars_to_frame, validate_bar_sequence
from .exceptions import (
    ConfigurationError,
    ExternalModelError,
    ForecastSystemError,
    InsufficientDataError,
    InvalidInputError,
    NotFittedError,
    PersistenceError,
    ShapeMismatchError,
)
from .reproducibility import RngSnapshot, apply_seed, fold_seed, seeded

__all__ = [
    # Data types
    "Bar",
    "BarInterval",
    "bars_to_frame",
    "validate_bar_sequence",
    # Exceptions
    "ForecastSystemError",
    "InvalidInputError",
    "InsufficientDataError",
    "NotFittedError",
    "ShapeMismatchError",
    "ExternalModelError",
    "PersistenceError",
    "ConfigurationError",
    # Reproducibility
    "seeded",
    "apply_seed",
    "fold_seed",
    "RngSnapshot",
]
