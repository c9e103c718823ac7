"""Logging and run auditing for the forecasting pipeline."""

from .logger import (
    ContextLogger,
    EpochLogEntry,
    JsonFormatter,
    LogCategory,
    LogFormat,
    TextFormatter,
    TrainingAuditLogger,
    get_logger,
    log_data,
    log_model,
    log_training,
    setup_logging,
)

__all__ = [
    "ContextLogger",
    "EpochLogEntry",
    "JsonFormatter",
    "LogCategory",
    "LogFormat",
    "TextFormatter",
    "TrainingAuditLogger",
    "get_logger",
    "log_data",
    "log_model",
    "log_training",
    "setup_logging",
]
