"""
Structured logging system for the forecasting pipeline.

Provides:
- JSON and human-readable log formats
- Contextual metadata and correlation IDs
- Log categories for different pipeline stages
- Epoch-level audit trail for training runs
- Rotating file handlers with retention
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class LogCategory(str, Enum):
    """Log categories for different pipeline stages."""

    SYSTEM = "SYSTEM"
    DATA = "DATA"
    FEATURE = "FEATURE"
    MODEL = "MODEL"
    TRAINING = "TRAINING"
    EVALUATION = "EVALUATION"
    PREDICTION = "PREDICTION"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


class EpochLogEntry(BaseModel):
    """One epoch of a training run, for the audit trail."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model_id: str
    epoch: int
    train_loss: float | None = None
    validation_loss: float | None = None
    elapsed_seconds: float = 0.0


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def __init__(self, category: LogCategory = LogCategory.SYSTEM) -> None:
        """Initialize the formatter.

        Args:
            category: Default log category.
        """
        super().__init__()
        self.category = category

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON formatted string.
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "category": getattr(record, "category", self.category.value),
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "correlation_id", None):
            log_data["correlation_id"] = record.correlation_id
        if getattr(record, "symbol", None):
            log_data["symbol"] = record.symbol
        if getattr(record, "model_name", None):
            log_data["model_name"] = record.model_name
        if getattr(record, "extra_data", None):
            log_data["extra_data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development.

    With ``use_colors`` the level tag is wrapped in ANSI colour codes;
    INFO stays uncoloured.
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[90m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def __init__(self, category: LogCategory = LogCategory.SYSTEM, use_colors: bool = False) -> None:
        super().__init__()
        self.category = category
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as human-readable text."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        category = getattr(record, "category", self.category.value)

        level = f"[{record.levelname:8s}]"
        color = self.LEVEL_COLORS.get(record.levelname, "") if self.use_colors else ""
        if color:
            level = f"{color}{level}{self.RESET}"

        parts = [
            timestamp,
            level,
            f"[{category:10s}]",
        ]

        if getattr(record, "correlation_id", None):
            parts.append(f"[{record.correlation_id[:8]}]")
        if getattr(record, "symbol", None):
            parts.append(f"[{record.symbol}]")
        if getattr(record, "model_name", None):
            parts.append(f"[{record.model_name}]")

        parts.append(record.getMessage())

        if getattr(record, "extra_data", None):
            parts.append(f"| {record.extra_data}")

        message = " ".join(parts)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that stamps category and correlation id on records."""

    def __init__(
        self,
        logger: logging.Logger,
        category: LogCategory = LogCategory.SYSTEM,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the context logger.

        Args:
            logger: Base logger instance.
            category: Log category.
            correlation_id: Optional correlation ID for run tracing.
            context: Extra record attributes (symbol, model_name) to attach.
        """
        super().__init__(logger, {})
        self.category = category
        self.correlation_id = correlation_id or str(uuid4())
        self.context = dict(context or {})

    def process(
        self,
        msg: str,
        kwargs: dict[str, Any],
    ) -> tuple[str, dict[str, Any]]:
        """Add category, correlation id and bound context to the call."""
        extra = kwargs.get("extra", {})
        extra["category"] = self.category.value
        extra["correlation_id"] = self.correlation_id
        for key, value in self.context.items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(
        self,
        symbol: str | None = None,
        model_name: str | None = None,
    ) -> "ContextLogger":
        """Return a logger sharing this correlation id with extra context bound."""
        context = dict(self.context)
        if symbol:
            context["symbol"] = symbol
        if model_name:
            context["model_name"] = model_name
        return ContextLogger(self.logger, self.category, self.correlation_id, context)


class TrainingAuditLogger:
    """Writes one JSON line per epoch so loss histories survive the process."""

    def __init__(self, log_dir: Path | None = None) -> None:
        """Initialize the audit logger.

        Args:
            log_dir: Directory for the per-model JSONL files.
        """
        self.log_dir = log_dir or Path("logs/training")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._logger = get_logger("training.audit", LogCategory.TRAINING)

    def log_epoch(
        self,
        model_id: str,
        epoch: int,
        train_loss: float | None,
        validation_loss: float | None,
        elapsed_seconds: float,
    ) -> EpochLogEntry:
        """Record one finished epoch."""
        entry = EpochLogEntry(
            model_id=model_id,
            epoch=epoch,
            train_loss=train_loss,
            validation_loss=validation_loss,
            elapsed_seconds=elapsed_seconds,
        )
        self._logger.debug(
            f"Epoch {epoch} recorded for {model_id}",
            extra={"model_name": model_id, "extra_data": entry.model_dump(mode="json")},
        )
        with open(self.log_dir / f"{model_id}.jsonl", "a") as f:
            f.write(entry.model_dump_json() + "\n")
        return entry

    def read_history(self, model_id: str) -> list[EpochLogEntry]:
        """Load every recorded epoch for a model, oldest first."""
        file_path = self.log_dir / f"{model_id}.jsonl"
        if not file_path.exists():
            return []
        with open(file_path) as f:
            return [EpochLogEntry.model_validate_json(line) for line in f if line.strip()]


def setup_logging(
    level: str = "INFO",
    log_format: LogFormat = LogFormat.TEXT,
    log_file: Path | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    use_colors: bool | None = None,
) -> None:
    """Set up logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json or text).
        log_file: Optional log file path.
        max_bytes: Size at which the log file rotates.
        backup_count: Number of rotated files kept.
        use_colors: ANSI colours on console text output. ``None`` colours
            only when stdout is a terminal. Files are never coloured.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    if use_colors is None:
        use_colors = sys.stdout.isatty()

    if log_format == LogFormat.JSON:
        formatter: logging.Formatter = JsonFormatter()
        console_formatter: logging.Formatter = formatter
    else:
        formatter = TextFormatter()
        console_formatter = TextFormatter(use_colors=use_colors)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


@lru_cache(maxsize=32)
def get_logger(
    name: str,
    category: LogCategory = LogCategory.SYSTEM,
    correlation_id: str | None = None,
) -> ContextLogger:
    """Get a context logger for a component.

    Args:
        name: Logger name.
        category: Log category.
        correlation_id: Optional correlation ID.

    Returns:
        ContextLogger instance.
    """
    base_logger = logging.getLogger(name)
    return ContextLogger(base_logger, category, correlation_id)



# Convenience functions for categorised records
def log_data(message: str, symbol: str | None = None, level: str = "INFO", **kwargs: Any) -> None:
    """Log a data or feature pipeline message."""
    logger = get_logger("data", LogCategory.DATA)
    extra: dict[str, Any] = {"extra_data": kwargs}
    if symbol:
        extra["symbol"] = symbol
    getattr(logger, level.lower())(message, extra=extra)


def log_model(message: str, model_name: str, level: str = "INFO", **kwargs: Any) -> None:
    """Log a model message (construction, evaluation, persistence, inference)."""
    logger = get_logger("model", LogCategory.MODEL)
    getattr(logger, level.lower())(
        message,
        extra={"model_name": model_name, "extra_data": kwargs},
    )


def log_training(message: str, model_name: str | None = None, level: str = "INFO", **kwargs: Any) -> None:
    """Log a training-loop message."""
    logger = get_logger("training", LogCategory.TRAINING)
    extra: dict[str, Any] = {"extra_data": kwargs}
    if model_name:
        extra["model_name"] = model_name
    getattr(logger, level.lower())(message, extra=extra)
