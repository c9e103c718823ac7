"""
Unit tests for monitoring/logger.py
"""

import json
import logging

import pytest

from quant_forecast_system.monitoring.logger import (
    ContextLogger,
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


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("test", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Tests for JsonFormatter and TextFormatter."""

    def test_json_formatter(self):
        output = JsonFormatter().format(
            _record(category="TRAINING", model_name="lstm", extra_data={"epoch": 3})
        )
        data = json.loads(output)
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["category"] == "TRAINING"
        assert data["model_name"] == "lstm"
        assert data["extra_data"] == {"epoch": 3}

    def test_json_formatter_default_category(self):
        data = json.loads(JsonFormatter(LogCategory.DATA).format(_record()))
        assert data["category"] == "DATA"
        assert "symbol" not in data

    def test_text_formatter(self):
        output = TextFormatter().format(_record(symbol="ABC", extra_data={"rows": 5}))
        assert "[INFO    ]" in output
        assert "[ABC]" in output
        assert "hello" in output
        assert "{'rows': 5}" in output

    def test_text_formatter_colours_level(self):
        record = _record()
        record.levelname = "WARNING"
        output = TextFormatter(use_colors=True).format(record)
        assert "\033[93m[WARNING ]\033[0m" in output

    def test_text_formatter_info_is_plain(self):
        assert "\033[" not in TextFormatter(use_colors=True).format(_record())

    def test_text_formatter_without_colours(self):
        record = _record()
        record.levelname = "ERROR"
        assert "\033[" not in TextFormatter().format(record)


class TestContextLogger:
    """Tests for ContextLogger."""

    def test_process_adds_category_and_correlation(self):
        adapter = ContextLogger(logging.getLogger("test"), LogCategory.FEATURE, correlation_id="abc123")
        _, kwargs = adapter.process("msg", {})
        assert kwargs["extra"]["category"] == "FEATURE"
        assert kwargs["extra"]["correlation_id"] == "abc123"

    def test_with_context_binds_symbol(self):
        adapter = ContextLogger(logging.getLogger("test"), correlation_id="abc123")
        bound = adapter.with_context(symbol="XYZ", model_name="sgd")
        _, kwargs = bound.process("msg", {"extra": {"extra_data": {}}})
        assert kwargs["extra"]["symbol"] == "XYZ"
        assert kwargs["extra"]["model_name"] == "sgd"
        assert bound.correlation_id == "abc123"
        assert "symbol" not in adapter.context

    def test_get_logger_is_cached(self):
        assert get_logger("component", LogCategory.MODEL) is get_logger("component", LogCategory.MODEL)


class TestTrainingAuditLogger:
    """Tests for the per-epoch audit trail."""

    def test_log_and_read(self, tmp_path):
        audit = TrainingAuditLogger(tmp_path)
        audit.log_epoch("m1", 0, 0.5, 0.6, 1.0)
        audit.log_epoch("m1", 1, None, 0.4, 2.0)
        history = audit.read_history("m1")
        assert [e.epoch for e in history] == [0, 1]
        assert history[1].train_loss is None
        assert history[1].validation_loss == pytest.approx(0.4)

    def test_unknown_model_has_no_history(self, tmp_path):
        assert TrainingAuditLogger(tmp_path).read_history("absent") == []


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_and_file_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "app.log"
        setup_logging(level="DEBUG", log_format=LogFormat.JSON, log_file=log_file)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

        logging.getLogger("quant_forecast_system.test").info("written")
        for handler in root.handlers:
            handler.flush()
        assert "written" in log_file.read_text()

        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)

    def test_console_colours_never_reach_the_file(self, tmp_path):
        setup_logging(log_format=LogFormat.TEXT, log_file=tmp_path / "app.log", use_colors=True)
        root = logging.getLogger()
        console, file_handler = root.handlers
        assert console.formatter.use_colors
        assert not file_handler.formatter.use_colors

        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)


class TestCategoryHelpers:
    """Tests for log_data, log_model and log_training."""

    def test_log_data(self, caplog):
        with caplog.at_level(logging.INFO):
            log_data("loaded bars", symbol="ABC", rows=10)
        record = caplog.records[-1]
        assert record.category == "DATA"
        assert record.symbol == "ABC"
        assert record.extra_data == {"rows": 10}

    def test_log_model_level(self, caplog):
        with caplog.at_level(logging.INFO):
            log_model("predict failed", model_name="lstm", level="WARNING", symbol="ABC")
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.category == "MODEL"
        assert record.model_name == "lstm"
        assert record.extra_data == {"symbol": "ABC"}

    def test_log_training(self, caplog):
        with caplog.at_level(logging.INFO):
            log_training("epoch done", model_name="sgd", epoch=2)
        record = caplog.records[-1]
        assert record.category == "TRAINING"
        assert record.model_name == "sgd"

    def test_feature_pipeline_emits_data_record(self, caplog, trending_bars, small_feature_settings):
        from quant_forecast_system.features.feature_pipeline import FeaturePipeline

        with caplog.at_level(logging.INFO):
            FeaturePipeline(small_feature_settings).process(trending_bars)
        records = [r for r in caplog.records if getattr(r, "category", None) == "DATA"]
        assert records and records[-1].symbol == "TREND"
        assert records[-1].extra_data["label_windows"] == 86

    def test_orchestrator_emits_training_and_model_records(self, caplog, processed_trend, fast_training_settings):
        from conftest import MeanRegressor

        from quant_forecast_system.models.training import TrainingOrchestrator

        orchestrator = TrainingOrchestrator(MeanRegressor, fast_training_settings)
        with caplog.at_level(logging.INFO):
            orchestrator.train(processed_trend.dataset)
            orchestrator.evaluate()
        categories = {getattr(r, "category", None) for r in caplog.records}
        assert {"TRAINING", "MODEL"} <= categories
