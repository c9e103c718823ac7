"""
Unit tests for the command line entry point.
"""

import argparse
import logging

import pytest
import yaml

import main


@pytest.fixture
def config_file(tmp_path):
    """Small, fast configuration writing models under tmp_path."""
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "features": {"time_steps": 10, "predict_steps": 5},
                "training": {"epochs": 2, "max_epochs": 2, "batch_size": 32, "k_folds": 3},
                "model": {"variant": "sgd", "models_dir": str(tmp_path / "models")},
                "data": {"data_dir": str(tmp_path / "data")},
            }
        )
    )
    yield path
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_train(self):
        args = main.parse_args(["--log-level", "DEBUG", "train", "--symbol", "ABC", "--synthetic", "200"])
        assert args.command == "train"
        assert args.symbol == "ABC"
        assert args.synthetic == 200
        assert args.log_level == "DEBUG"

    def test_predict_symbols(self):
        args = main.parse_args(["predict", "--symbols", "A", "B", "--model-id", "m1"])
        assert args.symbols == ["A", "B"]
        assert args.model_id == "m1"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main.parse_args([])


class TestLoadSettings:
    """Tests for command-line overrides of the loaded settings."""

    def test_epochs_override_stays_under_ceiling(self, config_file):
        """A large --epochs request is still capped by the configured max_epochs."""
        settings = main.load_settings(argparse.Namespace(config=config_file, epochs=500))
        assert settings.training.epochs == 500
        assert settings.training.max_epochs == 2
        assert settings.training.effective_epochs == 2

    def test_smaller_epochs_override_applies(self, config_file):
        settings = main.load_settings(argparse.Namespace(config=config_file, epochs=1))
        assert settings.training.effective_epochs == 1

    def test_no_override_keeps_config(self, config_file):
        settings = main.load_settings(argparse.Namespace(config=config_file, epochs=None))
        assert settings.training.epochs == 2


class TestMain:
    """End-to-end runs of the CLI on synthetic data."""

    def test_train_then_predict(self, config_file, tmp_path):
        main.main(["--config", str(config_file), "train", "--symbol", "SYN", "--synthetic", "200", "--model-id", "syn"])
        model_dir = tmp_path / "models" / "syn"
        assert (model_dir / "model.json").exists()
        assert (model_dir / "training_run.json").exists()
        assert list((model_dir / "audit").glob("*.jsonl"))

        main.main(["--config", str(config_file), "predict", "--symbols", "SYN", "--model-id", "syn", "--synthetic", "50"])

    def test_epochs_override(self, config_file, tmp_path):
        main.main(
            ["--config", str(config_file), "train", "--symbol", "SYN", "--synthetic", "120", "--epochs", "1"]
        )
        assert (tmp_path / "models" / "SYN" / "training_run.json").exists()

    def test_cross_validate(self, config_file):
        main.main(["--config", str(config_file), "cross-validate", "--symbol", "SYN", "--synthetic", "120"])

    def test_missing_data_exits_with_error(self, config_file):
        with pytest.raises(SystemExit) as exc_info:
            main.main(["--config", str(config_file), "train", "--symbol", "SYN"])
        assert exc_info.value.code == 1

    def test_predict_without_saved_model_exits(self, config_file):
        with pytest.raises(SystemExit):
            main.main(["--config", str(config_file), "predict", "--symbols", "SYN", "--model-id", "absent", "--synthetic", "50"])
