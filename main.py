#!/usr/bin/env python3
"""
Main entry point for the Quant Forecast System.

Provides a unified command line for the pipeline: train a model on one
instrument, cross-validate a configuration, or predict upcoming prices for
a list of instruments with a saved model.
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timedelta
from pathlib import Path

from quant_forecast_system.config.settings import Settings, build_settings, get_settings
from quant_forecast_system.core.data_types import Bar
from quant_forecast_system.data.sources import BarSource, CsvBarSource, InMemoryBarSource
from quant_forecast_system.data.synthetic import generate_synthetic_bars
from quant_forecast_system.features.feature_pipeline import FeaturePipeline
from quant_forecast_system.models.factory import model_class, model_factory
from quant_forecast_system.models.prediction import ForecastService
from quant_forecast_system.models.training import TrainingOrchestrator
from quant_forecast_system.monitoring.logger import (
    LogCategory,
    LogFormat,
    TrainingAuditLogger,
    get_logger,
    setup_logging,
)

logger = get_logger("main", LogCategory.SYSTEM)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Quant Forecast System",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Train command
    train_parser = subparsers.add_parser("train", help="Train and save a model")
    train_parser.add_argument("--symbol", type=str, required=True, help="Instrument to train on")
    train_parser.add_argument("--model-id", type=str, help="Identifier to save under (default: symbol)")

    # Cross-validation command
    cv_parser = subparsers.add_parser("cross-validate", help="K-fold cross-validation")
    cv_parser.add_argument("--symbol", type=str, required=True, help="Instrument to evaluate on")
    cv_parser.add_argument("--folds", type=int, help="Number of folds (default: from settings)")

    # Predict command
    predict_parser = subparsers.add_parser("predict", help="Predict upcoming prices")
    predict_parser.add_argument("--symbols", type=str, nargs="+", required=True, help="Instruments to predict")
    predict_parser.add_argument("--model-id", type=str, required=True, help="Saved model identifier")

    for sub in (train_parser, cv_parser, predict_parser):
        sub.add_argument(
            "--synthetic",
            type=int,
            metavar="N",
            help="Use N synthetic bars per symbol instead of CSV data",
        )
        sub.add_argument("--epochs", type=int, help="Override training.epochs")

    # Common arguments
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from settings)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        help="Log format (default: from settings)",
    )

    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    """Settings from --config or the bundled defaults, with CLI overrides."""
    settings = Settings.from_yaml(args.config) if args.config else get_settings()
    if args.epochs is not None:
        data = settings.model_dump()
        data["training"]["epochs"] = args.epochs
        settings = build_settings(**data)
    return settings


def open_source(args: argparse.Namespace, settings: Settings, symbols: list[str]) -> BarSource:
    """The bar source selected on the command line (not yet opened)."""
    if args.synthetic:
        bars: list[Bar] = []
        for offset, symbol in enumerate(symbols):
            bars.extend(
                generate_synthetic_bars(
                    args.synthetic,
                    symbol=symbol,
                    interval=settings.data.interval,
                    seed=settings.training.seed + offset if settings.training.seed is not None else offset,
                )
            )
        return InMemoryBarSource(bars)
    return CsvBarSource(settings.data.data_dir, settings.data.interval)


def history_start(settings: Settings) -> datetime:
    return datetime.now() - timedelta(days=settings.data.history_days)


def run_train(args: argparse.Namespace, settings: Settings) -> None:
    model_id = args.model_id or args.symbol.upper()
    run_logger = logger.with_context(symbol=args.symbol.upper(), model_name=model_id)
    with open_source(args, settings, [args.symbol]) as source:
        bars = source.fetch_bars(args.symbol, None if args.synthetic else history_start(settings))

    processed = FeaturePipeline(settings.features).process(bars)
    orchestrator = TrainingOrchestrator(
        model_factory(
            settings.model,
            input_size=len(processed.feature_names),
            output_size=settings.features.predict_steps,
            name=model_id,
        ),
        settings.training,
        label_normalizer=processed.label_normalizer,
        models_dir=settings.model.models_dir,
        audit_logger=TrainingAuditLogger(settings.model.models_dir / model_id / "audit"),
    )
    orchestrator.train(processed.dataset)
    evaluation = orchestrator.evaluate()
    directory = orchestrator.save(model_id, processed.feature_normalizer, processed.label_normalizer)

    for line in evaluation.test_metrics.summary_lines():
        run_logger.info(f"Test {line}")
    run_logger.info(f"Model saved to {directory}")


def run_cross_validate(args: argparse.Namespace, settings: Settings) -> None:
    with open_source(args, settings, [args.symbol]) as source:
        bars = source.fetch_bars(args.symbol, None if args.synthetic else history_start(settings))

    processed = FeaturePipeline(settings.features).process(bars)
    factory = model_factory(
        settings.model,
        input_size=len(processed.feature_names),
        output_size=settings.features.predict_steps,
    )
    orchestrator = TrainingOrchestrator(factory, settings.training)
    result = orchestrator.cross_validate(processed.dataset, args.folds)
    logger.info(
        f"Cross-validation loss {result.mean_score:.6f} +/- {result.std_score:.6f}",
        extra={"extra_data": result.to_dict()},
    )


def run_predict(args: argparse.Namespace, settings: Settings) -> None:
    service = ForecastService.from_saved(
        args.model_id,
        settings.model.models_dir,
        model_class(settings.model.variant),
        FeaturePipeline(settings.features),
    )
    with open_source(args, settings, args.symbols) as source:
        results = service.batch_predict(source, args.symbols)

    for item in results:
        if item.succeeded:
            logger.info(f"{item.symbol}: {item.result.to_dict()}")
        else:
            logger.error(f"{item.symbol}: {item.error}")
    if not any(item.succeeded for item in results):
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    settings = load_settings(args)

    level = args.log_level or settings.logging.level
    log_format = LogFormat(args.log_format or settings.logging.format)
    setup_logging(
        level=level,
        log_format=log_format,
        log_file=settings.logging.file_path,
        max_bytes=settings.logging.max_bytes,
        backup_count=settings.logging.backup_count,
        use_colors=settings.logging.use_colors,
    )

    logger.info(
        f"{settings.app_name} v{settings.app_version}",
        extra={"extra_data": {"command": args.command, "environment": settings.environment}},
    )

    try:
        if args.command == "train":
            run_train(args, settings)
        elif args.command == "cross-validate":
            run_cross_validate(args, settings)
        elif args.command == "predict":
            run_predict(args, settings)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
