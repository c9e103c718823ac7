"""
Inference on the most recent window.

Loads nothing on its own: the caller supplies a fitted model and the
normalizers saved with it. Feature normalization is applied, never
refitted, so predictions use the training-time scale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

import numpy as np

from quant_forecast_system.core.data_types import Bar
from quant_forecast_system.core.exceptions import (
    ExternalModelError,
    ForecastSystemError,
    InsufficientDataError,
)
from quant_forecast_system.data.calendar import TradingCalendar
from quant_forecast_system.data.sources import BarSource
from quant_forecast_system.features.denormalization import PredictionDenormalizer, PricePathMode
from quant_forecast_system.features.feature_pipeline import FeaturePipeline
from quant_forecast_system.features.normalization import MinMaxNormalizer, NormalizerStore
from quant_forecast_system.models.base import SequenceRegressor
from quant_forecast_system.monitoring.logger import log_model

logger = logging.getLogger(__name__)


@dataclass
class PricePrediction:
    """Projected prices for the bars following the last observed one."""

    symbol: str
    last_timestamp: datetime
    last_price: float
    change_ratios: np.ndarray
    prices: np.ndarray
    times: list[datetime]
    predicted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "last_timestamp": self.last_timestamp.isoformat(),
            "last_price": self.last_price,
            "predicted_at": self.predicted_at.isoformat(),
            "points": [
                {"time": ts.isoformat(), "price": float(price), "change_ratio": float(ratio)}
                for ts, price, ratio in zip(self.times, self.prices, self.change_ratios)
            ],
        }


@dataclass
class SymbolPrediction:
    """Outcome for one symbol of a batch run."""

    symbol: str
    result: PricePrediction | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class ForecastService:
    """Predicts the next ``H`` prices from the latest ``T`` bars."""

    def __init__(
        self,
        model: SequenceRegressor,
        pipeline: FeaturePipeline,
        feature_normalizer: MinMaxNormalizer,
        label_normalizer: MinMaxNormalizer,
        path_mode: PricePathMode = PricePathMode.CUMULATIVE,
        calendar: TradingCalendar | None = None,
    ):
        self.model = model
        self.pipeline = pipeline
        self.feature_normalizer = feature_normalizer
        self.denormalizer = PredictionDenormalizer(label_normalizer)
        self.path_mode = path_mode
        self.calendar = calendar or TradingCalendar()

    @classmethod
    def from_saved(
        cls,
        model_id: str,
        models_dir: Path | str,
        model_cls: type[SequenceRegressor],
        pipeline: FeaturePipeline,
        **kwargs: Any,
    ) -> "ForecastService":
        """Load a model and its normalizers saved by the training orchestrator."""
        models_dir = Path(models_dir)
        model = model_cls.load(models_dir / model_id / "model")
        feature_normalizer, label_normalizer = NormalizerStore(models_dir).load(model_id)
        return cls(model, pipeline, feature_normalizer, label_normalizer, **kwargs)

    def predict(self, bars: Sequence[Bar]) -> PricePrediction:
        """Predict from the window ending at the last bar.

        Raises:
            InsufficientDataError: Fewer bars than the window length.
            ExternalModelError: The model failed to predict.
        """
        time_steps = self.pipeline.settings.time_steps
        if len(bars) < time_steps:
            raise InsufficientDataError(
                f"Need at least {time_steps} bars to predict, got {len(bars)}",
                required=time_steps,
                available=len(bars),
            )

        windows = self.pipeline.transform_for_inference(bars, self.feature_normalizer)
        try:
            outputs = self.model.predict(windows[-1:])
        except ForecastSystemError:
            raise
        except Exception as e:
            raise ExternalModelError(
                f"Model predict failed: {e}",
                operation="predict",
                model_name=self.model.name,
                cause=e,
            ) from e

        last = bars[-1]
        ratios = self.denormalizer.denormalize(outputs)[0]
        prices = self.denormalizer.to_price_path(ratios, last.close, self.path_mode)
        times = self.calendar.next_times(last.timestamp, last.interval.duration, len(ratios))

        log_model(
            f"Predicted {len(prices)} prices for {last.symbol} from {last.timestamp.isoformat()}",
            model_name=self.model.name,
            symbol=last.symbol,
            last_price=last.close,
            final_price=float(prices[-1]),
        )
        return PricePrediction(
            symbol=last.symbol,
            last_timestamp=last.timestamp,
            last_price=last.close,
            change_ratios=ratios,
            prices=prices,
            times=times,
        )

    def batch_predict(
        self,
        source: BarSource,
        symbols: Sequence[str],
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[SymbolPrediction]:
        """Predict every symbol, recording per-symbol failures instead of stopping."""
        results = []
        for symbol in symbols:
            try:
                bars = source.fetch_bars(symbol, start_time, end_time)
                results.append(SymbolPrediction(symbol=symbol, result=self.predict(bars)))
            except ForecastSystemError as e:
                log_model(
                    f"Prediction failed for {symbol}: {e}",
                    model_name=self.model.name,
                    level="WARNING",
                    symbol=symbol,
                    error_code=e.error_code,
                )
                results.append(SymbolPrediction(symbol=symbol, error=str(e)))

        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(f"Batch prediction: {succeeded}/{len(results)} symbols succeeded")
        return results
