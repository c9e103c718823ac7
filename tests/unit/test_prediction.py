"""
Unit tests for models/prediction.py
"""

import numpy as np
import pytest

from conftest import MeanRegressor

from quant_forecast_system.core.exceptions import ExternalModelError, InsufficientDataError
from quant_forecast_system.data.calendar import TradingCalendar
from quant_forecast_system.data.sources import InMemoryBarSource
from quant_forecast_system.data.synthetic import generate_trending_bars
from quant_forecast_system.features.denormalization import PricePathMode
from quant_forecast_system.features.feature_pipeline import FeaturePipeline
from quant_forecast_system.models.prediction import ForecastService
from quant_forecast_system.models.training import TrainingOrchestrator


class BrokenPredictor(MeanRegressor):
    def predict(self, features):
        raise ValueError("bad input tensor")


@pytest.fixture
def fitted_model(processed_trend):
    features, labels = processed_trend.dataset.paired()
    return MeanRegressor().fit(features, labels)


@pytest.fixture
def service(fitted_model, processed_trend, small_feature_settings):
    return ForecastService(
        fitted_model,
        FeaturePipeline(small_feature_settings),
        processed_trend.feature_normalizer,
        processed_trend.label_normalizer,
    )


class TestForecastService:
    """Tests for single-symbol prediction."""

    def test_predicts_horizon_prices(self, service, trending_bars):
        prediction = service.predict(trending_bars)
        assert prediction.symbol == "TREND"
        assert prediction.last_price == 199.0
        assert prediction.prices.shape == (5,)
        assert prediction.change_ratios.shape == (5,)
        assert len(prediction.times) == 5

    def test_prices_follow_positive_ratios(self, service, trending_bars):
        prediction = service.predict(trending_bars)
        assert np.all(prediction.change_ratios > 0)
        assert np.all(np.diff(prediction.prices) > 0)
        assert prediction.prices[0] == pytest.approx(199.0 * (1 + prediction.change_ratios[0]))

    def test_anchored_mode(self, fitted_model, processed_trend, small_feature_settings, trending_bars):
        service = ForecastService(
            fitted_model,
            FeaturePipeline(small_feature_settings),
            processed_trend.feature_normalizer,
            processed_trend.label_normalizer,
            path_mode=PricePathMode.ANCHORED,
        )
        prediction = service.predict(trending_bars)
        np.testing.assert_allclose(prediction.prices, 199.0 * (1 + prediction.change_ratios))

    def test_times_are_future_session_times(self, service, trending_bars):
        prediction = service.predict(trending_bars)
        calendar = TradingCalendar()
        assert prediction.times[0] > trending_bars[-1].timestamp
        assert all(calendar.is_trading_time(ts) for ts in prediction.times)

    def test_uses_only_latest_window(self, service, trending_bars):
        assert np.allclose(service.predict(trending_bars).prices, service.predict(trending_bars[-10:]).prices)

    def test_too_few_bars(self, service, trending_bars):
        with pytest.raises(InsufficientDataError):
            service.predict(trending_bars[:9])

    def test_model_failure_is_wrapped(self, processed_trend, small_feature_settings, trending_bars):
        features, labels = processed_trend.dataset.paired()
        model = BrokenPredictor().fit(features, labels)
        service = ForecastService(
            model,
            FeaturePipeline(small_feature_settings),
            processed_trend.feature_normalizer,
            processed_trend.label_normalizer,
        )
        with pytest.raises(ExternalModelError) as exc_info:
            service.predict(trending_bars)
        assert exc_info.value.operation == "predict"

    def test_to_dict(self, service, trending_bars):
        d = service.predict(trending_bars).to_dict()
        assert d["symbol"] == "TREND"
        assert len(d["points"]) == 5
        assert set(d["points"][0]) == {"time", "price", "change_ratio"}


class TestBatchPredict:
    """Tests for multi-symbol prediction."""

    def test_records_failures_per_symbol(self, service, trending_bars):
        source = InMemoryBarSource(trending_bars)
        source.add_bars(generate_trending_bars(5, symbol="SHORT"))
        with source:
            results = service.batch_predict(source, ["TREND", "SHORT", "MISSING"])

        assert [r.symbol for r in results] == ["TREND", "SHORT", "MISSING"]
        assert results[0].succeeded
        assert not results[1].succeeded
        assert "InsufficientDataError" in results[1].error
        assert not results[2].succeeded

    def test_unopened_source_fails_every_symbol(self, service, trending_bars):
        results = service.batch_predict(InMemoryBarSource(trending_bars), ["TREND"])
        assert not results[0].succeeded


class TestFromSaved:
    """Tests for loading a service from a saved training run."""

    def test_round_trip(self, tmp_path, processed_trend, small_feature_settings, fast_training_settings, trending_bars):
        orchestrator = TrainingOrchestrator(
            MeanRegressor,
            fast_training_settings,
            label_normalizer=processed_trend.label_normalizer,
            models_dir=tmp_path,
        )
        orchestrator.train(processed_trend.dataset)
        orchestrator.evaluate()
        orchestrator.save("trend", processed_trend.feature_normalizer)

        pipeline = FeaturePipeline(small_feature_settings)
        loaded = ForecastService.from_saved("trend", tmp_path, MeanRegressor, pipeline)
        direct = ForecastService(
            orchestrator.model,
            pipeline,
            processed_trend.feature_normalizer,
            processed_trend.label_normalizer,
        )
        np.testing.assert_allclose(loaded.predict(trending_bars).prices, direct.predict(trending_bars).prices)
