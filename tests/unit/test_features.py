"""
Unit tests for features/basic.py and features/technical.py
"""

from datetime import datetime

import numpy as np
import polars as pl
import pytest

from quant_forecast_system.core.data_types import Bar, bars_to_frame
from quant_forecast_system.core.exceptions import InvalidInputError, ShapeMismatchError
from quant_forecast_system.features.basic import BASE_FEATURE_NAMES, BasicFeatureExtractor, FeatureMatrix
from quant_forecast_system.features.technical import (
    EMA,
    INDICATOR_FEATURE_NAMES,
    RSI,
    SMA,
    VWAP,
    BollingerPosition,
    Momentum,
    PriceAcceleration,
    RangeVolatility,
    TechnicalIndicatorAugmenter,
)


class TestFeatureMatrix:
    """Tests for FeatureMatrix."""

    def test_default_names(self):
        matrix = FeatureMatrix(np.zeros((2, 3)))
        assert matrix.names == ["f0", "f1", "f2"]

    def test_rejects_non_2d(self):
        with pytest.raises(InvalidInputError):
            FeatureMatrix(np.zeros(3))

    def test_rejects_name_count_mismatch(self):
        with pytest.raises(InvalidInputError):
            FeatureMatrix(np.zeros((2, 3)), names=["a"])


class TestBasicFeatureExtractor:
    """Tests for BasicFeatureExtractor."""

    def test_shape_and_names(self, trending_bars):
        matrix = BasicFeatureExtractor().extract(trending_bars)
        assert matrix.values.shape == (100, 12)
        assert matrix.names == BASE_FEATURE_NAMES
        assert matrix.values.dtype == np.float64

    def test_first_row_ratios_are_zero(self, trending_bars):
        matrix = BasicFeatureExtractor().extract(trending_bars)
        assert matrix.column("close_change_ratio")[0] == 0.0
        assert matrix.column("volume_change_ratio")[0] == 0.0

    def test_prev_close_ratio_uses_bar_field_on_first_row(self):
        """The previous-close ratio needs no predecessor row."""
        bar = Bar(
            symbol="ONE",
            timestamp=datetime(2024, 1, 2, 9, 30),
            open=10.5,
            high=11.5,
            low=10.0,
            close=11.0,
            volume=100.0,
            prev_close=10.0,
        )
        matrix = BasicFeatureExtractor().extract([bar])
        assert matrix.column("prev_close_ratio")[0] == pytest.approx(0.1)

    def test_prev_close_ratio_without_source_value(self, trending_bars):
        """Missing prev_close falls back to the bar's own close on row 0."""
        matrix = BasicFeatureExtractor().extract(trending_bars)
        assert matrix.column("prev_close_ratio")[0] == 0.0
        assert matrix.column("prev_close_ratio")[1] == pytest.approx(0.01)

    def test_ratio_values(self, trending_bars):
        matrix = BasicFeatureExtractor().extract(trending_bars)
        assert matrix.column("close_change_ratio")[1] == pytest.approx(0.01)
        assert matrix.column("volume_change_ratio")[1] == pytest.approx(10.0 / 1001.0)
        assert matrix.column("range_ratio")[0] == pytest.approx(1.0 / 99.5)
        assert matrix.column("prev_close_ratio")[1] == pytest.approx(0.01)
        assert matrix.column("average_price")[0] == pytest.approx(99.75)
        assert matrix.column("log_volume")[0] == pytest.approx(np.log1p(1000.0))

    def test_zero_volume_average_price_is_close(self, trending_bars):
        bars = [bar.model_copy(update={"volume": 0.0}) for bar in trending_bars[:3]]
        matrix = BasicFeatureExtractor().extract(bars)
        np.testing.assert_allclose(matrix.column("average_price"), [100.0, 101.0, 102.0])

    def test_suspension_flag(self, trending_bars):
        bars = list(trending_bars[:3])
        bars[1] = bars[1].model_copy(update={"is_suspended": True})
        np.testing.assert_array_equal(BasicFeatureExtractor().extract(bars).column("is_suspended"), [0, 1, 0])

    def test_empty_bars_rejected(self):
        with pytest.raises(InvalidInputError):
            BasicFeatureExtractor().extract([])

    def test_unordered_bars_rejected(self, trending_bars):
        with pytest.raises(InvalidInputError):
            BasicFeatureExtractor().extract([trending_bars[1], trending_bars[0]])


class TestTrendIndicators:
    """Tests for SMA, EMA and VWAP."""

    def test_sma_warmup_is_close(self, trending_bars):
        result = SMA(5).compute(bars_to_frame(trending_bars))["sma_5"]
        np.testing.assert_allclose(result[:4], [100.0, 101.0, 102.0, 103.0])
        assert result[4] == pytest.approx(102.0)

    def test_ema_seeded_with_first_close(self):
        result = EMA(3).compute(pl.DataFrame({"close": [10.0, 20.0]}))["ema_3"]
        assert result[0] == 10.0
        assert result[1] == pytest.approx(15.0)

    def test_vwap(self, trending_bars):
        df = bars_to_frame(trending_bars)
        result = VWAP(5).compute(df)["vwap_5"]
        expected = df["amount"][:5].sum() / df["volume"][:5].sum()
        assert result[4] == pytest.approx(expected)
        assert result[0] == 100.0

    def test_missing_column_rejected(self):
        with pytest.raises(InvalidInputError):
            SMA(5).compute(pl.DataFrame({"open": [1.0]}))


class TestMomentumIndicators:
    """Tests for RSI, Momentum and PriceAcceleration."""

    def test_rsi_warmup_reads_50(self, trending_bars):
        result = RSI(14).compute(bars_to_frame(trending_bars))["rsi_14"]
        np.testing.assert_array_equal(result[:14], 50.0)

    def test_rsi_without_losses(self, trending_bars):
        """No losses caps the relative strength at 100."""
        result = RSI(14).compute(bars_to_frame(trending_bars))["rsi_14"]
        np.testing.assert_allclose(result[14:], 100.0 - 100.0 / 101.0)

    def test_rsi_short_series(self):
        result = RSI(14).compute(pl.DataFrame({"close": [1.0, 2.0, 3.0]}))["rsi_14"]
        np.testing.assert_array_equal(result, 50.0)

    def test_rsi_wilder_smoothing(self):
        close = [10.0, 11.0, 10.0, 11.0]
        result = RSI(2).compute(pl.DataFrame({"close": close}))["rsi_2"]
        # seed: gain 0.5, loss 0.5 -> 50; next: gain (0.5 + 1) / 2, loss 0.5 / 2
        assert result[2] == pytest.approx(50.0)
        assert result[3] == pytest.approx(100.0 - 100.0 / (1.0 + 0.75 / 0.25))

    def test_momentum(self, trending_bars):
        result = Momentum(10).compute(bars_to_frame(trending_bars))["momentum_10"]
        np.testing.assert_array_equal(result[:10], 0.0)
        assert result[10] == pytest.approx(0.1)

    def test_acceleration_of_linear_series_is_zero(self, trending_bars):
        result = PriceAcceleration().compute(bars_to_frame(trending_bars))["acceleration_3"]
        np.testing.assert_allclose(result, 0.0, atol=1e-12)

    def test_acceleration_value(self):
        result = PriceAcceleration().compute(pl.DataFrame({"close": [10.0, 11.0, 13.0]}))["acceleration_3"]
        assert result[2] == pytest.approx(0.1)


class TestVolatilityIndicators:
    """Tests for BollingerPosition and RangeVolatility."""

    def test_bollinger_flat_window_is_zero(self):
        result = BollingerPosition(20).compute(pl.DataFrame({"close": [5.0] * 25}))["bollinger_position_20"]
        np.testing.assert_array_equal(result, 0.0)

    def test_bollinger_position(self, trending_bars):
        df = bars_to_frame(trending_bars)
        result = BollingerPosition(20).compute(df)["bollinger_position_20"]
        window = df["close"].to_numpy()[:20]
        expected = (window[-1] - window.mean()) / (2 * window.std())
        np.testing.assert_array_equal(result[:19], 0.0)
        assert result[19] == pytest.approx(expected)

    def test_range_volatility(self, trending_bars):
        result = RangeVolatility(10).compute(bars_to_frame(trending_bars))["volatility_10"]
        np.testing.assert_array_equal(result[:9], 0.0)
        assert result[9] == pytest.approx((109.25 - 99.25) / 109.0)


class TestTechnicalIndicatorAugmenter:
    """Tests for TechnicalIndicatorAugmenter."""

    def test_appends_indicator_columns(self, trending_bars):
        base = BasicFeatureExtractor().extract(trending_bars)
        augmented = TechnicalIndicatorAugmenter().augment(base, trending_bars)
        assert augmented.values.shape == (100, 20)
        assert augmented.names == BASE_FEATURE_NAMES + INDICATOR_FEATURE_NAMES
        np.testing.assert_array_equal(augmented.values[:, :12], base.values)

    def test_base_matrix_not_modified(self, trending_bars):
        base = BasicFeatureExtractor().extract(trending_bars)
        before = base.values.copy()
        TechnicalIndicatorAugmenter().augment(base, trending_bars)
        np.testing.assert_array_equal(base.values, before)

    def test_row_mismatch_rejected(self, trending_bars):
        base = BasicFeatureExtractor().extract(trending_bars)
        with pytest.raises(ShapeMismatchError):
            TechnicalIndicatorAugmenter().augment(base, trending_bars[:-1])

    def test_no_indicators(self, trending_bars):
        base = BasicFeatureExtractor().extract(trending_bars)
        augmented = TechnicalIndicatorAugmenter(indicators=[]).augment(base, trending_bars)
        assert augmented.names == BASE_FEATURE_NAMES
