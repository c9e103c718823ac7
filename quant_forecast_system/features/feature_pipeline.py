"""
Feature pipeline orchestration.

Provides:
- The fit path: bars -> base features -> indicators -> cleaning -> labels ->
  normalization (feature and label normalizers fitted separately) -> windows
- The inference path: the same feature stages with already fitted
  normalizers, never refitting on inference data
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from quant_forecast_system.config.settings import FeatureSettings
from quant_forecast_system.core.data_types import Bar, bars_to_frame, validate_bar_sequence
from quant_forecast_system.core.exceptions import (
    InsufficientDataError,
    InvalidInputError,
    NotFittedError,
)
from quant_forecast_system.data.windowing import WindowDatasetBuilder, WindowedDataset
from quant_forecast_system.features.basic import BasicFeatureExtractor, FeatureMatrix
from quant_forecast_system.features.cleaning import OutlierCleaner
from quant_forecast_system.features.labels import LabelBuilder
from quant_forecast_system.features.normalization import MinMaxNormalizer
from quant_forecast_system.features.technical import TechnicalIndicatorAugmenter
from quant_forecast_system.monitoring.logger import log_data

logger = logging.getLogger(__name__)


@dataclass
class ProcessedData:
    """Output of the fit path."""

    dataset: WindowedDataset
    feature_normalizer: MinMaxNormalizer
    label_normalizer: MinMaxNormalizer
    feature_names: list[str]
    label_rows: int
    anchor_closes: np.ndarray
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def last_close(self) -> float:
        return float(self.metadata["last_close"])

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_windows": self.dataset.n_feature_windows,
            "label_windows": self.dataset.n_label_windows,
            "time_steps": self.dataset.time_steps,
            "n_features": len(self.feature_names),
            "label_rows": self.label_rows,
            **self.metadata,
        }


class FeaturePipeline:
    """Runs every feature stage for one instrument's bar sequence."""

    def __init__(
        self,
        settings: FeatureSettings | None = None,
        extractor: BasicFeatureExtractor | None = None,
        augmenter: TechnicalIndicatorAugmenter | None = None,
    ):
        self.settings = settings or FeatureSettings()
        self.extractor = extractor or BasicFeatureExtractor()
        self.augmenter = augmenter or TechnicalIndicatorAugmenter()
        self.cleaner = OutlierCleaner(self.settings.outlier_threshold)
        self.label_builder = LabelBuilder(self.settings.predict_steps)
        self.window_builder = WindowDatasetBuilder(self.settings.time_steps)

    def new_normalizer(self) -> MinMaxNormalizer:
        return MinMaxNormalizer(
            target_min=self.settings.normalizer_target_min,
            target_max=self.settings.normalizer_target_max,
            per_column=self.settings.per_column_normalization,
        )

    def build_features(self, bars: Sequence[Bar]) -> FeatureMatrix:
        """Base features plus indicators, cleaned. One row per bar."""
        validate_bar_sequence(bars)
        df = bars_to_frame(bars)
        base = self.extractor.extract_frame(df)
        augmented = self.augmenter.augment(base, df)
        return augmented.with_values(self.cleaner.clean(augmented.values))

    def process(self, bars: Sequence[Bar]) -> ProcessedData:
        """Fit path: features, labels, fresh normalizers and windows.

        Raises:
            InvalidInputError: If ``bars`` is empty or out of order, or if a
                non-finite close leaves NaN or Inf in the labels.
            InsufficientDataError: If there are no more bars than the horizon.
        """
        features = self.build_features(bars)
        close = np.array([bar.close for bar in bars], dtype=np.float64)
        labels = self.label_builder.build_from_close(close)

        # Labels are never repaired: a missing close has no meaningful forward return
        bad_rows = np.flatnonzero(~np.all(np.isfinite(labels), axis=1))
        if bad_rows.size:
            raise InvalidInputError(
                f"Labels contain NaN or Inf in {bad_rows.size} rows; "
                f"check close prices near row {int(bad_rows[0])}",
                field_name="close",
                details={"symbol": bars[0].symbol, "label_rows": bad_rows[:20].tolist()},
            )

        feature_normalizer = self.new_normalizer()
        label_normalizer = MinMaxNormalizer(
            target_min=self.settings.normalizer_target_min,
            target_max=self.settings.normalizer_target_max,
        )
        normalized_features = feature_normalizer.fit_transform(features.values)
        normalized_labels = label_normalizer.fit_transform(labels)

        dataset = self.window_builder.build(normalized_features, normalized_labels)

        log_data(
            f"Processed {len(bars)} bars into {dataset.n_samples} training windows",
            symbol=bars[0].symbol,
            feature_windows=dataset.n_feature_windows,
            label_windows=dataset.n_label_windows,
            time_steps=self.settings.time_steps,
            horizon=self.settings.predict_steps,
        )

        return ProcessedData(
            dataset=dataset,
            feature_normalizer=feature_normalizer,
            label_normalizer=label_normalizer,
            feature_names=features.names,
            label_rows=labels.shape[0],
            anchor_closes=self.label_builder.anchor_closes(close),
            metadata={
                "symbol": bars[0].symbol,
                "n_bars": len(bars),
                "last_close": float(close[-1]),
                "last_timestamp": bars[-1].timestamp.isoformat(),
            },
        )

    def transform_for_inference(
        self,
        bars: Sequence[Bar],
        feature_normalizer: MinMaxNormalizer,
    ) -> np.ndarray:
        """Feature windows for ``bars`` scaled with an already fitted normalizer.

        Raises:
            NotFittedError: If the normalizer has not been fitted.
            InsufficientDataError: If fewer than ``time_steps`` bars are given.
        """
        if not feature_normalizer.is_fitted:
            raise NotFittedError("feature normalizer")
        if len(bars) < self.settings.time_steps:
            raise InsufficientDataError(
                f"Need at least {self.settings.time_steps} bars for one window, got {len(bars)}",
                required=self.settings.time_steps,
                available=len(bars),
            )
        features = self.build_features(bars)
        windows = self.window_builder.feature_windows(feature_normalizer.transform(features.values))
        logger.debug(f"Built {windows.shape[0]} inference windows for {bars[0].symbol}")
        return windows
