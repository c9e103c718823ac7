"""
Feature engineering for the forecasting pipeline.

Base features, technical indicators, cleaning, labels, normalization and
the pipeline that chains them.
"""

from .basic import BASE_FEATURE_NAMES, BasicFeatureExtractor, FeatureMatrix
from .cleaning import OutlierCleaner
from .denormalization import PredictionDenormalizer, PricePathMode
from .feature_pipeline import FeaturePipeline, ProcessedData
from .labels import LabelBuilder
from .normalization import MinMaxNormalizer, NormalizerState, NormalizerStore
from .technical import (
    EMA,
    INDICATOR_FEATURE_NAMES,
    RSI,
    SMA,
    VWAP,
    BollingerPosition,
    Momentum,
    PriceAcceleration,
    RangeVolatility,
    TechnicalIndicator,
    TechnicalIndicatorAugmenter,
    default_indicators,
)

__all__ = [
    "BASE_FEATURE_NAMES",
    "INDICATOR_FEATURE_NAMES",
    "BasicFeatureExtractor",
    "FeatureMatrix",
    "TechnicalIndicator",
    "TechnicalIndicatorAugmenter",
    "SMA",
    "EMA",
    "RSI",
    "VWAP",
    "BollingerPosition",
    "Momentum",
    "PriceAcceleration",
    "RangeVolatility",
    "default_indicators",
    "OutlierCleaner",
    "LabelBuilder",
    "MinMaxNormalizer",
    "NormalizerState",
    "NormalizerStore",
    "PredictionDenormalizer",
    "PricePathMode",
    "FeaturePipeline",
    "ProcessedData",
]
