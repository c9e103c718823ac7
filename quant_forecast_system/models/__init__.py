"""
Models layer for the forecasting pipeline.

Contains the sequence-regression contract and its implementations,
splitting, the training orchestrator, evaluation metrics and inference.
"""

from .base import SequenceRegressor
from .classical_ml import SGDSequenceRegressor
from .deep_learning import LSTMForecastNetwork, LSTMRegressor, select_device
from .evaluation import (
    RegressionMetrics,
    compute_metrics,
    directional_accuracy,
    mae,
    mape,
    mse,
    r2,
    rmse,
)
from .factory import MODEL_CLASSES, create_model, model_class, model_factory
from .prediction import ForecastService, PricePrediction, SymbolPrediction
from .splitting import FoldSpec, SequentialKFold, SplitIndices, chronological_split
from .training import (
    CrossValidationResult,
    EpochRecord,
    EvaluationResult,
    OrchestratorState,
    RunStatus,
    StopReason,
    TrainingOrchestrator,
    TrainingRun,
)

__all__ = [
    # Contract and implementations
    "SequenceRegressor",
    "LSTMRegressor",
    "LSTMForecastNetwork",
    "SGDSequenceRegressor",
    "select_device",
    "MODEL_CLASSES",
    "create_model",
    "model_class",
    "model_factory",
    # Splitting
    "SplitIndices",
    "FoldSpec",
    "SequentialKFold",
    "chronological_split",
    # Training
    "TrainingOrchestrator",
    "TrainingRun",
    "EpochRecord",
    "EvaluationResult",
    "CrossValidationResult",
    "OrchestratorState",
    "RunStatus",
    "StopReason",
    # Evaluation
    "RegressionMetrics",
    "compute_metrics",
    "mse",
    "mae",
    "rmse",
    "mape",
    "r2",
    "directional_accuracy",
    # Inference
    "ForecastService",
    "PricePrediction",
    "SymbolPrediction",
]
