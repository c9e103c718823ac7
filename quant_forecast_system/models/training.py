"""
Training loop orchestration.

Drives a ``SequenceRegressor`` through a chronological split, a bounded
epoch loop, evaluation and persistence:

    INITIALIZED -> TRAINING -> EVALUATED -> SAVED

Any error raised while training or evaluating moves the orchestrator to
FAILED and is re-raised; model exceptions are wrapped in
``ExternalModelError``. Cross-validation builds a fresh model per fold and
skips folds with an empty partition.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import numpy as np

from quant_forecast_system.config.settings import TrainingSettings
from quant_forecast_system.core.exceptions import (
    ExternalModelError,
    ForecastSystemError,
    InsufficientDataError,
    NotFittedError,
    ShapeMismatchError,
)
from quant_forecast_system.core.reproducibility import fold_seed, seeded
from quant_forecast_system.data.windowing import BatchIterator, WindowedDataset
from quant_forecast_system.features.normalization import MinMaxNormalizer, NormalizerStore
from quant_forecast_system.models.base import SequenceRegressor
from quant_forecast_system.models.evaluation import RegressionMetrics, compute_metrics
from quant_forecast_system.models.splitting import SequentialKFold, SplitIndices, chronological_split
from quant_forecast_system.monitoring.logger import TrainingAuditLogger, log_model, log_training

logger = logging.getLogger(__name__)

ModelFactory = Callable[[], SequenceRegressor]


class OrchestratorState(str, Enum):
    """Lifecycle of one orchestrated training run."""

    INITIALIZED = "initialized"
    TRAINING = "training"
    EVALUATED = "evaluated"
    SAVED = "saved"
    FAILED = "failed"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StopReason(str, Enum):
    EPOCHS_EXHAUSTED = "epochs_exhausted"
    TIME_BUDGET = "time_budget"
    EARLY_STOPPED = "early_stopped"


# =============================================================================
# Results
# =============================================================================


@dataclass
class EpochRecord:
    """Losses measured after one epoch."""

    epoch: int
    train_loss: float | None
    validation_loss: float | None
    elapsed_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "epoch": self.epoch,
            "train_loss": self.train_loss,
            "validation_loss": self.validation_loss,
            "elapsed_seconds": self.elapsed_seconds,
        }


@dataclass
class TrainingRun:
    """Ordered per-epoch history bound to one model and one split."""

    model_name: str
    train_size: int
    validation_size: int
    requested_epochs: int
    max_epochs: int
    epochs: list[EpochRecord] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    stop_reason: StopReason | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def epochs_completed(self) -> int:
        return len(self.epochs)

    @property
    def loss_history(self) -> list[float]:
        """Training loss per epoch (empty when epoch loss is not computed)."""
        return [e.train_loss for e in self.epochs if e.train_loss is not None]

    @property
    def validation_history(self) -> list[float]:
        return [e.validation_loss for e in self.epochs if e.validation_loss is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "train_size": self.train_size,
            "validation_size": self.validation_size,
            "requested_epochs": self.requested_epochs,
            "max_epochs": self.max_epochs,
            "epochs_completed": self.epochs_completed,
            "status": self.status.value,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "epochs": [e.to_dict() for e in self.epochs],
        }


@dataclass
class EvaluationResult:
    """Metrics on both partitions, in label space and optionally ratio space."""

    train_metrics: RegressionMetrics
    test_metrics: RegressionMetrics
    test_predictions: np.ndarray
    train_ratio_metrics: RegressionMetrics | None = None
    test_ratio_metrics: RegressionMetrics | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "train": self.train_metrics.to_dict(),
            "test": self.test_metrics.to_dict(),
        }
        if self.train_ratio_metrics is not None:
            result["train_ratio"] = self.train_ratio_metrics.to_dict()
        if self.test_ratio_metrics is not None:
            result["test_ratio"] = self.test_ratio_metrics.to_dict()
        return result


@dataclass
class CrossValidationResult:
    """Per-fold validation losses and their aggregate."""

    fold_scores: list[float]
    scored_folds: list[int]
    skipped_folds: list[int]
    fold_runs: list[TrainingRun] = field(default_factory=list)

    @property
    def mean_score(self) -> float:
        return float(np.mean(self.fold_scores)) if self.fold_scores else float("nan")

    @property
    def std_score(self) -> float:
        """Sample standard deviation; 0 with fewer than two folds."""
        if len(self.fold_scores) < 2:
            return 0.0
        return float(np.std(self.fold_scores, ddof=1))

    def to_dict(self) -> dict[str, Any]:
        return {
            "fold_scores": self.fold_scores,
            "scored_folds": self.scored_folds,
            "skipped_folds": self.skipped_folds,
            "mean_score": self.mean_score,
            "std_score": self.std_score,
        }


# =============================================================================
# Orchestrator
# =============================================================================


class TrainingOrchestrator:
    """
    Runs split, epoch loop, evaluation and saving around an opaque model.

    Each epoch presents every training window once through ``fit`` (one call
    per batch), then optionally re-scores the training partition and scores
    the test partition. The epoch count is capped at ``max_epochs`` and the
    loop stops before starting an epoch once the wall-clock budget is spent.
    """

    def __init__(
        self,
        model_factory: ModelFactory,
        settings: TrainingSettings | None = None,
        label_normalizer: MinMaxNormalizer | None = None,
        models_dir: Path | str = "models",
        audit_logger: TrainingAuditLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            model_factory: Zero-argument callable returning a fresh model.
            settings: Training settings; defaults apply when omitted.
            label_normalizer: Fitted label normalizer, enabling metrics on
                denormalized change ratios.
            models_dir: Root directory for saved runs.
            audit_logger: Optional per-epoch JSONL audit trail.
            clock: Monotonic time source in seconds.
        """
        self.model_factory = model_factory
        self.settings = settings or TrainingSettings()
        self.label_normalizer = label_normalizer
        self.models_dir = Path(models_dir)
        self.audit_logger = audit_logger
        self._clock = clock

        self._state = OrchestratorState.INITIALIZED
        self._model: SequenceRegressor | None = None
        self._run: TrainingRun | None = None
        self._split: SplitIndices | None = None
        self._evaluation: EvaluationResult | None = None
        self._features: np.ndarray | None = None
        self._labels: np.ndarray | None = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def model(self) -> SequenceRegressor | None:
        return self._model

    @property
    def run(self) -> TrainingRun | None:
        return self._run

    @property
    def split(self) -> SplitIndices | None:
        return self._split

    @property
    def evaluation(self) -> EvaluationResult | None:
        return self._evaluation

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def train(self, dataset: WindowedDataset) -> TrainingRun:
        """Split the dataset chronologically and run the epoch loop.

        Raises:
            InsufficientDataError: Fewer than two windows, or an empty
                training partition.
            ShapeMismatchError: Paired windows are not ``(n, T, F)`` and
                ``(n, H)``.
            ExternalModelError: The model failed during fit or score.
        """
        self._state = OrchestratorState.TRAINING
        self._model = None
        self._evaluation = None
        self._run = None

        try:
            features, labels = self._paired(dataset)
            split = chronological_split(features.shape[0], self.settings.train_test_split)
            if split.train_size == 0:
                raise InsufficientDataError(
                    "Training partition is empty",
                    required=3,
                    available=features.shape[0],
                )
            self._features, self._labels, self._split = features, labels, split

            with seeded(self.settings.seed):
                self._model = self._create_model()
                self._run = TrainingRun(
                    model_name=self._model.name,
                    train_size=split.train_size,
                    validation_size=split.test_size,
                    requested_epochs=self.settings.epochs,
                    max_epochs=self.settings.max_epochs,
                )

                log_training(
                    f"Training {self._model.name} on {split.train_size} windows, testing on {split.test_size}",
                    model_name=self._model.name,
                    **split.to_dict(),
                )
                self._run_epochs(
                    self._model,
                    self._run,
                    features[split.train_indices],
                    labels[split.train_indices],
                    features[split.test_indices],
                    labels[split.test_indices],
                    seed=self.settings.seed,
                )
        except Exception as e:
            self._fail(e)
            raise

        return self._run

    def _run_epochs(
        self,
        model: SequenceRegressor,
        run: TrainingRun,
        train_X: np.ndarray,
        train_y: np.ndarray,
        val_X: np.ndarray,
        val_y: np.ndarray,
        seed: int | None,
    ) -> None:
        iterator = BatchIterator(
            train_X,
            train_y,
            batch_size=self.settings.batch_size,
            shuffle=self.settings.shuffle,
            seed=seed,
        )
        epochs = self.settings.effective_epochs
        if epochs < self.settings.epochs:
            logger.info(f"Requested {self.settings.epochs} epochs capped at {epochs}")

        budget = self.settings.time_budget_seconds
        patience = self.settings.patience
        best_loss = float("inf")
        stale_epochs = 0
        start = self._clock()
        run.stop_reason = StopReason.EPOCHS_EXHAUSTED

        for epoch in range(epochs):
            elapsed = self._clock() - start
            if epoch > 0 and budget is not None and elapsed >= budget:
                logger.warning(f"Time budget of {budget:.0f}s spent after {epoch} epochs; stopping")
                run.stop_reason = StopReason.TIME_BUDGET
                break

            for batch_X, batch_y in iterator:
                self._call_model(model, "fit", batch_X, batch_y)

            train_loss = self._mean_loss(model, iterator) if self.settings.compute_epoch_loss else None
            val_loss = self._call_model(model, "score", val_X, val_y) if len(val_X) else None
            record = EpochRecord(
                epoch=epoch,
                train_loss=train_loss,
                validation_loss=val_loss,
                elapsed_seconds=self._clock() - start,
            )
            run.epochs.append(record)

            logger.debug(
                f"Epoch {epoch + 1}/{epochs} - train_loss: {train_loss}, val_loss: {val_loss}",
                extra={"model_name": model.name, "extra_data": record.to_dict()},
            )
            if self.audit_logger is not None:
                self.audit_logger.log_epoch(
                    model.name, epoch, train_loss, val_loss, record.elapsed_seconds
                )

            if patience is not None and val_loss is not None:
                if val_loss < best_loss:
                    best_loss = val_loss
                    stale_epochs = 0
                else:
                    stale_epochs += 1
                    if stale_epochs >= patience:
                        logger.info(f"Early stopping at epoch {epoch + 1}")
                        run.stop_reason = StopReason.EARLY_STOPPED
                        break

        run.status = RunStatus.COMPLETED
        run.finished_at = datetime.now(timezone.utc)
        log_training(
            f"Training finished after {run.epochs_completed} epochs ({run.stop_reason.value})",
            model_name=model.name,
            loss_history=run.loss_history,
        )

    def _mean_loss(self, model: SequenceRegressor, iterator: BatchIterator) -> float:
        """Sample-weighted mean of the batch scores over one pass."""
        total = 0.0
        for batch_X, batch_y in iterator:
            total += self._call_model(model, "score", batch_X, batch_y) * len(batch_X)
        return total / iterator.total_examples

    # -------------------------------------------------------------------------
    # Evaluation and persistence
    # -------------------------------------------------------------------------

    def evaluate(self) -> EvaluationResult:
        """Metrics for the trained model on the train and test partitions.

        Raises:
            NotFittedError: If no training run has completed.
        """
        if self._run is None or self._run.status != RunStatus.COMPLETED or self._model is None:
            raise NotFittedError("training run")

        try:
            split = self._split
            train_X, train_y = self._features[split.train_indices], self._labels[split.train_indices]
            test_X, test_y = self._features[split.test_indices], self._labels[split.test_indices]

            train_pred = self._predict_all(self._model, train_X)
            test_pred = self._predict_all(self._model, test_X)

            result = EvaluationResult(
                train_metrics=compute_metrics(train_pred, train_y),
                test_metrics=compute_metrics(test_pred, test_y),
                test_predictions=test_pred,
            )
            if self.label_normalizer is not None:
                result.train_ratio_metrics = compute_metrics(
                    self.label_normalizer.inverse_transform(train_pred),
                    self.label_normalizer.inverse_transform(train_y),
                )
                result.test_ratio_metrics = compute_metrics(
                    self.label_normalizer.inverse_transform(test_pred),
                    self.label_normalizer.inverse_transform(test_y),
                )
        except Exception as e:
            self._fail(e)
            raise

        self._evaluation = result
        self._state = OrchestratorState.EVALUATED
        log_model(
            f"Evaluation of {self._model.name}: test MSE {result.test_metrics.mse:.6f}, "
            f"R2 {result.test_metrics.r2:.4f}",
            model_name=self._model.name,
            **result.to_dict(),
        )
        return result

    def save(
        self,
        model_id: str,
        feature_normalizer: MinMaxNormalizer | None = None,
        label_normalizer: MinMaxNormalizer | None = None,
    ) -> Path:
        """Persist the evaluated model, its normalizers and the run summary.

        Layout under ``<models_dir>/<model_id>/``: ``model.json`` plus the
        model artefact, the two normalizer files and ``training_run.json``.

        Raises:
            NotFittedError: If the run has not been evaluated.
        """
        if self._state not in (OrchestratorState.EVALUATED, OrchestratorState.SAVED):
            raise NotFittedError("evaluated training run")

        directory = self.models_dir / model_id
        self._model.save(directory / "model")

        label_normalizer = label_normalizer or self.label_normalizer
        if feature_normalizer is not None and label_normalizer is not None:
            NormalizerStore(self.models_dir).save(model_id, feature_normalizer, label_normalizer)

        with open(directory / "training_run.json", "w") as f:
            json.dump(
                {"run": self._run.to_dict(), "evaluation": self._evaluation.to_dict()},
                f,
                indent=2,
                default=str,
            )

        self._state = OrchestratorState.SAVED
        log_model(f"Saved training run {model_id} to {directory}", model_name=self._model.name, model_id=model_id)
        return directory

    # -------------------------------------------------------------------------
    # Cross-validation
    # -------------------------------------------------------------------------

    def cross_validate(self, dataset: WindowedDataset, n_folds: int | None = None) -> CrossValidationResult:
        """Sequential k-fold with a fresh model per fold.

        Folds with an empty train or validation partition are skipped and
        left out of the aggregate. Does not change the orchestrator state.

        Raises:
            InsufficientDataError: If no fold could be scored.
            ExternalModelError: The model failed in some fold.
        """
        features, labels = self._paired(dataset)
        cv = SequentialKFold(n_folds or self.settings.k_folds)
        result = CrossValidationResult(fold_scores=[], scored_folds=[], skipped_folds=[])

        for spec in cv.fold_specs(features.shape[0]):
            if not spec.is_usable:
                logger.warning(
                    f"Skipping fold {spec.fold_index}: empty partition",
                    extra={"extra_data": spec.to_dict()},
                )
                result.skipped_folds.append(spec.fold_index)
                continue

            seed = fold_seed(self.settings.seed, spec.fold_index)
            val_X = features[spec.validation_start : spec.validation_end]
            val_y = labels[spec.validation_start : spec.validation_end]
            with seeded(seed):
                model = self._create_model()
                run = TrainingRun(
                    model_name=model.name,
                    train_size=len(spec.train_indices),
                    validation_size=spec.validation_end - spec.validation_start,
                    requested_epochs=self.settings.epochs,
                    max_epochs=self.settings.max_epochs,
                )
                self._run_epochs(
                    model,
                    run,
                    features[spec.train_indices],
                    labels[spec.train_indices],
                    val_X,
                    val_y,
                    seed=seed,
                )
                score = self._call_model(model, "score", val_X, val_y)
            result.fold_scores.append(score)
            result.scored_folds.append(spec.fold_index)
            result.fold_runs.append(run)
            logger.info(f"Fold {spec.fold_index}: validation loss {score:.6f}")

        if not result.fold_scores:
            raise InsufficientDataError("No cross-validation fold could be scored", available=features.shape[0])

        log_training(
            f"Cross-validation: mean loss {result.mean_score:.6f} (std {result.std_score:.6f}) "
            f"over {len(result.fold_scores)} folds",
            **result.to_dict(),
        )
        return result

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _paired(dataset: WindowedDataset) -> tuple[np.ndarray, np.ndarray]:
        features, labels = dataset.paired()
        if features.ndim != 3 or labels.ndim != 2 or features.shape[0] != labels.shape[0]:
            raise ShapeMismatchError(
                "Paired windows must be (n, T, F) features and (n, H) labels",
                expected=(features.shape[0],),
                actual=(labels.shape[0],),
            )
        return features, labels

    def _create_model(self) -> SequenceRegressor:
        try:
            return self.model_factory()
        except ForecastSystemError:
            raise
        except Exception as e:
            raise ExternalModelError(f"Model construction failed: {e}", operation="create", cause=e) from e

    def _call_model(self, model: SequenceRegressor, operation: str, *args: np.ndarray) -> Any:
        """Invoke a contract method, wrapping foreign exceptions."""
        try:
            return getattr(model, operation)(*args)
        except ForecastSystemError:
            raise
        except Exception as e:
            raise ExternalModelError(
                f"Model {operation} failed: {e}",
                operation=operation,
                model_name=model.name,
                cause=e,
            ) from e

    def _predict_all(self, model: SequenceRegressor, features: np.ndarray) -> np.ndarray:
        if len(features) == 0:
            return np.empty((0, self._labels.shape[1]))
        size = self.settings.batch_size
        chunks = [
            self._call_model(model, "predict", features[i : i + size])
            for i in range(0, len(features), size)
        ]
        return np.concatenate(chunks, axis=0)

    def _fail(self, error: Exception) -> None:
        self._state = OrchestratorState.FAILED
        if self._run is not None:
            self._run.status = RunStatus.FAILED
            self._run.error = str(error)
            self._run.finished_at = datetime.now(timezone.utc)
        logger.error(f"Training run failed: {error}", exc_info=True)
