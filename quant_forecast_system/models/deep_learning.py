"""
Deep learning sequence regressor using PyTorch.

Two stacked LSTM layers feed a dense layer and a linear head with one
output per horizon step. Each ``fit`` call is a single optimizer step on
the given batch; epochs and batching belong to the training orchestrator.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np
import torch
import torch.nn as nn

from quant_forecast_system.models.base import SequenceRegressor

logger = logging.getLogger(__name__)


def select_device(device: str | None = None) -> torch.device:
    """Use the requested device, or CUDA when available, else CPU."""
    if device is not None:
        return torch.device(device)
    if torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


class LSTMForecastNetwork(nn.Module):
    """Stacked LSTM network producing a horizon-length vector."""

    def __init__(
        self,
        input_size: int,
        output_size: int,
        layer1_size: int = 128,
        layer2_size: int = 64,
        dense_size: int = 32,
        dropout: float = 0.2,
    ):
        """
        Initialize LSTM network.

        Args:
            input_size: Number of input features
            output_size: Horizon length
            layer1_size: First LSTM hidden dimension
            layer2_size: Second LSTM hidden dimension
            dense_size: Width of the dense layer before the head
            dropout: Dropout rate after each LSTM and the dense layer
        """
        super().__init__()

        self.lstm1 = nn.LSTM(input_size=input_size, hidden_size=layer1_size, batch_first=True)
        self.lstm2 = nn.LSTM(input_size=layer1_size, hidden_size=layer2_size, batch_first=True)
        self.dropout = nn.Dropout(dropout)
        self.layer_norm = nn.LayerNorm(layer2_size)
        self.dense = nn.Linear(layer2_size, dense_size)
        self.activation = nn.ReLU()
        self.head = nn.Linear(dense_size, output_size)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Forward pass.

        Args:
            x: Input tensor of shape (batch, sequence, features)

        Returns:
            Output tensor of shape (batch, output_size)
        """
        out, _ = self.lstm1(x)
        out = self.dropout(out)
        out, _ = self.lstm2(out)

        # Take the last timestep output
        out = out[:, -1, :]

        out = self.layer_norm(out)
        out = self.dropout(self.activation(self.dense(out)))
        return self.head(out)


class LSTMRegressor(SequenceRegressor):
    """
    LSTM-based model for multi-step price-change prediction.

    The network is built on the first ``fit`` call, when the window shape
    and horizon are known.
    """

    ARTIFACT_SUFFIX = ".pt"

    def __init__(
        self,
        name: str = "lstm",
        version: str = "1.0.0",
        lstm_layer1_size: int = 128,
        lstm_layer2_size: int = 64,
        dense_layer_size: int = 32,
        learning_rate: float = 1e-3,
        dropout: float = 0.2,
        weight_decay: float = 1e-4,
        grad_clip: float = 1.0,
        device: str | None = None,
        **kwargs: Any,
    ):
        """
        Initialize LSTM model.

        Args:
            name: Model identifier
            version: Version string
            lstm_layer1_size: First LSTM hidden dimension
            lstm_layer2_size: Second LSTM hidden dimension
            dense_layer_size: Dense layer width
            learning_rate: Adam learning rate
            dropout: Dropout rate
            weight_decay: L2 penalty
            grad_clip: Max gradient norm
            device: Device to use (cuda/cpu/None for auto-detect)
            **kwargs: Additional parameters
        """
        super().__init__(
            name,
            version,
            lstm_layer1_size=lstm_layer1_size,
            lstm_layer2_size=lstm_layer2_size,
            dense_layer_size=dense_layer_size,
            learning_rate=learning_rate,
            dropout=dropout,
            weight_decay=weight_decay,
            grad_clip=grad_clip,
            **kwargs,
        )
        self.device = select_device(device)
        self._network: LSTMForecastNetwork | None = None
        self._optimizer: torch.optim.Optimizer | None = None
        self._criterion = nn.MSELoss()

    def _build_network(self, input_size: int, output_size: int) -> None:
        self._network = LSTMForecastNetwork(
            input_size=input_size,
            output_size=output_size,
            layer1_size=self._params["lstm_layer1_size"],
            layer2_size=self._params["lstm_layer2_size"],
            dense_size=self._params["dense_layer_size"],
            dropout=self._params["dropout"],
        ).to(self.device)
        self._optimizer = torch.optim.Adam(
            self._network.parameters(),
            lr=self._params["learning_rate"],
            weight_decay=self._params["weight_decay"],
        )
        logger.info(
            f"Built LSTM network on {self.device}",
            extra={"extra_data": {"input_size": input_size, "output_size": output_size}},
        )

    def _build(self, input_size: int, output_size: int) -> None:
        self._build_network(input_size, output_size)

    def fit(self, features: np.ndarray, labels: np.ndarray) -> "LSTMRegressor":
        """One Adam step on the batch's MSE loss."""
        features, labels = self._validate_batch(features, labels, check_fitted=False)
        if self._network is None:
            self._build_network(features.shape[2], labels.shape[1])

        batch_X = torch.as_tensor(features, dtype=torch.float32, device=self.device)
        batch_y = torch.as_tensor(labels, dtype=torch.float32, device=self.device)

        self._network.train()
        self._optimizer.zero_grad(set_to_none=True)
        loss = self._criterion(self._network(batch_X), batch_y)
        loss.backward()
        torch.nn.utils.clip_grad_norm_(self._network.parameters(), max_norm=self._params["grad_clip"])
        self._optimizer.step()

        self._record_update(features, labels)
        return self

    def predict(self, features: np.ndarray) -> np.ndarray:
        features, _ = self._validate_batch(features)
        self._network.eval()
        with torch.no_grad():
            outputs = self._network(torch.as_tensor(features, dtype=torch.float32, device=self.device))
        return outputs.cpu().numpy().astype(np.float64)

    def _save_artifact(self, path: Path) -> None:
        torch.save(
            {
                "state_dict": self._network.state_dict(),
                "input_size": self._input_shape[1],
                "output_size": self._output_size,
            },
            path,
        )

    def _load_artifact(self, path: Path) -> None:
        checkpoint = torch.load(path, map_location=self.device, weights_only=True)
        self._build_network(checkpoint["input_size"], checkpoint["output_size"])
        self._network.load_state_dict(checkpoint["state_dict"])
        self._network.eval()
