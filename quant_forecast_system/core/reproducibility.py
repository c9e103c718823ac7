"""
Scoped seeding for training runs and cross-validation folds.

A training run (and every cross-validation fold) seeds the python, numpy
and torch generators when it starts and hands their previous state back when
it ends. Two runs with the same seed therefore build identical models no
matter what drew random numbers before them, and the caller's generators are
left as they were.
"""

from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

import numpy as np
import torch

logger = logging.getLogger(__name__)


@dataclass
class RngSnapshot:
    """Saved state of every generator a run may draw from."""

    python_state: tuple[Any, ...]
    numpy_state: Any
    torch_state: torch.Tensor
    cuda_states: list[torch.Tensor] | None
    deterministic: bool
    deterministic_warn_only: bool
    cudnn_deterministic: bool
    cudnn_benchmark: bool

    @classmethod
    def capture(cls) -> "RngSnapshot":
        return cls(
            python_state=random.getstate(),
            numpy_state=np.random.get_state(),
            torch_state=torch.get_rng_state(),
            cuda_states=torch.cuda.get_rng_state_all() if torch.cuda.is_available() else None,
            deterministic=torch.are_deterministic_algorithms_enabled(),
            deterministic_warn_only=torch.is_deterministic_algorithms_warn_only_enabled(),
            cudnn_deterministic=torch.backends.cudnn.deterministic,
            cudnn_benchmark=torch.backends.cudnn.benchmark,
        )

    def restore(self) -> None:
        random.setstate(self.python_state)
        np.random.set_state(self.numpy_state)
        torch.set_rng_state(self.torch_state)
        if self.cuda_states is not None:
            torch.cuda.set_rng_state_all(self.cuda_states)
        torch.use_deterministic_algorithms(self.deterministic, warn_only=self.deterministic_warn_only)
        torch.backends.cudnn.deterministic = self.cudnn_deterministic
        torch.backends.cudnn.benchmark = self.cudnn_benchmark


def apply_seed(seed: int, deterministic_torch: bool = True) -> None:
    """Seed python, numpy and torch (all CUDA devices included)."""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)

    if deterministic_torch:
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False
        # warn_only: some kernels have no deterministic variant
        torch.use_deterministic_algorithms(True, warn_only=True)


@contextmanager
def seeded(seed: int | None, deterministic_torch: bool = True) -> Iterator[int | None]:
    """Run a block under ``seed`` and restore the generators afterwards.

    Args:
        seed: Seed for the block. ``None`` leaves the generators untouched.
        deterministic_torch: Request deterministic torch kernels inside the
            block.

    Yields:
        The seed in effect.
    """
    if seed is None:
        yield None
        return

    snapshot = RngSnapshot.capture()
    apply_seed(seed, deterministic_torch)
    logger.debug(f"Seeded generators with {seed}")
    try:
        yield seed
    finally:
        snapshot.restore()


def fold_seed(seed: int | None, fold_index: int) -> int | None:
    """Seed of one cross-validation fold: the run seed offset by the fold index."""
    if seed is None:
        return None
    return int(seed) + int(fold_index)
