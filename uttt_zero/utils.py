"""Utility helpers shared by the search and training pipelines."""
from __future__ import annotations

import random
import threading
from collections import deque
from typing import Deque, Iterable, List, Optional, Sequence

import numpy as np
import torch

from .estimator import TrainingExample


def set_random_seeds(seed: int) -> None:
    random.seed(seed)
    np.random.seed(seed % (2**32))
    torch.manual_seed(seed)


def masked_distribution(values: np.ndarray, legal: Sequence[int], size: int) -> np.ndarray:
    """Restrict ``values`` to the ``legal`` indices and renormalise.

    Falls back to a uniform distribution over ``legal`` when the legal mass is
    zero (or not finite).
    """

    out = np.zeros(size, dtype=np.float64)
    if len(legal) == 0:
        return out
    idx = np.asarray(legal, dtype=np.int64)
    picked = np.clip(np.asarray(values, dtype=np.float64)[idx], 0.0, None)
    total = picked.sum()
    if not np.isfinite(total) or total <= 0:
        out[idx] = 1.0 / idx.size
    else:
        out[idx] = picked / total
    return out


class ReplayBuffer:
    """A bounded FIFO replay buffer for AlphaZero-style training.

    ``append``/``extend`` are safe to call from several self-play workers at
    once.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._storage: Deque[TrainingExample] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._storage)

    def append(self, sample: TrainingExample) -> None:
        with self._lock:
            self._storage.append(sample)

    def extend(self, samples: Iterable[TrainingExample]) -> None:
        with self._lock:
            self._storage.extend(samples)

    def snapshot(self) -> List[TrainingExample]:
        with self._lock:
            return list(self._storage)

    def batches(self, batch_size: int, rng: Optional[np.random.Generator] = None) -> List[List[TrainingExample]]:
        """Shuffle the buffered examples and split them into batches.

        The last batch may be smaller than ``batch_size``.
        """

        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        rng = rng or np.random.default_rng()
        data = self.snapshot()
        order = rng.permutation(len(data))
        return [
            [data[int(i)] for i in order[start : start + batch_size]]
            for start in range(0, len(data), batch_size)
        ]


__all__ = [
    "ReplayBuffer",
    "masked_distribution",
    "set_random_seeds",
]
