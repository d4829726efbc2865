"""Value/policy estimator interface used by the search and the trainer."""
from __future__ import annotations

import abc
import json
import os
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np

from .features import FEATURE_CHANNELS
from .game import NUM_ACTIONS

PathLike = Union[str, "os.PathLike[str]"]

PLANES_SHAPE = (FEATURE_CHANNELS, 9, 9)


class EstimatorIOError(IOError):
    """Raised when estimator parameters cannot be saved or loaded."""


class EstimatorPredictionError(RuntimeError):
    """Raised for malformed estimator input or a numerically broken output."""


@dataclass
class TrainingExample:
    planes: np.ndarray  # (C, 9, 9), encoded from the mover's point of view
    policy: np.ndarray  # (81,) search visit distribution in action order
    value: float  # final result from the mover's point of view


def check_planes(planes: np.ndarray) -> np.ndarray:
    arr = np.asarray(planes, dtype=np.float32)
    if arr.shape != PLANES_SHAPE:
        raise EstimatorPredictionError(
            f"expected planes of shape {PLANES_SHAPE}, got {tuple(arr.shape)}"
        )
    if not np.all(np.isfinite(arr)):
        raise EstimatorPredictionError("planes contain non-finite values")
    return arr


class Estimator(abc.ABC):
    """Pluggable predictor of a position's value and move distribution.

    ``predict`` returns the value from the point of view of the player to move
    and a probability vector over all 81 actions; masking illegal actions is
    left to the caller.
    """

    @abc.abstractmethod
    def predict(self, planes: np.ndarray) -> Tuple[float, np.ndarray]:
        ...

    @abc.abstractmethod
    def train(self, batch: Sequence[TrainingExample]) -> float:
        ...

    @abc.abstractmethod
    def save(self, path: PathLike) -> None:
        ...

    @abc.abstractmethod
    def load(self, path: PathLike) -> None:
        ...


class UniformEstimator(Estimator):
    """Parameter-free estimator: value 0 and a uniform policy everywhere."""

    FORMAT = "uttt-zero-uniform"
    VERSION = 1

    def predict(self, planes: np.ndarray) -> Tuple[float, np.ndarray]:
        check_planes(planes)
        return 0.0, np.full(NUM_ACTIONS, 1.0 / NUM_ACTIONS, dtype=np.float64)

    def train(self, batch: Sequence[TrainingExample]) -> float:
        return 0.0

    def save(self, path: PathLike) -> None:
        try:
            directory = os.path.dirname(os.fspath(path))
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as fh:
                json.dump({"format": self.FORMAT, "version": self.VERSION}, fh)
        except OSError as exc:
            raise EstimatorIOError(f"could not save estimator to {path}: {exc}") from exc

    def load(self, path: PathLike) -> None:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise EstimatorIOError(f"could not load estimator from {path}: {exc}") from exc
        if not isinstance(data, dict) or data.get("format") != self.FORMAT:
            raise EstimatorIOError(f"{path} is not a uniform estimator file")
        if data.get("version") != self.VERSION:
            raise EstimatorIOError(f"unsupported uniform estimator version {data.get('version')!r}")


__all__ = [
    "Estimator",
    "EstimatorIOError",
    "EstimatorPredictionError",
    "PLANES_SHAPE",
    "TrainingExample",
    "UniformEstimator",
    "check_planes",
]
