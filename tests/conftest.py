from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np
import pytest

from uttt_zero.estimator import Estimator, EstimatorPredictionError, TrainingExample, check_planes
from uttt_zero.game import Move, UltimateTicTacToe


class FixedEstimator(Estimator):
    """Returns the same value and policy for every position."""

    def __init__(self, value: float = 0.0, policy: Optional[np.ndarray] = None) -> None:
        self.value = value
        self.policy = np.full(81, 1.0 / 81) if policy is None else np.asarray(policy, dtype=np.float64)
        self.calls = 0
        self.trained: List[int] = []

    def predict(self, planes: np.ndarray) -> Tuple[float, np.ndarray]:
        check_planes(planes)
        self.calls += 1
        return self.value, self.policy.copy()

    def train(self, batch: Sequence[TrainingExample]) -> float:
        self.trained.append(len(batch))
        return 0.5

    def save(self, path) -> None:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write("fixed")

    def load(self, path) -> None:
        pass


class BrokenEstimator(FixedEstimator):
    def predict(self, planes: np.ndarray) -> Tuple[float, np.ndarray]:
        raise EstimatorPredictionError("simulated failure")


@pytest.fixture
def fixed_estimator():
    return FixedEstimator


@pytest.fixture
def broken_estimator():
    return BrokenEstimator


@pytest.fixture
def near_win_state() -> UltimateTicTacToe:
    """X owns sub-boards (0,0) and (0,1) and can finish (0,2) with cell (0,2)."""

    boards = [[" "] * 9 for _ in range(9)]
    boards[0] = ["X", "X", "X", "O", "O", " ", " ", " ", " "]
    boards[1] = ["X", "O", " ", "O", "X", " ", " ", " ", "X"]
    boards[2] = ["X", "X", " ", " ", " ", " ", " ", " ", " "]
    boards[4] = ["O", "O", " ", " ", " ", " ", " ", " ", " "]
    boards[5] = [" ", " ", " ", "O", " ", " ", " ", " ", " "]
    macro = ["X", "X", " ", " ", " ", " ", " ", " ", " "]
    return UltimateTicTacToe(
        boards=tuple(tuple(board) for board in boards),
        macro_board=tuple(macro),
        to_move="X",
        required=(0, 2),
    )


WINNING_MOVE = Move(0, 2, 0, 2)


def random_playout(rng: np.random.Generator, max_plies: int = 200) -> List[UltimateTicTacToe]:
    state = UltimateTicTacToe()
    states = [state]
    while not state.is_terminal and len(states) <= max_plies:
        moves = state.legal_moves()
        state = state.apply(moves[int(rng.integers(len(moves)))])
        states.append(state)
    return states


@pytest.fixture
def playout():
    return random_playout


@pytest.fixture
def winning_move() -> Move:
    return WINNING_MOVE
