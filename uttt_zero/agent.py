"""Move policies used for gameplay and evaluation."""
from __future__ import annotations

import enum
from typing import Optional, Protocol

import numpy as np

from .estimator import Estimator
from .game import IllegalMoveError, Move, UltimateTicTacToe
from .mcts import MCTS, MCTSConfig


class MovePolicy(Protocol):
    """Anything that can pick a move for the player to move."""

    name: str

    def select_move(self, game: UltimateTicTacToe) -> Move:
        ...


class Difficulty(enum.Enum):
    EASY = 50
    MEDIUM = 200
    HARD = 500
    EXPERT = 1000

    @property
    def simulations(self) -> int:
        return self.value


class ZeroAgent:
    """Search-backed bot that always plays the most visited move."""

    def __init__(
        self,
        estimator: Estimator,
        simulations: int = Difficulty.MEDIUM.simulations,
        c_puct: float = 1.0,
        name: str = "AlphaZero",
    ) -> None:
        self.estimator = estimator
        self.simulations = simulations
        self.c_puct = c_puct
        self.name = f"{name} ({simulations} sims)"

    @classmethod
    def with_difficulty(cls, estimator: Estimator, difficulty: Difficulty, name: str = "AlphaZero") -> "ZeroAgent":
        return cls(estimator, simulations=difficulty.simulations, name=f"{name} {difficulty.name.title()}")

    def select_move(self, game: UltimateTicTacToe) -> Move:
        if game.is_terminal:
            raise IllegalMoveError("Game has already finished")
        mcts = MCTS(self.estimator, MCTSConfig(c_puct=self.c_puct, dirichlet_epsilon=0.0))
        return mcts.best_move(game, self.simulations)


class RandomAgent:
    """Uniformly random legal moves."""

    def __init__(self, rng: Optional[np.random.Generator] = None, name: str = "Random") -> None:
        self.rng = rng or np.random.default_rng()
        self.name = name

    def select_move(self, game: UltimateTicTacToe) -> Move:
        moves = game.legal_moves()
        if not moves:
            raise IllegalMoveError("Game has already finished")
        return moves[int(self.rng.integers(len(moves)))]


__all__ = ["Difficulty", "MovePolicy", "RandomAgent", "ZeroAgent"]
