"""Self-play data generation for the AlphaZero-style agent."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .estimator import TrainingExample
from .features import encode_state
from .game import Move, Player, UltimateTicTacToe
from .mcts import MCTS
from .symmetry import SYMMETRIES

__all__ = [
    "SelfPlayGame",
    "augment_examples",
    "play_game",
    "select_action",
]

GREEDY_TEMPERATURE = 1e-6


@dataclass
class SelfPlayGame:
    """A finished self-play game and the examples it produced."""

    examples: List[TrainingExample] = field(default_factory=list)
    movers: List[Player] = field(default_factory=list)
    moves: List[Move] = field(default_factory=list)
    final_state: UltimateTicTacToe = field(default_factory=UltimateTicTacToe)

    @property
    def plies(self) -> int:
        return len(self.moves)

    @property
    def winner(self) -> Optional[Player]:
        return self.final_state.winner


def select_action(
    probs: np.ndarray,
    legal: Sequence[int],
    temperature: float,
    rng: np.random.Generator,
) -> int:
    """Pick an action from ``probs`` sharpened or flattened by ``temperature``.

    At temperature ~0 this is the arg-max over legal actions with ties going to
    the lowest index; otherwise sampling is proportional to
    ``prob ** (1 / temperature)``.
    """

    legal_indices = np.asarray(sorted(legal), dtype=np.int64)
    if legal_indices.size == 0:
        raise RuntimeError("No legal moves available for selection")

    weights = np.asarray(probs, dtype=np.float64)[legal_indices]
    if temperature <= GREEDY_TEMPERATURE:
        return int(legal_indices[int(np.argmax(weights))])

    # Work in log space so tiny temperatures do not underflow to all zeros.
    with np.errstate(divide="ignore"):
        logs = np.log(np.clip(weights, 0.0, None)) / temperature
    if not np.isfinite(logs).any():
        transformed = np.full(legal_indices.size, 1.0 / legal_indices.size)
    else:
        logs -= logs[np.isfinite(logs)].max()
        transformed = np.exp(logs)
        transformed /= transformed.sum()
    choice = rng.choice(legal_indices.size, p=transformed)
    return int(legal_indices[choice])


def play_game(
    mcts: MCTS,
    simulations: int,
    temperature_moves: int = 30,
    temperature: float = 1.0,
    final_temperature: float = 0.1,
    rng: Optional[np.random.Generator] = None,
) -> SelfPlayGame:
    """Play one game against itself and label every visited position."""

    rng = rng or np.random.default_rng()
    game = UltimateTicTacToe()
    record = SelfPlayGame()
    positions: List[np.ndarray] = []
    policies: List[np.ndarray] = []

    while not game.is_terminal:
        probs = mcts.search(game, simulations)
        legal = game.legal_indices()
        ply_temperature = temperature if record.plies < temperature_moves else final_temperature
        action = select_action(probs, legal, ply_temperature, rng)

        positions.append(encode_state(game).planes)
        policies.append(probs.astype(np.float32))
        record.movers.append(game.to_move)

        move = Move.from_index(action)
        record.moves.append(move)
        game = game.apply(move)

    record.final_state = game
    for planes, policy, mover in zip(positions, policies, record.movers):
        record.examples.append(
            TrainingExample(planes=planes, policy=policy, value=float(game.result(mover)))
        )
    return record


def augment_examples(examples: Sequence[TrainingExample]) -> List[TrainingExample]:
    """Expand every example into its eight symmetric images."""

    augmented: List[TrainingExample] = []
    for example in examples:
        for symmetry in SYMMETRIES:
            augmented.append(
                TrainingExample(
                    planes=symmetry.apply_planes(example.planes),
                    policy=symmetry.apply_policy(example.policy),
                    value=example.value,
                )
            )
    return augmented
