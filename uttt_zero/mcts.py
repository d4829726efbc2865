"""Monte Carlo Tree Search with PUCT exploration."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .estimator import Estimator
from .features import encode_state
from .game import NUM_ACTIONS, Move, UltimateTicTacToe
from .utils import masked_distribution


@dataclass
class MCTSConfig:
    c_puct: float = 1.0
    dirichlet_alpha: float = 0.3
    dirichlet_epsilon: float = 0.25


class Node:
    """Visit statistics for the outgoing actions of one position."""

    def __init__(self, legal: List[int], prior: np.ndarray) -> None:
        self.legal = legal
        self.network_prior = prior
        self.prior = prior.copy()
        self.visit_counts = np.zeros(NUM_ACTIONS, dtype=np.int64)
        self.value_sums = np.zeros(NUM_ACTIONS, dtype=np.float64)
        self.total_visits = 0
        self.is_expanded = True

    def q_value(self, action: int) -> float:
        visits = self.visit_counts[action]
        return 0.0 if visits == 0 else float(self.value_sums[action] / visits)

    def select_action(self, c_puct: float) -> int:
        """Pick the legal action with the highest PUCT score.

        Unvisited actions score +inf so every action is tried once before any
        is tried twice; ties go to the lowest action index.
        """

        sqrt_total = math.sqrt(self.total_visits)
        best_score = -math.inf
        best_action = self.legal[0]
        for action in self.legal:
            visits = self.visit_counts[action]
            if visits == 0:
                score = math.inf
            else:
                score = self.value_sums[action] / visits + c_puct * self.prior[action] * sqrt_total / (1 + visits)
            if score > best_score:
                best_score = score
                best_action = action
        return best_action

    def update(self, action: int, value: float) -> None:
        self.visit_counts[action] += 1
        self.value_sums[action] += value
        self.total_visits += 1


class MCTS:
    """PUCT-based Monte Carlo Tree Search driven by an estimator.

    Each instance owns its node table, keyed by position key, so concurrent
    games must each use their own instance.
    """

    def __init__(
        self,
        estimator: Estimator,
        config: Optional[MCTSConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.estimator = estimator
        self.config = config or MCTSConfig()
        self.rng = rng or np.random.default_rng()
        self._nodes: Dict[str, Node] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def clear(self) -> None:
        self._nodes.clear()

    def node(self, game: UltimateTicTacToe) -> Optional[Node]:
        return self._nodes.get(game.position_key())

    def visit_counts(self, game: UltimateTicTacToe) -> np.ndarray:
        node = self.node(game)
        if node is None:
            return np.zeros(NUM_ACTIONS, dtype=np.int64)
        return node.visit_counts.copy()

    def search(self, game: UltimateTicTacToe, num_simulations: int, add_noise: bool = True) -> np.ndarray:
        """Run ``num_simulations`` simulations and return the root visit distribution."""

        legal = game.legal_indices()
        if not legal:
            return np.zeros(NUM_ACTIONS, dtype=np.float64)

        root = self.node(game)
        if root is None:
            root, _ = self._expand(game, legal)
        if add_noise and self.config.dirichlet_epsilon > 0:
            self._apply_dirichlet_noise(root)
        else:
            root.prior = root.network_prior.copy()

        for _ in range(num_simulations):
            self._simulate(game)

        if root.total_visits == 0:
            return masked_distribution(np.ones(NUM_ACTIONS), legal, NUM_ACTIONS)
        probs = np.zeros(NUM_ACTIONS, dtype=np.float64)
        probs[legal] = root.visit_counts[legal] / root.total_visits
        return probs

    def best_move(self, game: UltimateTicTacToe, num_simulations: int) -> Move:
        probs = self.search(game, num_simulations, add_noise=False)
        legal = game.legal_indices()
        if not legal:
            raise ValueError("no legal moves in a finished game")
        best = max(legal, key=lambda action: (probs[action], -action))
        return Move.from_index(best)

    # ------------------------------------------------------------------
    def _simulate(self, game: UltimateTicTacToe) -> None:
        state = game
        path: List[Tuple[Node, int]] = []

        while True:
            if state.is_terminal:
                value = float(state.result(state.to_move))
                break

            node = self._nodes.get(state.position_key())
            if node is None:
                _, value = self._expand(state, state.legal_indices())
                break

            action = node.select_action(self.config.c_puct)
            path.append((node, action))
            state = state.apply(Move.from_index(action))

        self._backpropagate(path, value)

    def _expand(self, state: UltimateTicTacToe, legal: List[int]) -> Tuple[Node, float]:
        encoded = encode_state(state)
        value, policy = self.estimator.predict(encoded.planes)
        node = Node(legal, masked_distribution(policy, legal, NUM_ACTIONS))
        self._nodes[state.position_key()] = node
        return node, float(value)

    @staticmethod
    def _backpropagate(path: List[Tuple[Node, int]], value: float) -> None:
        # ``value`` is from the point of view of the player to move at the
        # leaf; each step up flips the perspective.
        for node, action in reversed(path):
            value = -value
            node.update(action, value)

    def _apply_dirichlet_noise(self, node: Node) -> None:
        legal = np.asarray(node.legal, dtype=np.int64)
        noise = self.rng.dirichlet([self.config.dirichlet_alpha] * legal.size)
        eps = self.config.dirichlet_epsilon
        prior = node.network_prior.copy()
        prior[legal] = (1 - eps) * prior[legal] + eps * noise
        node.prior = prior


__all__ = ["MCTS", "MCTSConfig", "Node"]
