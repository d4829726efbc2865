"""Evaluation arena comparing two move policies over a series of games."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .agent import MovePolicy
from .game import UltimateTicTacToe

__all__ = ["Arena", "ArenaResult"]

logger = logging.getLogger(__name__)


@dataclass
class ArenaResult:
    wins: int
    losses: int
    draws: int

    @property
    def total(self) -> int:
        return self.wins + self.losses + self.draws

    @property
    def win_rate(self) -> float:
        return self.wins / self.total if self.total else 0.0

    @property
    def score(self) -> float:
        """Wins plus half the draws, as a fraction of games played."""

        return (self.wins + 0.5 * self.draws) / self.total if self.total else 0.0


@dataclass
class Arena:
    challenger: MovePolicy
    baseline: MovePolicy

    def play_game(self, challenger_first: bool) -> int:
        """Play one game; returns +1/-1/0 from the challenger's point of view."""

        game = UltimateTicTacToe()
        players = {
            "X": self.challenger if challenger_first else self.baseline,
            "O": self.baseline if challenger_first else self.challenger,
        }
        while not game.is_terminal:
            game = game.apply(players[game.to_move].select_move(game))
        logger.debug("Final position:\n%s", game.render_ascii())
        return game.result("X" if challenger_first else "O")

    def play_matches(self, num_games: int = 20) -> ArenaResult:
        results = ArenaResult(wins=0, losses=0, draws=0)

        for game_index in range(num_games):
            outcome = self.play_game(challenger_first=game_index % 2 == 0)
            if outcome > 0:
                results.wins += 1
            elif outcome < 0:
                results.losses += 1
            else:
                results.draws += 1

        logger.info(
            "%s vs %s: %d W / %d D / %d L",
            self.challenger.name,
            self.baseline.name,
            results.wins,
            results.draws,
            results.losses,
        )
        return results
