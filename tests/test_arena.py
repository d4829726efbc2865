from __future__ import annotations

import logging

import numpy as np
import pytest

from uttt_zero.agent import Difficulty, RandomAgent, ZeroAgent
from uttt_zero.arena import Arena, ArenaResult
from uttt_zero.estimator import UniformEstimator
from uttt_zero.game import IllegalMoveError, UltimateTicTacToe


def test_random_agents_finish_every_game() -> None:
    arena = Arena(RandomAgent(np.random.default_rng(0), "A"), RandomAgent(np.random.default_rng(1), "B"))
    result = arena.play_matches(6)
    assert result.total == 6
    assert 0.0 <= result.win_rate <= 1.0
    assert 0.0 <= result.score <= 1.0


def test_arena_result_scores() -> None:
    result = ArenaResult(wins=3, losses=1, draws=2)
    assert result.win_rate == pytest.approx(0.5)
    assert result.score == pytest.approx(4 / 6)
    assert ArenaResult(0, 0, 0).score == 0.0


def test_zero_agent_plays_legal_moves(near_win_state, winning_move) -> None:
    agent = ZeroAgent(UniformEstimator(), simulations=20)
    game = UltimateTicTacToe()
    for _ in range(4):
        move = agent.select_move(game)
        assert move in game.legal_moves()
        game = game.apply(move)

    assert ZeroAgent(UniformEstimator(), simulations=100).select_move(near_win_state) == winning_move
    with pytest.raises(IllegalMoveError):
        agent.select_move(near_win_state.apply(winning_move))


def test_difficulty_levels() -> None:
    assert [level.simulations for level in Difficulty] == [50, 200, 500, 1000]
    agent = ZeroAgent.with_difficulty(UniformEstimator(), Difficulty.HARD)
    assert agent.simulations == 500
    assert "Hard" in agent.name


def test_finished_games_are_logged_as_boards(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="uttt_zero.arena")
    arena = Arena(RandomAgent(np.random.default_rng(2)), RandomAgent(np.random.default_rng(3)))
    arena.play_game(challenger_first=True)
    assert "Final position" in caplog.text
    assert "======++=======++======" in caplog.text
