"""AlphaZero-style self-play training loop for Ultimate Tic-Tac-Toe."""
from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import yaml

from .estimator import Estimator, EstimatorPredictionError
from .features import encode_state
from .game import Move, UltimateTicTacToe
from .mcts import MCTS, MCTSConfig
from .selfplay import SelfPlayGame, augment_examples, play_game
from .utils import ReplayBuffer

__all__ = [
    "IterationResult",
    "SelfPlayTrainer",
    "TrainingConfig",
    "TrainingProgress",
    "TrainingReport",
]

logger = logging.getLogger(__name__)

_SECTIONS = ("training", "selfplay", "search", "replay")


@dataclass
class TrainingConfig:
    iterations: int = 1000
    games_per_iteration: int = 100
    simulations: int = 800
    replay_capacity: int = 100_000
    batch_size: int = 32
    epochs: int = 10
    checkpoint_every: int = 10
    checkpoint_dir: str = "checkpoints"
    temperature_moves: int = 30
    temperature: float = 1.0
    final_temperature: float = 0.1
    c_puct: float = 1.0
    dirichlet_alpha: float = 0.3
    dirichlet_epsilon: float = 0.25
    workers: int = 4
    max_prediction_failures: int = 2
    augment: bool = False
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingConfig":
        """Build a config from a flat mapping or one split into sections.

        Recognised sections are ``training``, ``selfplay``, ``search`` and
        ``replay``; unknown keys are rejected.
        """

        flat: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _SECTIONS and isinstance(value, dict):
                flat.update(value)
            elif key == "model":
                continue
            else:
                flat[key] = value
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(flat) - known)
        if unknown:
            raise ValueError(f"unknown training settings: {', '.join(unknown)}")
        config = cls(**flat)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "TrainingConfig":
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        return cls.from_dict(data)

    def validate(self) -> None:
        for name in ("iterations", "games_per_iteration", "replay_capacity", "batch_size", "workers"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("simulations", "epochs", "checkpoint_every", "temperature_moves", "max_prediction_failures"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if not 0.0 <= self.dirichlet_epsilon <= 1.0:
            raise ValueError("dirichlet_epsilon must be within [0, 1]")
        if self.dirichlet_alpha <= 0:
            raise ValueError("dirichlet_alpha must be positive")

    def mcts_config(self) -> MCTSConfig:
        return MCTSConfig(
            c_puct=self.c_puct,
            dirichlet_alpha=self.dirichlet_alpha,
            dirichlet_epsilon=self.dirichlet_epsilon,
        )


@dataclass
class TrainingProgress:
    iteration: int
    games_played: int
    buffer_size: int
    elapsed: float
    loss: Optional[float] = None


@dataclass
class IterationResult:
    iteration: int
    games: List[SelfPlayGame] = field(default_factory=list)
    failed_games: int = 0
    examples_added: int = 0
    train_steps: int = 0
    loss: Optional[float] = None
    checkpoint: Optional[Path] = None


@dataclass
class TrainingReport:
    status: str  # "completed", "stopped" or "failed"
    iterations_completed: int
    games_played: int
    buffer_size: int
    error: Optional[BaseException] = None


class SelfPlayTrainer:
    """Alternates concurrent self-play with training of a shared estimator."""

    def __init__(
        self,
        estimator: Estimator,
        config: Optional[TrainingConfig] = None,
        observer: Optional[Callable[[TrainingProgress], None]] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.estimator = estimator
        self.config = config or TrainingConfig()
        self.config.validate()
        self.observer = observer
        self.rng = rng or np.random.default_rng(self.config.seed)
        self.buffer = ReplayBuffer(self.config.replay_capacity)
        self.games_played = 0
        self.iterations_completed = 0
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Stop after the iteration currently running."""

        self._stop.set()

    # ------------------------------------------------------------------
    def train(self, iterations: Optional[int] = None) -> TrainingReport:
        total = self.config.iterations if iterations is None else iterations
        started = time.monotonic()
        logger.info("Starting self-play training for %d iterations", total)

        status = "completed"
        error: Optional[BaseException] = None
        for iteration in range(1, total + 1):
            if self._stop.is_set():
                status = "stopped"
                logger.info("Training stopped before iteration %d", iteration)
                break
            try:
                result = self.run_iteration(iteration)
            except Exception as exc:
                logger.exception("Training iteration %d failed", iteration)
                status, error = "failed", exc
                break

            progress = TrainingProgress(
                iteration=iteration,
                games_played=self.games_played,
                buffer_size=len(self.buffer),
                elapsed=time.monotonic() - started,
                loss=result.loss,
            )
            logger.info(
                "Iteration %d/%d: games=%d buffer=%d loss=%s",
                iteration,
                total,
                progress.games_played,
                progress.buffer_size,
                "n/a" if result.loss is None else f"{result.loss:.4f}",
            )
            if self.observer is not None:
                self.observer(progress)

        return TrainingReport(
            status=status,
            iterations_completed=self.iterations_completed,
            games_played=self.games_played,
            buffer_size=len(self.buffer),
            error=error,
        )

    def run_iteration(self, iteration: int) -> IterationResult:
        result = IterationResult(iteration=iteration)
        result.games, result.failed_games = self.generate_games(self.config.games_per_iteration)
        for game in result.games:
            examples = augment_examples(game.examples) if self.config.augment else game.examples
            self.buffer.extend(examples)
            result.examples_added += len(examples)
        self.games_played += len(result.games)

        result.train_steps, result.loss = self.train_estimator()

        if self.config.checkpoint_every and iteration % self.config.checkpoint_every == 0:
            result.checkpoint = self.save_checkpoint(iteration)

        self.iterations_completed += 1
        return result

    def generate_games(self, num_games: int) -> Tuple[List[SelfPlayGame], int]:
        """Play ``num_games`` games concurrently; every game owns its search tree.

        The replay buffer is left untouched so an aborted iteration adds nothing.
        """

        seeds = self.rng.integers(0, 2**63 - 1, size=num_games)
        games: List[SelfPlayGame] = []
        failures = 0
        prediction_failures = 0
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = {
                executor.submit(self._play_one, np.random.default_rng(int(seed))): index
                for index, seed in enumerate(seeds)
            }
            for future in as_completed(futures):
                try:
                    games.append(future.result())
                except EstimatorPredictionError:
                    failures += 1
                    prediction_failures += 1
                    logger.exception("Self-play game %d aborted by an estimator failure", futures[future])
                    if prediction_failures > self.config.max_prediction_failures:
                        for pending in futures:
                            pending.cancel()
                        raise
                except Exception:
                    failures += 1
                    logger.exception("Self-play game %d aborted", futures[future])
        return games, failures

    def _play_one(self, rng: np.random.Generator) -> SelfPlayGame:
        cfg = self.config
        mcts = MCTS(self.estimator, cfg.mcts_config(), rng=rng)
        return play_game(
            mcts,
            simulations=cfg.simulations,
            temperature_moves=cfg.temperature_moves,
            temperature=cfg.temperature,
            final_temperature=cfg.final_temperature,
            rng=rng,
        )

    def train_estimator(self) -> Tuple[int, Optional[float]]:
        """Run the configured epochs over the buffer; returns (steps, mean loss)."""

        if len(self.buffer) < self.config.batch_size:
            logger.info(
                "Skipping training: %d examples buffered, batch size is %d",
                len(self.buffer),
                self.config.batch_size,
            )
            return 0, None

        losses: List[float] = []
        for _ in range(self.config.epochs):
            for batch in self.buffer.batches(self.config.batch_size, self.rng):
                losses.append(self.estimator.train(batch))
        if not losses:
            return 0, None
        return len(losses), float(np.mean(losses))

    def save_checkpoint(self, iteration: int) -> Path:
        path = Path(self.config.checkpoint_dir) / f"model_iteration_{iteration}.pt"
        os.makedirs(path.parent, exist_ok=True)
        self.estimator.save(path)
        logger.info("Checkpoint saved: %s", path)
        return path

    # ------------------------------------------------------------------
    def get_best_move(self, game: UltimateTicTacToe, simulation_budget: Optional[int] = None) -> Move:
        budget = self.config.simulations if simulation_budget is None else simulation_budget
        mcts = MCTS(self.estimator, self.config.mcts_config(), rng=self.rng)
        return mcts.best_move(game, budget)

    def evaluate_position(self, game: UltimateTicTacToe) -> float:
        value, _ = self.estimator.predict(encode_state(game).planes)
        return float(value)
