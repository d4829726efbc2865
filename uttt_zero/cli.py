"""Command line entry points for training and evaluating the agent."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import yaml

from .agent import Difficulty, RandomAgent, ZeroAgent
from .arena import Arena
from .estimator import EstimatorIOError
from .model import ModelConfig, TorchEstimator
from .trainer import SelfPlayTrainer, TrainingConfig, TrainingProgress
from .utils import set_random_seeds

DEFAULT_CONFIG = Path(__file__).resolve().parent / "config.yaml"

logger = logging.getLogger(__name__)


def _print_progress(progress: TrainingProgress) -> None:
    loss = "n/a" if progress.loss is None else f"{progress.loss:.4f}"
    print(
        f"Iteration {progress.iteration} - games: {progress.games_played} "
        f"buffer={progress.buffer_size} loss={loss} elapsed={progress.elapsed:.1f}s"
    )


def load_estimator(path: Optional[Path], model_config: ModelConfig, seed: Optional[int] = None) -> TorchEstimator:
    estimator = TorchEstimator(model_config, seed=seed)
    if path is None:
        return estimator
    try:
        estimator.load(path)
    except EstimatorIOError as exc:
        logger.warning("Starting from fresh parameters: %s", exc)
    return estimator


def train(config_path: Path, resume: Optional[Path] = None, iterations: Optional[int] = None) -> int:
    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    config = TrainingConfig.from_dict(raw)
    model_config = ModelConfig.from_dict(raw.get("model", {}))
    if config.seed is not None:
        set_random_seeds(config.seed)

    estimator = load_estimator(resume, model_config, seed=config.seed)
    trainer = SelfPlayTrainer(estimator, config, observer=_print_progress)
    report = trainer.train(iterations)

    final_path = Path(config.checkpoint_dir) / "model_final.pt"
    if report.status != "failed":
        estimator.save(final_path)
        print(f"Training {report.status}. Model saved to {final_path}")
        return 0
    print(f"Training failed after {report.iterations_completed} iterations: {report.error}")
    return 1


def arena(model: Path, games: int, difficulty: str, seed: Optional[int]) -> int:
    estimator = TorchEstimator.from_checkpoint(model)
    challenger = ZeroAgent.with_difficulty(estimator, Difficulty[difficulty.upper()])
    baseline = RandomAgent(rng=np.random.default_rng(seed))
    result = Arena(challenger, baseline).play_matches(games)
    print(f"{challenger.name} vs {baseline.name}: {result.wins} W / {result.draws} D / {result.losses} L")
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Self-play training for Ultimate Tic-Tac-Toe")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    train_parser = sub.add_parser("train", help="Run the self-play training loop")
    train_parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)
    train_parser.add_argument("--resume", type=Path, default=None, help="Checkpoint to continue from")
    train_parser.add_argument("--iterations", type=int, default=None, help="Override the configured iterations")

    arena_parser = sub.add_parser("arena", help="Play a trained model against a random opponent")
    arena_parser.add_argument("model", type=Path, help="Estimator checkpoint")
    arena_parser.add_argument("--games", type=int, default=20)
    arena_parser.add_argument(
        "--difficulty",
        choices=[level.name.lower() for level in Difficulty],
        default="medium",
    )
    arena_parser.add_argument("--seed", type=int, default=None)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "train":
        return train(args.config, resume=args.resume, iterations=args.iterations)
    return arena(args.model, args.games, args.difficulty, args.seed)


if __name__ == "__main__":
    raise SystemExit(main())
