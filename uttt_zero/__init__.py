"""Ultimate Tic-Tac-Toe self-play engine: rules, search and training."""
from .agent import Difficulty, RandomAgent, ZeroAgent
from .arena import Arena, ArenaResult
from .estimator import (
    Estimator,
    EstimatorIOError,
    EstimatorPredictionError,
    TrainingExample,
    UniformEstimator,
)
from .features import decode_move, encode_move, encode_state
from .game import IllegalMoveError, Move, NotTerminalError, UltimateTicTacToe
from .mcts import MCTS, MCTSConfig
from .model import ModelConfig, TorchEstimator
from .trainer import SelfPlayTrainer, TrainingConfig, TrainingProgress, TrainingReport

__all__ = [
    "Arena",
    "ArenaResult",
    "Difficulty",
    "Estimator",
    "EstimatorIOError",
    "EstimatorPredictionError",
    "IllegalMoveError",
    "MCTS",
    "MCTSConfig",
    "ModelConfig",
    "Move",
    "NotTerminalError",
    "RandomAgent",
    "SelfPlayTrainer",
    "TorchEstimator",
    "TrainingConfig",
    "TrainingExample",
    "TrainingProgress",
    "TrainingReport",
    "UltimateTicTacToe",
    "UniformEstimator",
    "ZeroAgent",
    "decode_move",
    "encode_move",
    "encode_state",
]
