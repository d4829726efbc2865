from __future__ import annotations

import numpy as np
import pytest
import torch

from uttt_zero.estimator import (
    EstimatorIOError,
    EstimatorPredictionError,
    TrainingExample,
    UniformEstimator,
)
from uttt_zero.features import encode_state
from uttt_zero.game import Move, UltimateTicTacToe
from uttt_zero.model import ModelConfig, TorchEstimator

SMALL = ModelConfig(hidden_sizes=(32, 32))


def _example(game: UltimateTicTacToe, value: float) -> TrainingExample:
    encoded = encode_state(game)
    policy = encoded.legal_actions.astype(np.float32)
    return TrainingExample(planes=encoded.planes, policy=policy / policy.sum(), value=value)


def test_uniform_estimator() -> None:
    value, policy = UniformEstimator().predict(encode_state(UltimateTicTacToe()).planes)
    assert value == 0.0
    assert policy.shape == (81,)
    assert np.isclose(policy.sum(), 1.0)
    with pytest.raises(EstimatorPredictionError):
        UniformEstimator().predict(np.zeros((3, 9, 9)))


def test_uniform_estimator_save_load(tmp_path) -> None:
    path = tmp_path / "uniform.json"
    UniformEstimator().save(path)
    UniformEstimator().load(path)
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(EstimatorIOError):
        UniformEstimator().load(path)
    with pytest.raises(EstimatorIOError):
        UniformEstimator().load(tmp_path / "missing.json")


@pytest.mark.parametrize(
    "config",
    [SMALL, ModelConfig(architecture="resnet", channels=8, num_blocks=1, value_hidden=16)],
)
def test_torch_predict_contract(config: ModelConfig) -> None:
    estimator = TorchEstimator(config, seed=0)
    game = UltimateTicTacToe().apply(Move(1, 1, 0, 0))
    value, policy = estimator.predict(encode_state(game).planes)
    assert -1.0 <= value <= 1.0
    assert policy.shape == (81,)
    assert np.all(policy >= 0)
    assert np.isclose(policy.sum(), 1.0)


def test_torch_predict_rejects_malformed_input() -> None:
    estimator = TorchEstimator(SMALL, seed=0)
    with pytest.raises(EstimatorPredictionError):
        estimator.predict(np.zeros((81,), dtype=np.float32))
    planes = encode_state(UltimateTicTacToe()).planes.copy()
    planes[0, 0, 0] = np.nan
    with pytest.raises(EstimatorPredictionError):
        estimator.predict(planes)


def test_torch_train_updates_parameters() -> None:
    estimator = TorchEstimator(SMALL, seed=0)
    before = [param.detach().clone() for param in estimator.network.parameters()]
    game = UltimateTicTacToe()
    batch = [_example(game, 1.0), _example(game.apply(Move(1, 1, 0, 0)), -1.0)]

    loss = estimator.train(batch)

    assert np.isfinite(loss)
    after = list(estimator.network.parameters())
    assert any(not torch.equal(old, new) for old, new in zip(before, after))
    assert not estimator.network.training
    assert estimator.train([]) == 0.0


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_torch_training_fits_a_fixed_target(seed: int) -> None:
    estimator = TorchEstimator(SMALL, seed=seed)
    game = UltimateTicTacToe().apply(Move(1, 1, 0, 0))
    target = np.zeros(81, dtype=np.float32)
    target[4] = 1.0
    example = TrainingExample(planes=encode_state(game).planes, policy=target, value=0.5)

    first = estimator.train([example])
    for _ in range(300):
        last = estimator.train([example])

    assert last < first
    value, policy = estimator.predict(example.planes)
    assert abs(value - 0.5) < 0.25
    assert int(np.argmax(policy[:9])) == 4


def test_torch_save_load_round_trip(tmp_path) -> None:
    path = tmp_path / "ckpt" / "model.pt"
    source = TorchEstimator(SMALL, seed=0)
    source.train([_example(UltimateTicTacToe(), 1.0)])
    source.save(path)

    restored = TorchEstimator(ModelConfig(hidden_sizes=(8,)), seed=5)
    restored.load(path)
    assert restored.config.hidden_sizes == (32, 32)

    planes = encode_state(UltimateTicTacToe().apply(Move(0, 0, 1, 1))).planes
    v1, p1 = source.predict(planes)
    v2, p2 = restored.predict(planes)
    assert v1 == pytest.approx(v2)
    assert np.allclose(p1, p2)


def test_torch_load_failures_are_distinguishable(tmp_path) -> None:
    estimator = TorchEstimator(SMALL, seed=0)

    with pytest.raises(EstimatorIOError):
        estimator.load(tmp_path / "missing.pt")

    corrupt = tmp_path / "corrupt.pt"
    corrupt.write_bytes(b"not a checkpoint")
    with pytest.raises(EstimatorIOError):
        estimator.load(corrupt)

    foreign = tmp_path / "foreign.pt"
    torch.save({"weights": torch.zeros(3)}, foreign)
    with pytest.raises(EstimatorIOError):
        estimator.load(foreign)

    future = tmp_path / "future.pt"
    torch.save({"format": "uttt-zero-estimator", "version": 99}, future)
    with pytest.raises(EstimatorIOError):
        estimator.load(future)

    mismatched = tmp_path / "mismatched.pt"
    torch.save(
        {
            "format": "uttt-zero-estimator",
            "version": 1,
            "config": SMALL.to_dict(),
            "model_state": {"bogus": torch.zeros(1)},
            "optimizer_state": {},
        },
        mismatched,
    )
    with pytest.raises(EstimatorIOError):
        estimator.load(mismatched)
