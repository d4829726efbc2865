from __future__ import annotations

import yaml

from uttt_zero.cli import load_estimator, main
from uttt_zero.model import ModelConfig, TorchEstimator


def _write_config(tmp_path) -> str:
    config = {
        "training": {
            "iterations": 1,
            "epochs": 1,
            "batch_size": 4,
            "checkpoint_every": 1,
            "checkpoint_dir": str(tmp_path / "ckpt"),
            "workers": 1,
            "seed": 3,
        },
        "selfplay": {"games_per_iteration": 1, "simulations": 2},
        "model": {"architecture": "mlp", "hidden_sizes": [16]},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return str(path)


def test_train_command_writes_final_model(tmp_path, capsys) -> None:
    assert main(["train", "--config", _write_config(tmp_path)]) == 0
    assert (tmp_path / "ckpt" / "model_iteration_1.pt").exists()
    final = tmp_path / "ckpt" / "model_final.pt"
    assert final.exists()
    assert "Iteration 1" in capsys.readouterr().out

    restored = TorchEstimator.from_checkpoint(final)
    assert restored.config.hidden_sizes == (16,)


def test_arena_command(tmp_path, capsys) -> None:
    model = tmp_path / "model.pt"
    TorchEstimator(ModelConfig(hidden_sizes=(16,)), seed=0).save(model)
    assert main(["arena", str(model), "--games", "2", "--difficulty", "easy", "--seed", "1"]) == 0
    assert "W /" in capsys.readouterr().out


def test_missing_resume_checkpoint_starts_fresh(tmp_path) -> None:
    estimator = load_estimator(tmp_path / "absent.pt", ModelConfig(hidden_sizes=(8,)))
    assert estimator.config.hidden_sizes == (8,)
