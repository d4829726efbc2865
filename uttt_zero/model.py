"""Neural networks behind the default estimator."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import torch
from torch import nn
import torch.nn.functional as F

from .estimator import (
    Estimator,
    EstimatorIOError,
    EstimatorPredictionError,
    PathLike,
    TrainingExample,
    check_planes,
)
from .features import FEATURE_CHANNELS, legal_mask_from_planes
from .game import NUM_ACTIONS

__all__ = [
    "FeedForwardNet",
    "ModelConfig",
    "PolicyValueNet",
    "TorchEstimator",
    "build_network",
]

CHECKPOINT_FORMAT = "uttt-zero-estimator"
CHECKPOINT_VERSION = 1


@dataclass
class ModelConfig:
    architecture: str = "mlp"  # "mlp" or "resnet"
    hidden_sizes: Tuple[int, ...] = (512, 512, 512)
    channels: int = 64
    num_blocks: int = 4
    value_hidden: int = 128
    learning_rate: float = 1e-3
    weight_decay: float = 1e-4
    grad_clip: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelConfig":
        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in data.items() if key in known}
        if "hidden_sizes" in values:
            values["hidden_sizes"] = tuple(int(size) for size in values["hidden_sizes"])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hidden_sizes"] = list(self.hidden_sizes)
        return data


class FeedForwardNet(nn.Module):
    """Fully connected trunk with separate policy and value heads."""

    def __init__(self, hidden_sizes: Sequence[int] = (512, 512, 512)) -> None:
        super().__init__()
        layers = []
        width = FEATURE_CHANNELS * 9 * 9
        for size in hidden_sizes:
            layers.append(nn.Linear(width, size))
            layers.append(nn.ReLU(inplace=True))
            width = size
        self.trunk = nn.Sequential(*layers)
        self.policy_head = nn.Linear(width, NUM_ACTIONS)
        self.value_head = nn.Linear(width, 1)

    def forward(self, x: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:  # type: ignore[override]
        out = self.trunk(x.flatten(start_dim=1))
        return self.policy_head(out), torch.tanh(self.value_head(out))


class ResidualBlock(nn.Module):
    def __init__(self, channels: int) -> None:
        super().__init__()
        self.conv1 = nn.Conv2d(channels, channels, kernel_size=3, padding=1, bias=False)
        self.bn1 = nn.BatchNorm2d(channels)
        self.conv2 = nn.Conv2d(channels, channels, kernel_size=3, padding=1, bias=False)
        self.bn2 = nn.BatchNorm2d(channels)

    def forward(self, x: torch.Tensor) -> torch.Tensor:  # type: ignore[override]
        out = F.relu(self.bn1(self.conv1(x)))
        out = self.bn2(self.conv2(out))
        return F.relu(out + x)


class PolicyValueNet(nn.Module):
    """Convolutional residual tower over the 9x9 cell grid.

    Policy logits come out in action order, not in the spatial order of the
    planes; the final linear layer learns that permutation.
    """

    def __init__(self, channels: int = 64, num_blocks: int = 4, value_hidden: int = 128) -> None:
        super().__init__()
        self.stem = nn.Sequential(
            nn.Conv2d(FEATURE_CHANNELS, channels, kernel_size=3, padding=1, bias=False),
            nn.BatchNorm2d(channels),
            nn.ReLU(inplace=True),
        )
        self.trunk = nn.ModuleList(ResidualBlock(channels) for _ in range(num_blocks))

        self.policy_conv = nn.Conv2d(channels, 2, kernel_size=1, bias=False)
        self.policy_bn = nn.BatchNorm2d(2)
        self.policy_fc = nn.Linear(2 * 9 * 9, NUM_ACTIONS)

        self.value_conv = nn.Conv2d(channels, 1, kernel_size=1, bias=False)
        self.value_bn = nn.BatchNorm2d(1)
        self.value_fc1 = nn.Linear(9 * 9, value_hidden)
        self.value_fc2 = nn.Linear(value_hidden, 1)

    def forward(self, x: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:  # type: ignore[override]
        out = self.stem(x)
        for block in self.trunk:
            out = block(out)

        policy = F.relu(self.policy_bn(self.policy_conv(out)))
        policy = self.policy_fc(policy.flatten(start_dim=1))

        value = F.relu(self.value_bn(self.value_conv(out)))
        value = F.relu(self.value_fc1(value.flatten(start_dim=1)))
        value = torch.tanh(self.value_fc2(value))
        return policy, value


def build_network(config: ModelConfig) -> nn.Module:
    if config.architecture == "mlp":
        return FeedForwardNet(config.hidden_sizes)
    if config.architecture == "resnet":
        return PolicyValueNet(
            channels=config.channels,
            num_blocks=config.num_blocks,
            value_hidden=config.value_hidden,
        )
    raise ValueError(f"unknown architecture {config.architecture!r}")


class TorchEstimator(Estimator):
    """Estimator backed by a torch module trained with AdamW on the CPU."""

    def __init__(self, config: Optional[ModelConfig] = None, seed: Optional[int] = None) -> None:
        self.config = config or ModelConfig()
        if seed is not None:
            torch.manual_seed(seed)
        self._build(self.config)

    def _build(self, config: ModelConfig) -> None:
        self.config = config
        self.network = build_network(config)
        self.optimizer = torch.optim.AdamW(
            self.network.parameters(),
            lr=config.learning_rate,
            weight_decay=config.weight_decay,
        )
        self.network.eval()

    @classmethod
    def from_checkpoint(cls, path: PathLike) -> "TorchEstimator":
        estimator = cls()
        estimator.load(path)
        return estimator

    # ------------------------------------------------------------------
    @torch.no_grad()
    def predict(self, planes: np.ndarray) -> Tuple[float, np.ndarray]:
        arr = check_planes(planes)
        tensor = torch.from_numpy(arr).unsqueeze(0)
        logits, value = self.network(tensor)
        probs = torch.softmax(logits.double(), dim=-1).squeeze(0).numpy()
        value_f = float(value.item())
        if not np.all(np.isfinite(probs)) or not np.isfinite(value_f):
            raise EstimatorPredictionError("network produced non-finite output")
        return value_f, probs

    def train(self, batch: Sequence[TrainingExample]) -> float:
        if not batch:
            return 0.0

        planes_np = np.stack([check_planes(example.planes) for example in batch])
        planes = torch.from_numpy(planes_np)
        legal_mask = torch.from_numpy(legal_mask_from_planes(planes_np))
        target_policy = torch.from_numpy(
            np.stack([np.asarray(example.policy, dtype=np.float32) for example in batch])
        )
        target_value = torch.tensor([float(example.value) for example in batch], dtype=torch.float32)

        self.network.train()
        try:
            self.optimizer.zero_grad()
            logits, value = self.network(planes)
            logits = logits.masked_fill(~legal_mask, -1e9)
            log_probs = torch.log_softmax(logits, dim=-1)
            policy_loss = -(target_policy * log_probs).sum(dim=-1).mean()
            value_loss = F.mse_loss(value.squeeze(-1), target_value)
            loss = policy_loss + value_loss
            loss.backward()
            torch.nn.utils.clip_grad_norm_(self.network.parameters(), self.config.grad_clip)
            self.optimizer.step()
        finally:
            self.network.eval()
        return float(loss.item())

    # ------------------------------------------------------------------
    def save(self, path: PathLike) -> None:
        path = os.fspath(path)
        payload = {
            "format": CHECKPOINT_FORMAT,
            "version": CHECKPOINT_VERSION,
            "config": self.config.to_dict(),
            "model_state": self.network.state_dict(),
            "optimizer_state": self.optimizer.state_dict(),
        }
        tmp_path = f"{path}.tmp"
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            torch.save(payload, tmp_path)
            os.replace(tmp_path, path)
        except (OSError, RuntimeError) as exc:
            raise EstimatorIOError(f"could not save estimator to {path}: {exc}") from exc

    def load(self, path: PathLike) -> None:
        path = os.fspath(path)
        if not os.path.isfile(path):
            raise EstimatorIOError(f"no estimator checkpoint at {path}")
        try:
            payload = torch.load(path, map_location="cpu", weights_only=True)
        except Exception as exc:
            raise EstimatorIOError(f"could not read estimator checkpoint {path}: {exc}") from exc

        if not isinstance(payload, dict) or payload.get("format") != CHECKPOINT_FORMAT:
            raise EstimatorIOError(f"{path} is not an estimator checkpoint")
        if payload.get("version") != CHECKPOINT_VERSION:
            raise EstimatorIOError(f"unsupported checkpoint version {payload.get('version')!r} in {path}")

        try:
            config = ModelConfig.from_dict(payload["config"])
            network = build_network(config)
            network.load_state_dict(payload["model_state"])
            optimizer = torch.optim.AdamW(
                network.parameters(),
                lr=config.learning_rate,
                weight_decay=config.weight_decay,
            )
            optimizer.load_state_dict(payload["optimizer_state"])
        except (KeyError, TypeError, ValueError, RuntimeError) as exc:
            raise EstimatorIOError(f"checkpoint {path} does not match any known network: {exc}") from exc

        self.config = config
        self.network = network
        self.optimizer = optimizer
        self.network.eval()
