"""Symmetry utilities for Ultimate Tic-Tac-Toe boards.

The eight rotations and reflections of a 3x3 grid act on the macro board and,
identically, inside every sub-board.  Because the forced-board rule maps a
cell coordinate onto a sub-board coordinate, applying the same transform at
both levels turns any position into an equally legal position, which makes
the transforms safe for training-data augmentation.

Every mapping here is a permutation ``old index -> new index``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Tuple

import numpy as np

from .game import NUM_ACTIONS, Move, UltimateTicTacToe
from .features import INDEX_TO_SPATIAL

GridMapping = Tuple[int, ...]
ActionMapping = Tuple[int, ...]

_OPERATIONS: Tuple[Tuple[str, Callable[[int, int], Tuple[int, int]]], ...] = (
    ("identity", lambda r, c: (r, c)),
    ("rot90", lambda r, c: (c, 2 - r)),
    ("rot180", lambda r, c: (2 - r, 2 - c)),
    ("rot270", lambda r, c: (2 - c, r)),
    ("mirror_v", lambda r, c: (r, 2 - c)),
    ("mirror_h", lambda r, c: (2 - r, c)),
    ("diag_main", lambda r, c: (c, r)),
    ("diag_anti", lambda r, c: (2 - c, 2 - r)),
)


def _grid_mapping(func: Callable[[int, int], Tuple[int, int]]) -> GridMapping:
    mapping: List[int] = []
    for index in range(9):
        new_row, new_col = func(*divmod(index, 3))
        mapping.append(new_row * 3 + new_col)
    return tuple(mapping)


def invert_mapping(mapping: Tuple[int, ...]) -> Tuple[int, ...]:
    """Return the inverse of a permutation mapping."""

    inverse = [0] * len(mapping)
    for source, target in enumerate(mapping):
        inverse[target] = source
    return tuple(inverse)


@dataclass(frozen=True)
class Symmetry:
    """A board symmetry expressed over grid indices and action indices."""

    name: str
    grid: GridMapping
    action: ActionMapping
    spatial: Tuple[int, ...]

    def apply_move(self, move: Move) -> Move:
        return Move.from_index(self.action[Move(*move).index])

    def apply_policy(self, policy: np.ndarray) -> np.ndarray:
        """Permute the trailing 81-entry axis of a policy or mask."""

        arr = np.asarray(policy)
        if arr.shape[-1] != NUM_ACTIONS:
            raise ValueError("policy vector must have length 81")
        out = np.empty_like(arr)
        out[..., list(self.action)] = arr
        return out

    def apply_planes(self, planes: np.ndarray) -> np.ndarray:
        """Apply the symmetry to stacked (C, 9, 9) feature planes."""

        if planes.ndim != 3 or planes.shape[1:] != (9, 9):
            raise ValueError("planes must have shape (channels, 9, 9)")
        flattened = planes.reshape(planes.shape[0], NUM_ACTIONS)
        out = np.empty_like(flattened)
        out[:, list(self.spatial)] = flattened
        return out.reshape(planes.shape)

    def apply_state(self, game: UltimateTicTacToe) -> UltimateTicTacToe:
        boards: List[Tuple[str, ...]] = [()] * 9
        macro: List[str] = [" "] * 9
        for old_sub, board in enumerate(game.boards):
            new_board = [" "] * 9
            for old_cell, mark in enumerate(board):
                new_board[self.grid[old_cell]] = mark
            boards[self.grid[old_sub]] = tuple(new_board)
            macro[self.grid[old_sub]] = game.macro_board[old_sub]
        required = None
        if game.required is not None:
            required = divmod(self.grid[game.required[0] * 3 + game.required[1]], 3)
        return UltimateTicTacToe(
            boards=tuple(boards),
            macro_board=tuple(macro),
            status=game.status,
            to_move=game.to_move,
            required=required,
        )


def _build_symmetry(name: str, func: Callable[[int, int], Tuple[int, int]]) -> Symmetry:
    grid = _grid_mapping(func)
    action = tuple(grid[index // 9] * 9 + grid[index % 9] for index in range(NUM_ACTIONS))
    spatial = [0] * NUM_ACTIONS
    for index in range(NUM_ACTIONS):
        spatial[INDEX_TO_SPATIAL[index]] = int(INDEX_TO_SPATIAL[action[index]])
    return Symmetry(name=name, grid=grid, action=action, spatial=tuple(spatial))


SYMMETRIES: Tuple[Symmetry, ...] = tuple(_build_symmetry(name, func) for name, func in _OPERATIONS)


def inverse_of(symmetry: Symmetry) -> Symmetry:
    inverse_grid = invert_mapping(symmetry.grid)
    for candidate in SYMMETRIES:
        if candidate.grid == inverse_grid:
            return candidate
    raise ValueError(f"no inverse found for symmetry {symmetry.name}")


__all__ = ["SYMMETRIES", "Symmetry", "invert_mapping", "inverse_of"]
