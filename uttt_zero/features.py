"""Feature encoding utilities for Ultimate Tic-Tac-Toe.

Planes are laid out on the 9x9 grid of cells, where the cell ``(cell_row,
cell_col)`` of sub-board ``(sub_row, sub_col)`` sits at row
``sub_row * 3 + cell_row`` and column ``sub_col * 3 + cell_col``.  Policy
vectors and legal masks use the move index order from :mod:`uttt_zero.game`
instead, so :data:`INDEX_TO_SPATIAL` converts between the two.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .game import ACTIVE, DRAW, NUM_ACTIONS, Move, UltimateTicTacToe, opponent

FEATURE_CHANNELS = 8

PLANE_MOVER = 0
PLANE_OPPONENT = 1
PLANE_X_TO_MOVE = 2
PLANE_LEGAL_BOARDS = 3
PLANE_MOVER_BOARDS = 4
PLANE_OPPONENT_BOARDS = 5
PLANE_DRAWN_BOARDS = 6
PLANE_LEGAL_CELLS = 7


def _index_to_spatial(index: int) -> int:
    move = Move.from_index(index)
    row = move.sub_row * 3 + move.cell_row
    col = move.sub_col * 3 + move.cell_col
    return row * 9 + col


# INDEX_TO_SPATIAL[action] is the flat (row * 9 + col) position of that action.
INDEX_TO_SPATIAL: np.ndarray = np.array([_index_to_spatial(i) for i in range(NUM_ACTIONS)], dtype=np.int64)


@dataclass(frozen=True)
class EncodedState:
    """Feature planes plus the legal mask for a position."""

    planes: np.ndarray  # (C, 9, 9)
    legal_actions: np.ndarray  # (81,) boolean mask in action order
    to_move_is_x: bool


def encode_move(move: Move) -> int:
    if any(not 0 <= component < 3 for component in move):
        raise ValueError("move components must be in range 0..2")
    return Move(*move).index


def decode_move(index: int) -> Move:
    return Move.from_index(index)


def action_plane(values: np.ndarray) -> np.ndarray:
    """Scatter an 81-vector in action order onto a 9x9 plane."""

    plane = np.zeros(NUM_ACTIONS, dtype=np.float32)
    plane[INDEX_TO_SPATIAL] = values
    return plane.reshape(9, 9)


def plane_actions(plane: np.ndarray) -> np.ndarray:
    """Gather a 9x9 plane back into an 81-vector in action order."""

    return np.asarray(plane).reshape(NUM_ACTIONS)[INDEX_TO_SPATIAL]


def _sub_board_plane(game: UltimateTicTacToe, wanted: str) -> np.ndarray:
    plane = np.zeros((9, 9), dtype=np.float32)
    for macro_index, status in enumerate(game.macro_board):
        if status != wanted:
            continue
        macro_row, macro_col = divmod(macro_index, 3)
        plane[macro_row * 3 : macro_row * 3 + 3, macro_col * 3 : macro_col * 3 + 3] = 1.0
    return plane


def encode_state(game: UltimateTicTacToe) -> EncodedState:
    """Encode the position from the point of view of the player to move."""

    mover = game.to_move
    other = opponent(mover)

    cells = np.array([mark for board in game.boards for mark in board])
    mover_plane = action_plane(cells == mover)
    opponent_plane = action_plane(cells == other)

    to_move_is_x = mover == "X"
    to_move_plane = np.full((9, 9), 1.0 if to_move_is_x else 0.0, dtype=np.float32)

    legal_mask = np.zeros(NUM_ACTIONS, dtype=bool)
    legal_mask[game.legal_indices()] = True
    legal_cells_plane = action_plane(legal_mask)

    legal_boards_plane = np.zeros((9, 9), dtype=np.float32)
    if not game.is_terminal:
        if game.required_index is not None:
            boards = (game.required_index,)
        else:
            boards = tuple(idx for idx, status in enumerate(game.macro_board) if status == ACTIVE)
        for macro_index in boards:
            macro_row, macro_col = divmod(macro_index, 3)
            legal_boards_plane[macro_row * 3 : macro_row * 3 + 3, macro_col * 3 : macro_col * 3 + 3] = 1.0

    planes = np.stack(
        (
            mover_plane,
            opponent_plane,
            to_move_plane,
            legal_boards_plane,
            _sub_board_plane(game, mover),
            _sub_board_plane(game, other),
            _sub_board_plane(game, DRAW),
            legal_cells_plane,
        ),
        axis=0,
    )

    return EncodedState(planes=planes, legal_actions=legal_mask, to_move_is_x=to_move_is_x)


def legal_mask_from_planes(planes: np.ndarray) -> np.ndarray:
    """Recover the legal action mask (action order) from encoded planes.

    Accepts a single ``(C, 9, 9)`` stack or a batch ``(N, C, 9, 9)``.
    """

    arr = np.asarray(planes)
    legal = arr[..., PLANE_LEGAL_CELLS, :, :]
    flat = legal.reshape(legal.shape[:-2] + (NUM_ACTIONS,))
    return flat[..., INDEX_TO_SPATIAL] > 0.5


__all__ = [
    "EncodedState",
    "FEATURE_CHANNELS",
    "INDEX_TO_SPATIAL",
    "action_plane",
    "decode_move",
    "encode_move",
    "encode_state",
    "legal_mask_from_planes",
    "plane_actions",
]
