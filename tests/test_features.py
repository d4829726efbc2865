from __future__ import annotations

import numpy as np
import pytest

from uttt_zero.features import (
    FEATURE_CHANNELS,
    PLANE_DRAWN_BOARDS,
    PLANE_LEGAL_BOARDS,
    PLANE_LEGAL_CELLS,
    PLANE_MOVER,
    PLANE_MOVER_BOARDS,
    PLANE_OPPONENT,
    PLANE_OPPONENT_BOARDS,
    PLANE_X_TO_MOVE,
    action_plane,
    decode_move,
    encode_move,
    encode_state,
    legal_mask_from_planes,
    plane_actions,
)
from uttt_zero.game import ALL_MOVES, Move, UltimateTicTacToe


def test_empty_board_encoding() -> None:
    encoded = encode_state(UltimateTicTacToe())
    planes = encoded.planes
    assert planes.shape == (FEATURE_CHANNELS, 9, 9)
    assert planes.dtype == np.float32
    assert planes[PLANE_MOVER].sum() == 0
    assert planes[PLANE_OPPONENT].sum() == 0
    assert np.all(planes[PLANE_X_TO_MOVE] == 1.0)
    assert np.all(planes[PLANE_LEGAL_BOARDS] == 1.0)
    assert np.all(planes[PLANE_LEGAL_CELLS] == 1.0)
    assert encoded.legal_actions.all()
    assert encoded.to_move_is_x


def test_encoding_is_relative_to_the_mover() -> None:
    game = UltimateTicTacToe().apply(Move(1, 1, 0, 0))
    planes = encode_state(game).planes
    # X's mark sits at grid row 3, column 3 and X is now the opponent.
    assert planes[PLANE_OPPONENT, 3, 3] == 1.0
    assert planes[PLANE_OPPONENT].sum() == 1
    assert planes[PLANE_MOVER].sum() == 0
    assert np.all(planes[PLANE_X_TO_MOVE] == 0.0)
    expected_boards = np.zeros((9, 9), dtype=np.float32)
    expected_boards[0:3, 0:3] = 1.0
    assert np.array_equal(planes[PLANE_LEGAL_BOARDS], expected_boards)
    assert np.array_equal(planes[PLANE_LEGAL_CELLS], expected_boards)


def test_sub_board_status_planes(near_win_state) -> None:
    planes = encode_state(near_win_state).planes
    assert np.all(planes[PLANE_MOVER_BOARDS, 0:3, 0:6] == 1.0)
    assert planes[PLANE_MOVER_BOARDS].sum() == 18
    assert planes[PLANE_OPPONENT_BOARDS].sum() == 0
    assert planes[PLANE_DRAWN_BOARDS].sum() == 0


def test_legal_mask_matches_planes(playout) -> None:
    rng = np.random.default_rng(5)
    for state in playout(rng):
        encoded = encode_state(state)
        expected = np.zeros(81, dtype=bool)
        expected[state.legal_indices()] = True
        assert np.array_equal(encoded.legal_actions, expected)
        assert np.array_equal(legal_mask_from_planes(encoded.planes), expected)


def test_legal_mask_from_batched_planes() -> None:
    first = encode_state(UltimateTicTacToe()).planes
    second = encode_state(UltimateTicTacToe().apply(Move(1, 1, 0, 0))).planes
    masks = legal_mask_from_planes(np.stack([first, second]))
    assert masks.shape == (2, 81)
    assert masks[0].sum() == 81
    assert masks[1].sum() == 9


def test_move_codec_round_trip() -> None:
    for move in ALL_MOVES:
        assert decode_move(encode_move(move)) == move
    for index in range(81):
        assert encode_move(decode_move(index)) == index
    assert encode_move(Move(1, 2, 2, 0)) == 27 + 18 + 6
    with pytest.raises(ValueError):
        encode_move(Move(0, 0, 0, 3))
    with pytest.raises(ValueError):
        decode_move(-1)


def test_action_plane_round_trip() -> None:
    values = np.arange(81, dtype=np.float32)
    plane = action_plane(values)
    assert plane[3, 3] == Move(1, 1, 0, 0).index
    assert np.array_equal(plane_actions(plane), values)
