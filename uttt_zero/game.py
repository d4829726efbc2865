"""Core rules of Ultimate Tic-Tac-Toe used by the search and training code.

The board is organised as nine 3x3 sub-boards.  A move is the quadruple
``(sub_row, sub_col, cell_row, cell_col)``; its flat action index is
``sub_row * 27 + sub_col * 9 + cell_row * 3 + cell_col``.  Internally the
sub-boards and their cells are stored in row-major order, so the action index
of a move is also ``sub_index * 9 + cell_index``.

States are immutable: :meth:`UltimateTicTacToe.apply` returns a new state and
never touches the one it was called on.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

Player = str  # Either "X" or "O"

EMPTY = " "
ACTIVE = " "
DRAW = "T"
PLAYERS: Tuple[Player, Player] = ("X", "O")

WIN_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)

NUM_ACTIONS = 81


class IllegalMoveError(RuntimeError):
    """Raised when a move is attempted that is not legal in the current state."""


class NotTerminalError(RuntimeError):
    """Raised when the result of a game that is still running is requested."""


class Move(NamedTuple):
    sub_row: int
    sub_col: int
    cell_row: int
    cell_col: int

    @property
    def sub_index(self) -> int:
        return self.sub_row * 3 + self.sub_col

    @property
    def cell_index(self) -> int:
        return self.cell_row * 3 + self.cell_col

    @property
    def index(self) -> int:
        return self.sub_row * 27 + self.sub_col * 9 + self.cell_row * 3 + self.cell_col

    @classmethod
    def from_index(cls, index: int) -> "Move":
        if not 0 <= index < NUM_ACTIONS:
            raise ValueError("action index must be in range 0..80")
        sub_row, rest = divmod(int(index), 27)
        sub_col, rest = divmod(rest, 9)
        cell_row, cell_col = divmod(rest, 3)
        return cls(sub_row, sub_col, cell_row, cell_col)

    def __str__(self) -> str:
        return f"Board({self.sub_row},{self.sub_col}) Cell({self.cell_row},{self.cell_col})"


ALL_MOVES: Tuple[Move, ...] = tuple(Move.from_index(index) for index in range(NUM_ACTIONS))


def opponent(player: Player) -> Player:
    return "O" if player == "X" else "X"


def line_status(marks: Sequence[str]) -> str:
    """Return the status of a 3x3 grid of marks.

    The first of the eight lines whose three entries hold the same player mark
    decides the winner.  A grid without a winning line is drawn once no entry
    is empty or active, and active otherwise.  Drawn entries (``"T"``) never
    complete a line, which lets the same check run over sub-board statuses.
    """

    for a, b, c in WIN_LINES:
        if marks[a] in PLAYERS and marks[a] == marks[b] == marks[c]:
            return marks[a]
    if all(mark != EMPTY for mark in marks):
        return DRAW
    return ACTIVE


def _empty_boards() -> Tuple[Tuple[str, ...], ...]:
    return tuple((EMPTY,) * 9 for _ in range(9))


@dataclass(frozen=True)
class UltimateTicTacToe:
    """A single, immutable Ultimate Tic-Tac-Toe position."""

    boards: Tuple[Tuple[str, ...], ...] = field(default_factory=_empty_boards)
    macro_board: Tuple[str, ...] = (ACTIVE,) * 9
    status: str = ACTIVE
    to_move: Player = "X"
    required: Optional[Tuple[int, int]] = None

    @classmethod
    def from_moves(cls, moves: Iterable[Move]) -> "UltimateTicTacToe":
        state = cls()
        for move in moves:
            state = state.apply(move)
        return state

    # ------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return self.status != ACTIVE

    @property
    def winner(self) -> Optional[Player]:
        return self.status if self.status in PLAYERS else None

    @property
    def is_draw(self) -> bool:
        return self.status == DRAW

    @property
    def required_index(self) -> Optional[int]:
        if self.required is None:
            return None
        return self.required[0] * 3 + self.required[1]

    def sub_board_status(self, sub_row: int, sub_col: int) -> str:
        return self.macro_board[sub_row * 3 + sub_col]

    def cell(self, move: Move) -> str:
        return self.boards[move.sub_index][move.cell_index]

    # ------------------------------------------------------------------
    def legal_moves(self) -> List[Move]:
        if self.is_terminal:
            return []

        required = self.required_index
        if required is not None:
            candidates: Sequence[int] = (required,)
        else:
            candidates = [idx for idx, status in enumerate(self.macro_board) if status == ACTIVE]

        moves: List[Move] = []
        for sub_idx in candidates:
            sub_row, sub_col = divmod(sub_idx, 3)
            for cell_idx, value in enumerate(self.boards[sub_idx]):
                if value == EMPTY:
                    moves.append(Move(sub_row, sub_col, *divmod(cell_idx, 3)))
        return moves

    def legal_indices(self) -> List[int]:
        return [move.index for move in self.legal_moves()]

    def apply(self, move: Move) -> "UltimateTicTacToe":
        if self.is_terminal:
            raise IllegalMoveError("Game has already finished")
        if len(move) != 4:
            raise IllegalMoveError(f"Move {tuple(move)} must have four coordinates")
        move = Move(*move)
        if any(not 0 <= component < 3 for component in move):
            raise IllegalMoveError(f"Move {tuple(move)} is outside the board")

        sub_idx = move.sub_row * 3 + move.sub_col
        cell_idx = move.cell_row * 3 + move.cell_col
        if self.required is not None and (move.sub_row, move.sub_col) != self.required:
            raise IllegalMoveError(
                f"Move must be played in sub-board {self.required}, not {(move.sub_row, move.sub_col)}"
            )
        if self.macro_board[sub_idx] != ACTIVE:
            raise IllegalMoveError(f"Sub-board {(move.sub_row, move.sub_col)} is already decided")
        if self.boards[sub_idx][cell_idx] != EMPTY:
            raise IllegalMoveError(f"Cell {(move.cell_row, move.cell_col)} is already occupied")

        board = list(self.boards[sub_idx])
        board[cell_idx] = self.to_move
        boards = list(self.boards)
        boards[sub_idx] = tuple(board)

        macro = list(self.macro_board)
        macro[sub_idx] = line_status(board)
        status = line_status(macro)

        required: Optional[Tuple[int, int]] = None
        if status == ACTIVE and macro[cell_idx] == ACTIVE:
            required = (move.cell_row, move.cell_col)

        return UltimateTicTacToe(
            boards=tuple(boards),
            macro_board=tuple(macro),
            status=status,
            to_move=opponent(self.to_move),
            required=required,
        )

    def result(self, perspective: Player) -> int:
        """Return +1/-1/0 for ``perspective`` once the game is over."""

        if not self.is_terminal:
            raise NotTerminalError("result requested before the game ended")
        if self.status == DRAW:
            return 0
        return 1 if self.status == perspective else -1

    def position_key(self) -> str:
        """Lossless key over every cell, the mover and the required sub-board."""

        cells = "|".join("".join(board) for board in self.boards)
        required = "*" if self.required is None else f"{self.required[0]}{self.required[1]}"
        return f"{self.to_move}:{cells}#{required}"

    # ------------------------------------------------------------------
    def render_ascii(self) -> str:
        rows: List[str] = []
        for big_row in range(3):
            for inner_row in range(3):
                row_cells: List[str] = []
                for big_col in range(3):
                    board = self.boards[big_row * 3 + big_col]
                    start = inner_row * 3
                    row_cells.append(
                        " ".join(
                            board[start + offset] if board[start + offset] != EMPTY else "."
                            for offset in range(3)
                        )
                    )
                rows.append(" || ".join(row_cells))
            if big_row < 2:
                rows.append("======++=======++======")
        return "\n".join(rows)


# Functional surface mirroring the state methods.


def legal_moves(state: UltimateTicTacToe) -> List[Move]:
    return state.legal_moves()


def apply_move(state: UltimateTicTacToe, move: Move) -> UltimateTicTacToe:
    return state.apply(move)


def is_terminal(state: UltimateTicTacToe) -> bool:
    return state.is_terminal


def result(state: UltimateTicTacToe, perspective: Player) -> int:
    return state.result(perspective)


def position_key(state: UltimateTicTacToe) -> str:
    return state.position_key()


__all__ = [
    "ACTIVE",
    "ALL_MOVES",
    "DRAW",
    "EMPTY",
    "IllegalMoveError",
    "Move",
    "NUM_ACTIONS",
    "NotTerminalError",
    "Player",
    "UltimateTicTacToe",
    "WIN_LINES",
    "apply_move",
    "is_terminal",
    "legal_moves",
    "line_status",
    "opponent",
    "position_key",
    "result",
]
