"""Core rules for classic 3x3 Tic Tac Toe.

Every function here is pure: boards are immutable tuples and nothing is
mutated in place, so the controller can keep one snapshot per transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

BOARD_SIZE = 9


class Mark(str, Enum):
    X = "X"
    O = "O"

    @property
    def other(self) -> "Mark":
        return Mark.O if self is Mark.X else Mark.X


Cell = Optional[Mark]
Board = Tuple[Cell, ...]

# Rows, then columns, then diagonals. The order decides which line wins on
# a constructed board with more than one complete line.
WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)

CENTER = 4
CORNERS: Tuple[int, ...] = (0, 2, 6, 8)


@dataclass(frozen=True)
class GameResult:
    winner: Optional[Mark] = None
    drawn: bool = False

    @property
    def in_progress(self) -> bool:
        return self.winner is None and not self.drawn

    @property
    def is_terminal(self) -> bool:
        return not self.in_progress


IN_PROGRESS = GameResult()
DRAW = GameResult(drawn=True)


def won_by(mark: Mark) -> GameResult:
    return GameResult(winner=mark)


def initial_board() -> Board:
    return (None,) * BOARD_SIZE


def is_full(board: Board) -> bool:
    return all(c is not None for c in board)


def evaluate(board: Board) -> GameResult:
    """Classify ``board`` as won, drawn or still in progress.

    The first complete line in ``WINNING_LINES`` order decides the winner.
    """
    for a, b, c in WINNING_LINES:
        v = board[a]
        if v is not None and v == board[b] == board[c]:
            return won_by(v)
    if is_full(board):
        return DRAW
    return IN_PROGRESS


def available_moves(board: Board) -> List[int]:
    """Indices of empty cells in ascending order."""
    return [i for i, c in enumerate(board) if c is None]


def place(board: Board, index: int, mark: Mark) -> Board:
    """Return a copy of ``board`` with ``mark`` written at ``index``."""
    if len(board) != BOARD_SIZE:
        raise ValueError(f"Board must have {BOARD_SIZE} cells, got {len(board)}")
    if not 0 <= index < BOARD_SIZE:
        raise ValueError(f"Cell index {index} is outside 0..{BOARD_SIZE - 1}")
    cells = list(board)
    cells[index] = mark
    return tuple(cells)
