"""Fixed-priority heuristic opponent for Tic Tac Toe."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Optional

from .game import CENTER, CORNERS, Board, Mark, available_moves, evaluate, place


def _completing_move(board: Board, mark: Mark) -> Optional[int]:
    # One-ply lookahead, lowest index first.
    for idx in available_moves(board):
        if evaluate(place(board, idx, mark)).winner is mark:
            return idx
    return None


def select_computer_move(
    board: Board,
    computer_mark: Mark,
    opponent_mark: Mark,
    rng: Optional[random.Random] = None,
) -> Optional[int]:
    """Pick the computer's next cell, or ``None`` when the board is full.

    Rules, first match wins:
      1. complete one of our own lines
      2. block the opponent's completing cell
      3. take the center
      4. take a random free corner
      5. take any random free cell
    """
    rng = rng or random
    moves = available_moves(board)
    if not moves:
        return None

    win = _completing_move(board, computer_mark)
    if win is not None:
        return win
    block = _completing_move(board, opponent_mark)
    if block is not None:
        return block

    if board[CENTER] is None:
        return CENTER
    corners = [i for i in CORNERS if board[i] is None]
    if corners:
        return rng.choice(corners)
    return rng.choice(moves)


@dataclass
class HeuristicAI:
    """Computer player bound to one mark.

    ``rng`` can be seeded for reproducible corner and fallback picks.
    """

    player: Mark = Mark.O
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def choose(self, board: Board) -> Optional[int]:
        return select_computer_move(board, self.player, self.player.other, self.rng)
