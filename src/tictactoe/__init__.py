"""Tic Tac Toe package exposing game rules, the computer opponent, and the web application."""

from .ai import HeuristicAI, select_computer_move
from .controller import GameController, Mode, Session
from .game import GameResult, Mark, available_moves, evaluate, initial_board
from .ui import app

__all__ = [
    "GameController",
    "GameResult",
    "HeuristicAI",
    "Mark",
    "Mode",
    "Session",
    "app",
    "available_moves",
    "evaluate",
    "initial_board",
    "select_computer_move",
]
