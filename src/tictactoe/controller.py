"""Session state machine for a single Tic Tac Toe game.

The controller owns one immutable :class:`Session` and replaces it wholesale
on every accepted move or reset. Listeners receive each new snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from .ai import HeuristicAI
from .game import (
    BOARD_SIZE,
    IN_PROGRESS,
    Board,
    GameResult,
    Mark,
    evaluate,
    initial_board,
    place,
)

logger = logging.getLogger(__name__)

HUMAN_MARK = Mark.X
COMPUTER_MARK = Mark.O
COMPUTER_MOVE_DELAY = 0.4  # seconds


class Mode(str, Enum):
    SINGLE_PLAYER = "single-player"
    TWO_PLAYER = "two-player"


class Phase(str, Enum):
    EMPTY = "empty"
    IN_PROGRESS = "in-progress"
    WON_BY_X = "won-by-x"
    WON_BY_O = "won-by-o"
    DRAW = "draw"


@dataclass(frozen=True)
class Move:
    player: Mark
    index: int


@dataclass(frozen=True)
class Session:
    board: Board = field(default_factory=initial_board)
    active_mark: Mark = Mark.X
    mode: Mode = Mode.SINGLE_PLAYER
    result: GameResult = IN_PROGRESS
    active: bool = True
    move_log: Tuple[Move, ...] = ()
    computer_pending: bool = False

    @property
    def phase(self) -> Phase:
        if self.result.winner is Mark.X:
            return Phase.WON_BY_X
        if self.result.winner is Mark.O:
            return Phase.WON_BY_O
        if self.result.drawn:
            return Phase.DRAW
        if all(c is None for c in self.board):
            return Phase.EMPTY
        return Phase.IN_PROGRESS

    @property
    def mode_switch_allowed(self) -> bool:
        return self.phase is Phase.EMPTY or self.result.is_terminal

    @property
    def human_turn(self) -> bool:
        if self.mode is Mode.TWO_PLAYER:
            return True
        return self.active_mark is HUMAN_MARK

    @property
    def last_move(self) -> Optional[Move]:
        return self.move_log[-1] if self.move_log else None


Listener = Callable[[Session], None]


class GameController:
    """Applies moves and resets to a :class:`Session`.

    ``scheduler`` must provide ``call_later(delay, callback)`` returning a
    handle with ``cancel()``; an asyncio event loop qualifies. When omitted,
    the loop running at construction time is used, so building a controller
    outside a running loop requires an explicit scheduler.
    """

    def __init__(
        self,
        mode: Mode = Mode.SINGLE_PLAYER,
        *,
        scheduler: Optional[Any] = None,
        delay: float = COMPUTER_MOVE_DELAY,
        rng: Optional[random.Random] = None,
    ) -> None:
        if scheduler is None:
            try:
                scheduler = asyncio.get_running_loop()
            except RuntimeError as exc:
                raise ValueError(
                    "GameController needs a scheduler when no event loop is running"
                ) from exc
        self._scheduler = scheduler
        self._delay = delay
        self._ai = HeuristicAI(player=COMPUTER_MARK, rng=rng or random.Random())
        self._pending: Optional[Any] = None
        self._listeners: List[Listener] = []
        self._session = Session(mode=mode)

    @property
    def session(self) -> Session:
        return self._session

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for new snapshots; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def can_switch_mode(self) -> bool:
        return self._session.mode_switch_allowed

    def start_or_reset(self, mode: Mode) -> Session:
        self._cancel_handle()
        logger.info("Starting %s game", mode.value)
        self._publish(Session(mode=mode))
        return self._session

    def request_move(self, index: int) -> bool:
        """Play ``index`` for the side to move on behalf of a human.

        Returns ``False`` without touching the session when the game is over,
        the cell is taken, or it is the computer's turn.
        """
        if not 0 <= index < BOARD_SIZE:
            raise ValueError(f"Cell index {index} is outside 0..{BOARD_SIZE - 1}")
        s = self._session
        if not s.active or s.board[index] is not None or not s.human_turn:
            return False

        after = self._after_move(s, index)
        if self._computer_to_move(after):
            self._cancel_handle()
            self._pending = self._scheduler.call_later(self._delay, self._run_computer_move)
            after = replace(after, computer_pending=True)
        self._publish(after)
        return True

    def cancel_pending(self) -> None:
        self._cancel_handle()
        if self._session.computer_pending:
            self._publish(replace(self._session, computer_pending=False))

    # ---- internals ----

    def _cancel_handle(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    @staticmethod
    def _computer_to_move(s: Session) -> bool:
        return (
            s.mode is Mode.SINGLE_PLAYER
            and s.active
            and s.result.in_progress
            and s.active_mark is COMPUTER_MARK
        )

    @staticmethod
    def _after_move(s: Session, index: int) -> Session:
        """Snapshot that results from the side to move playing ``index``."""
        mark = s.active_mark
        board = place(s.board, index, mark)
        result = evaluate(board)
        logger.debug("%s plays %d", mark.value, index)
        if result.winner is not None:
            logger.info("Game won by %s", result.winner.value)
        elif result.drawn:
            logger.info("Game drawn")
        return replace(
            s,
            board=board,
            active_mark=mark.other,
            result=result,
            active=result.in_progress,
            move_log=s.move_log + (Move(mark, index),),
            computer_pending=False,
        )

    def _run_computer_move(self) -> None:
        self._pending = None
        s = self._session
        index = self._ai.choose(s.board) if self._computer_to_move(s) else None
        if index is None or s.board[index] is not None:
            logger.debug("Dropping stale computer move")
            if s.computer_pending:
                self._publish(replace(s, computer_pending=False))
            return
        self._publish(self._after_move(s, index))

    def _publish(self, session: Session) -> None:
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener %r failed", listener)
