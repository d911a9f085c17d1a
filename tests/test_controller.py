"""Tests for the game session controller."""

import asyncio
import random
from typing import Callable, List

import pytest

from tictactoe.controller import GameController, Mode, Phase, Session
from tictactoe.game import IN_PROGRESS, Mark, initial_board

X, O = Mark.X, Mark.O


class _Handle:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Collects scheduled callbacks until the test fires them."""

    def __init__(self) -> None:
        self.handles: List[_Handle] = []
        self.delays: List[float] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(callback)
        self.handles.append(handle)
        self.delays.append(delay)
        return handle

    @property
    def pending(self) -> List[_Handle]:
        return [h for h in self.handles if not h.cancelled]

    def fire(self) -> None:
        for handle in self.pending:
            handle.cancelled = True
            handle.callback()


@pytest.fixture
def scheduler():
    return ManualScheduler()


def make_controller(scheduler, mode=Mode.SINGLE_PLAYER, seed=0):
    return GameController(mode, scheduler=scheduler, delay=0.4, rng=random.Random(seed))


def test_starts_empty_with_x_to_move(scheduler):
    controller = make_controller(scheduler)
    s = controller.session
    assert s.board == initial_board()
    assert s.active_mark is X
    assert s.result == IN_PROGRESS
    assert s.active
    assert s.phase is Phase.EMPTY


def test_human_center_schedules_computer_reply(scheduler):
    controller = make_controller(scheduler)
    assert controller.request_move(4) is True

    s = controller.session
    assert s.board[4] is X
    assert s.active_mark is O
    assert s.result.in_progress
    assert s.computer_pending
    assert len(scheduler.pending) == 1
    assert scheduler.delays == [0.4]


def test_computer_reply_applied_when_timer_fires(scheduler):
    controller = make_controller(scheduler)
    controller.request_move(4)
    scheduler.fire()

    s = controller.session
    assert s.board.count(O) == 1
    assert s.active_mark is X
    assert not s.computer_pending
    # Center is taken, so the computer picks a corner.
    assert s.last_move.player is O
    assert s.last_move.index in (0, 2, 6, 8)


def test_human_cannot_move_for_computer(scheduler):
    controller = make_controller(scheduler)
    controller.request_move(4)
    before = controller.session
    assert controller.request_move(0) is False
    assert controller.session is before


def test_occupied_cell_rejected(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    controller.request_move(0)
    before = controller.session
    assert controller.request_move(0) is False
    assert controller.session is before
    assert controller.request_move(0) is False
    assert controller.session is before


def test_out_of_range_index_raises_without_change(scheduler):
    controller = make_controller(scheduler)
    before = controller.session
    with pytest.raises(ValueError):
        controller.request_move(9)
    assert controller.session is before


def test_two_player_alternates_without_computer(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    controller.request_move(0)
    controller.request_move(4)
    s = controller.session
    assert s.board[0] is X
    assert s.board[4] is O
    assert s.active_mark is X
    assert scheduler.handles == []


def play(controller, moves):
    for idx in moves:
        assert controller.request_move(idx)


def test_win_ends_session(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    play(controller, [0, 3, 1, 4, 2])
    s = controller.session
    assert s.result.winner is X
    assert not s.active
    assert s.phase is Phase.WON_BY_X


def test_finished_session_rejects_moves(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    play(controller, [0, 3, 1, 4, 2])
    before = controller.session
    assert controller.request_move(8) is False
    assert controller.session is before


def test_draw_ends_session(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    # X O X / X O O / O X X
    play(controller, [0, 1, 2, 4, 3, 5, 7, 6, 8])
    s = controller.session
    assert s.result.drawn
    assert s.phase is Phase.DRAW
    assert not s.active


def test_computer_completes_open_line(scheduler):
    controller = make_controller(scheduler)
    controller.request_move(0)
    scheduler.fire()  # O: center
    controller.request_move(1)
    scheduler.fire()  # O: blocks at 2
    assert controller.session.board[2] is O
    controller.request_move(3)
    scheduler.fire()  # O: completes 2-4-6
    s = controller.session
    assert s.board[6] is O
    assert s.result.winner is O
    assert not s.active


def test_reset_restores_initial_state(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    play(controller, [0, 3, 1, 4, 2])
    s = controller.start_or_reset(Mode.TWO_PLAYER)
    assert s.board == initial_board()
    assert s.active_mark is X
    assert s.result == IN_PROGRESS
    assert s.active
    assert s.move_log == ()


def test_reset_cancels_pending_computer_move(scheduler):
    controller = make_controller(scheduler)
    controller.request_move(4)
    handle = scheduler.handles[0]
    controller.start_or_reset(Mode.SINGLE_PLAYER)
    assert handle.cancelled
    assert not controller.session.computer_pending
    assert controller.session.board == initial_board()


def test_stale_computer_move_is_dropped(scheduler):
    controller = make_controller(scheduler)
    controller.request_move(4)
    stale = scheduler.handles[0]
    controller.start_or_reset(Mode.TWO_PLAYER)
    # A timer that slipped past cancellation must not touch the new game.
    stale.callback()
    s = controller.session
    assert s.board == initial_board()
    assert s.active_mark is X


def test_cancel_pending_clears_flag(scheduler):
    controller = make_controller(scheduler)
    controller.request_move(4)
    controller.cancel_pending()
    assert scheduler.pending == []
    assert not controller.session.computer_pending
    # Board keeps the human move; the computer simply did not reply.
    assert controller.session.board[4] is X


def test_mode_switch_allowed_only_when_empty_or_finished(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    assert controller.can_switch_mode()
    controller.request_move(0)
    assert not controller.can_switch_mode()
    play(controller, [3, 1, 4, 2])
    assert controller.can_switch_mode()
    controller.start_or_reset(Mode.SINGLE_PLAYER)
    assert controller.can_switch_mode()
    assert controller.session.mode is Mode.SINGLE_PLAYER


def test_listeners_receive_each_snapshot(scheduler):
    controller = make_controller(scheduler)
    seen: List[Session] = []
    unsubscribe = controller.subscribe(seen.append)

    controller.request_move(4)
    scheduler.fire()
    assert [s.board.count(None) for s in seen] == [8, 7]
    assert seen[0].computer_pending
    assert seen[-1] is controller.session

    unsubscribe()
    controller.start_or_reset(Mode.SINGLE_PLAYER)
    assert len(seen) == 2


def test_rejected_move_publishes_nothing(scheduler):
    controller = make_controller(scheduler, mode=Mode.TWO_PLAYER)
    controller.request_move(0)
    seen: List[Session] = []
    controller.subscribe(seen.append)
    controller.request_move(0)
    assert seen == []


class FirstChoice(random.Random):
    """Always takes the first candidate, so corner picks are predictable."""

    def choice(self, seq):
        return seq[0]


def test_human_winning_move_schedules_nothing(scheduler):
    controller = GameController(scheduler=scheduler, rng=FirstChoice())
    controller.request_move(0)
    scheduler.fire()  # O: center
    controller.request_move(8)
    scheduler.fire()  # O: first free corner, 2
    controller.request_move(6)  # X blocks 2-4-6
    scheduler.fire()  # O: blocks column 0-3-6 at 3
    assert controller.session.board[3] is O
    handles_before = len(scheduler.handles)

    assert controller.request_move(7) is True  # X completes 6-7-8
    s = controller.session
    assert s.result.winner is X
    assert not s.active
    assert not s.computer_pending
    assert len(scheduler.handles) == handles_before
    assert scheduler.pending == []


def test_default_scheduler_needs_running_loop():
    with pytest.raises(ValueError):
        GameController(Mode.SINGLE_PLAYER)


def test_default_scheduler_uses_running_loop():
    async def scenario():
        controller = GameController(Mode.SINGLE_PLAYER, delay=0.0, rng=random.Random(0))
        assert controller.request_move(4) is True
        assert controller.session.computer_pending
        await asyncio.sleep(0.05)
        return controller.session

    s = asyncio.run(scenario())
    assert not s.computer_pending
    assert s.board.count(O) == 1
    assert s.active_mark is X


def test_failing_listener_does_not_break_move(scheduler):
    controller = make_controller(scheduler)
    seen: List[Session] = []

    def broken(session):
        raise RuntimeError("listener failed")

    controller.subscribe(broken)
    controller.subscribe(seen.append)

    assert controller.request_move(4) is True
    assert controller.session.board[4] is X
    assert seen == [controller.session]
    assert len(scheduler.pending) == 1
