"""FastAPI-powered web UI for playing Tic Tac Toe in the browser."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from .controller import COMPUTER_MOVE_DELAY, GameController, Mode, Session
from .game import available_moves

logger = logging.getLogger(__name__)


@dataclass
class GameSession:
    """Registered controller plus the last time a client used it."""

    controller: GameController
    touched_at: float = field(default_factory=lambda: time.time())

    def touch(self) -> None:
        self.touched_at = time.time()


SESSIONS: Dict[str, GameSession] = {}
app = FastAPI(title="Tic Tac Toe", description="Tic Tac Toe played in the browser")

SESSION_TTL_SECONDS = 60 * 30  # 30 minutes


class NewGameRequest(BaseModel):
    """Request payload for starting a new game."""

    mode: Mode = Field(default=Mode.SINGLE_PLAYER, description="Who plays O")


class MoveRequest(BaseModel):
    """Request payload for playing a cell on an existing game."""

    index: int = Field(ge=0, le=8, description="Row-major cell index")


class ModeRequest(BaseModel):
    mode: Mode


def _cleanup_sessions() -> None:
    """Drop games nobody has touched within the TTL."""

    now = time.time()
    expired = [
        game_id
        for game_id, entry in list(SESSIONS.items())
        if now - entry.touched_at > SESSION_TTL_SECONDS
    ]
    for game_id in expired:
        entry = SESSIONS.pop(game_id)
        entry.controller.cancel_pending()
        logger.info("Evicted idle game %s", game_id)


def _create_session(mode: Mode) -> str:
    """Create a new controller and register it for later access."""

    _cleanup_sessions()
    controller = GameController(mode, delay=COMPUTER_MOVE_DELAY)
    session_id = uuid.uuid4().hex
    SESSIONS[session_id] = GameSession(controller=controller)
    logger.info("Created %s game %s", mode.value, session_id)
    return session_id


def _get_controller(game_id: str) -> GameController:
    try:
        entry = SESSIONS[game_id]
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Game not found") from exc
    entry.touch()
    return entry.controller


def status_text(session: Session) -> str:
    """Status line shown under the board."""
    if session.result.winner is not None:
        return f"Winner: {session.result.winner.value}"
    if session.result.drawn:
        return "It's a Draw!"
    mark = session.active_mark.value
    if session.mode is Mode.SINGLE_PLAYER:
        label = f"You ({mark})" if session.human_turn else f"Computer ({mark})"
    else:
        label = f"Player {mark}"
    return f"Turn: {label}"


def _serialize_session(
    game_id: str, controller: GameController, session: Optional[Session] = None
) -> Dict[str, object]:
    session = session or controller.session
    move_log: List[Dict[str, object]] = [
        {"player": move.player.value, "index": move.index}
        for move in session.move_log
    ]
    state: Dict[str, object] = {
        "id": game_id,
        "mode": session.mode.value,
        "board": [c.value if c is not None else "" for c in session.board],
        "currentPlayer": session.active_mark.value,
        "winner": session.result.winner.value if session.result.winner else None,
        "drawn": session.result.drawn,
        "active": session.active,
        "phase": session.phase.value,
        "status": status_text(session),
        "availableMoves": available_moves(session.board) if session.active else [],
        "moveLog": move_log,
        "lastMove": move_log[-1] if move_log else None,
        "computerPending": session.computer_pending,
        "canSwitchMode": session.mode_switch_allowed,
    }
    return state


@app.post("/api/game")
async def create_game(request: NewGameRequest) -> Dict[str, object]:
    game_id = _create_session(request.mode)
    return _serialize_session(game_id, SESSIONS[game_id].controller)


@app.get("/api/game/{game_id}")
async def get_game(game_id: str) -> Dict[str, object]:
    controller = _get_controller(game_id)
    return _serialize_session(game_id, controller)


@app.post("/api/game/{game_id}/move")
async def make_move(game_id: str, request: MoveRequest) -> Dict[str, object]:
    controller = _get_controller(game_id)
    accepted = controller.request_move(request.index)
    state = _serialize_session(game_id, controller)
    state["accepted"] = accepted
    return state


@app.post("/api/game/{game_id}/restart")
async def restart_game(game_id: str) -> Dict[str, object]:
    controller = _get_controller(game_id)
    controller.start_or_reset(controller.session.mode)
    return _serialize_session(game_id, controller)


@app.post("/api/game/{game_id}/mode")
async def change_mode(game_id: str, request: ModeRequest) -> Dict[str, object]:
    controller = _get_controller(game_id)
    if not controller.can_switch_mode():
        raise HTTPException(
            status_code=409,
            detail="Mode can only change before the first move or after the game ends",
        )
    controller.start_or_reset(request.mode)
    return _serialize_session(game_id, controller)


@app.websocket("/ws/game/{game_id}")
async def game_updates(websocket: WebSocket, game_id: str) -> None:
    await websocket.accept()
    entry = SESSIONS.get(game_id)
    if entry is None:
        await websocket.send_json({"type": "error", "message": "Game not found"})
        await websocket.close()
        return
    entry.touch()
    controller = entry.controller

    updates: "asyncio.Queue[Session]" = asyncio.Queue()
    unsubscribe = controller.subscribe(updates.put_nowait)

    async def push_updates() -> None:
        while True:
            session = await updates.get()
            entry.touch()
            await websocket.send_json(_serialize_session(game_id, controller, session))

    await websocket.send_json(_serialize_session(game_id, controller))
    pusher = asyncio.create_task(push_updates())
    try:
        # The client never sends anything; receiving only surfaces the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        pusher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pusher


@app.get("/", response_class=HTMLResponse)
def index() -> str:
    return HTML_PAGE


HTML_PAGE = """<!DOCTYPE html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <title>Tic Tac Toe</title>
    <style>
      :root {
        color-scheme: light;
        font-family: system-ui, -apple-system, BlinkMacSystemFont, \"Segoe UI\", sans-serif;
      }
      * {
        box-sizing: border-box;
      }
      body {
        margin: 0;
        background: #fbfbfb;
        color: #282c34;
        min-height: 100vh;
        display: flex;
        justify-content: center;
        padding: 2rem 1rem 3rem;
      }
      main {
        width: min(520px, 100%);
        text-align: center;
      }
      h1 {
        color: #1976d2;
        letter-spacing: 0.04em;
      }
      .board {
        display: grid;
        grid-template-columns: repeat(3, 1fr);
        gap: 6px;
        margin: 0 auto 1.5rem;
        width: min(330px, 100%);
        border: 3px solid #ff9800;
        border-radius: 10px;
        padding: 6px;
      }
      .cell {
        aspect-ratio: 1 / 1;
        font-size: 2.6rem;
        font-weight: 700;
        border: 1px solid #ff9800;
        border-radius: 6px;
        background: #fff;
        cursor: pointer;
      }
      .cell.x {
        color: #1976d2;
      }
      .cell.o {
        color: #424242;
      }
      .cell.last-move {
        background: #fff3e0;
      }
      .cell:disabled {
        cursor: default;
      }
      .panel {
        display: flex;
        flex-direction: column;
        gap: 0.75rem;
        align-items: center;
      }
      .status {
        color: #ff9800;
        font-weight: 600;
        min-height: 1.5em;
      }
      .status.thinking {
        opacity: 0.7;
      }
      button.restart {
        padding: 0.5rem 1.4rem;
        border-radius: 6px;
        border: none;
        background: #1976d2;
        color: #fff;
        font-weight: 600;
        cursor: pointer;
      }
    </style>
  </head>
  <body>
    <main>
      <h1>Tic Tac Toe</h1>
      <div id=\"board\" class=\"board\" role=\"grid\" aria-label=\"Tic Tac Toe board\"></div>
      <div class=\"panel\">
        <label>
          Mode:
          <select id=\"mode\">
            <option value=\"single-player\">1P (vs Computer)</option>
            <option value=\"two-player\">2P (local)</option>
          </select>
        </label>
        <div id=\"status\" class=\"status\" aria-live=\"polite\"></div>
        <button id=\"restart\" class=\"restart\" type=\"button\">Restart</button>
      </div>
    </main>
    <script>
      const boardEl = document.getElementById('board');
      const statusEl = document.getElementById('status');
      const modeEl = document.getElementById('mode');
      const restartEl = document.getElementById('restart');
      let gameId = null;
      let gameState = null;
      let socket = null;

      async function post(url, body) {
        const response = await fetch(url, {
          method: 'POST',
          headers: { 'Content-Type': 'application/json' },
          body: JSON.stringify(body || {}),
        });
        const data = await response.json();
        if (!response.ok) {
          throw new Error(data.detail || 'Request failed');
        }
        return data;
      }

      function subscribe() {
        if (socket) {
          socket.close();
        }
        const scheme = window.location.protocol === 'https:' ? 'wss' : 'ws';
        socket = new WebSocket(`${scheme}://${window.location.host}/ws/game/${gameId}`);
        socket.addEventListener('message', (event) => {
          const data = JSON.parse(event.data);
          if (data.type === 'error') {
            statusEl.textContent = data.message;
            return;
          }
          setState(data);
        });
      }

      async function startGame() {
        const data = await post('/api/game', { mode: modeEl.value });
        gameId = data.id;
        setState(data);
        subscribe();
      }

      async function sendMove(index) {
        if (!gameId) return;
        setState(await post(`/api/game/${gameId}/move`, { index }));
      }

      function renderBoard() {
        boardEl.innerHTML = '';
        const lastMove = gameState.lastMove;
        gameState.board.forEach((value, index) => {
          const cell = document.createElement('button');
          cell.type = 'button';
          cell.classList.add('cell');
          cell.setAttribute('aria-label', `cell-${index}`);
          if (value) {
            cell.textContent = value;
            cell.classList.add(value === 'X' ? 'x' : 'o');
          }
          if (lastMove && lastMove.index === index) {
            cell.classList.add('last-move');
          }
          cell.disabled = Boolean(value) || !gameState.active;
          cell.addEventListener('click', () => sendMove(index));
          boardEl.appendChild(cell);
        });
      }

      function setState(data) {
        gameState = data;
        renderBoard();
        statusEl.textContent = data.status;
        statusEl.classList.toggle('thinking', data.computerPending);
        modeEl.value = data.mode;
        modeEl.disabled = !data.canSwitchMode;
      }

      modeEl.addEventListener('change', async () => {
        try {
          setState(await post(`/api/game/${gameId}/mode`, { mode: modeEl.value }));
        } catch (error) {
          statusEl.textContent = error.message;
          modeEl.value = gameState.mode;
        }
      });

      restartEl.addEventListener('click', async () => {
        setState(await post(`/api/game/${gameId}/restart`));
      });

      startGame();
    </script>
  </body>
</html>
"""
