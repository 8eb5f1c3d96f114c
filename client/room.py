"""
GameRoom: one joined room, wiring the session state machine to the
connection, the REST API, the turn timer and the placement preview.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from engine.board import PlayerSlot
from schemas.commands import MoveCommand, PassCommand, board_payload, to_wire
from schemas.game_state import GameStatus, Position
from .api import GameApi
from .config import ClientSettings
from .connection import (
    Connected, ConnectionEvent, ConnectionFailed, ConnectionManager, Disconnected,
    MessageReceived, Transport, WebSocketTransport,
)
from .exceptions import ClientError, ConnectionExhausted
from .preview import PlacementPreview
from .session import ALREADY_PASSED, NOT_PLAYING, NOT_YOUR_TURN, GameSession
from .timer import TimerReading, TurnTicker, session_reading

logger = logging.getLogger(__name__)

NO_TRIAL = "no trial placement to confirm"
NOT_CONNECTED = "not connected"

# Back-to-back snapshots the session may reject before a resync stops
MAX_REJECTED_SNAPSHOTS = 3


class GameRoom:
    """
    Client for a single room.

    Usage:
        room = GameRoom(room_id, ClientSettings.from_env(), user_id="42")
        room.start()
        ...
        await room.close()
    """

    def __init__(
        self,
        room_id: str,
        settings: ClientSettings,
        user_id: Optional[str] = None,
        api: Optional[GameApi] = None,
        transport_factory: Callable[[], Transport] = WebSocketTransport,
        on_tick: Optional[Callable[[TimerReading], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.room_id = room_id
        self.settings = settings
        self.api = api or GameApi(settings.api_url, settings.token, settings.request_timeout)
        self.session = GameSession(user_id, on_resync=self.request_resync)
        self.preview = PlacementPreview(self.session)
        self.connection = ConnectionManager(
            transport_factory,
            settings.room_socket_url(room_id),
            settings,
            self._on_connection_event,
            clock=clock,
            sleep=sleep,
        )
        self.ticker = TurnTicker(self.timer_reading, on_tick or (lambda reading: None), settings.timer_tick)
        self.connected = False
        self.error: Optional[str] = None
        self.fatal_error: Optional[str] = None
        self._resync_task: Optional[asyncio.Task] = None
        self._resync_again = False
        self.session.add_listener(self._on_session_change)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Open the room connection; must be called from a running loop."""
        logger.info(f"Opening room {self.room_id}")
        return self.connection.connect()

    async def run_until_closed(self) -> None:
        """
        Drive the room until it is closed locally.

        Raises:
            ConnectionExhausted: If reconnection attempts ran out
        """
        try:
            await self.start()
        except asyncio.CancelledError:
            if not self.connection.closing:
                raise
            return
        if self.fatal_error is not None:
            raise ConnectionExhausted(self.fatal_error)

    async def close(self) -> None:
        self.ticker.stop()
        if self._resync_task is not None and not self._resync_task.done():
            self._resync_task.cancel()
        await self.connection.close()

    def timer_reading(self) -> TimerReading:
        return session_reading(
            self.session,
            limit_warning=self.settings.limit_warning_seconds,
            backup_danger=self.settings.backup_danger_seconds,
        )

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    def request_resync(self, reason: str = "") -> None:
        """Fetch a full snapshot; at most one fetch runs, later requests re-run it once."""
        if self._resync_task is not None and not self._resync_task.done():
            self._resync_again = True
            return
        self._resync_task = asyncio.get_running_loop().create_task(self._resync_loop(reason))

    async def _resync_loop(self, reason: str) -> None:
        loop = asyncio.get_running_loop()
        rejected = 0
        while True:
            self._resync_again = False
            logger.info(f"Fetching state for room {self.room_id}" + (f" ({reason})" if reason else ""))
            try:
                snapshot = await loop.run_in_executor(None, self.api.fetch_state, self.room_id)
            except ClientError as e:
                logger.warning(f"Resync failed: {e}")
                self.error = str(e)
            else:
                rejected = 0 if self.session.apply_snapshot(snapshot) else rejected + 1
            if not self._resync_again:
                return
            if rejected >= MAX_REJECTED_SNAPSHOTS:
                logger.warning(f"Giving up resync of room {self.room_id} after {rejected} rejected snapshots")
                return

    # ------------------------------------------------------------------
    # Event plumbing
    # ------------------------------------------------------------------

    def _on_connection_event(self, event: ConnectionEvent) -> None:
        if isinstance(event, Connected):
            self.connected = True
            self.error = None
            if event.reconnected:
                self.request_resync("reconnected")
        elif isinstance(event, MessageReceived):
            self.session.handle_payload(event.payload)
            if event.payload.get("type") == "error":
                self.error = self.session.last_error
        elif isinstance(event, Disconnected):
            self.connected = False
            self.error = f"connection lost ({event.code}), reconnecting"
        elif isinstance(event, ConnectionFailed):
            self.connected = False
            self.fatal_error = event.message
            self.error = event.message
            self.ticker.stop()

    def _on_session_change(self, session: GameSession) -> None:
        running = session.status == GameStatus.PLAYING and session.is_my_turn
        self.ticker.sync(session.turn_key, running)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def confirm_move(self) -> bool:
        """Send the pending trial placement. Returns False if nothing was sent."""
        pending = self.session.pending
        if pending is None:
            self.error = NO_TRIAL
            return False
        if not self.session.is_my_turn:
            self.error = NOT_YOUR_TURN
            return False
        command = MoveCommand(
            piece_index=pending.piece_id,
            position=Position(x=pending.x, y=pending.y),
            rotation=pending.rotation,
            flip=pending.flipped,
            board_state=board_payload(pending.predicted_board),
        )
        if not self.connection.send(to_wire(command)):
            self.error = NOT_CONNECTED
            return False
        logger.info(f"Sent move: piece {pending.piece_id} at ({pending.x}, {pending.y})")
        self.preview.reset()
        return True

    def pass_turn(self) -> bool:
        if self.session.status != GameStatus.PLAYING:
            self.error = NOT_PLAYING
            return False
        me = self.session.my_state
        if me is not None and me.passed:
            self.error = ALREADY_PASSED
            return False
        if not self.session.is_my_turn:
            self.error = NOT_YOUR_TURN
            return False
        self.preview.clear_trial()
        if not self.connection.send(to_wire(PassCommand())):
            self.error = NOT_CONNECTED
            return False
        logger.info("Sent pass")
        return True

    async def start_game(self) -> bool:
        """Ask the server to start; only the first seat may, once enough players joined."""
        session = self.session
        if session.my_slot != PlayerSlot.P1:
            self.error = "only the room creator can start the game"
            return False
        if session.status != GameStatus.WAITING:
            self.error = "game already started"
            return False
        if not session.is_ready:
            self.error = "waiting for more players"
            return False
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.api.start_game, self.room_id)
        except ClientError as e:
            logger.warning(f"Start failed: {e}")
            self.error = str(e)
            return False
        return True
