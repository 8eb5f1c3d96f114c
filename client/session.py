"""
Client-side model of a Blokus room, rebuilt from the server's event stream.

The session owns the board, roster, per-player state and turn progress. Each
inbound event kind has exactly one handler. Events that do not line up with
local state (wrong player, skipped rounds, reused pieces, cleared cells) are
never partially applied; the session asks for a full resync instead.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
from pydantic import ValidationError

from engine.board import (
    DRAW, PlayerSlot, apply_placement, board_from_rows, cleared_cells, decide_winner,
    final_score, new_board,
)
from engine.pieces import PIECE_COUNT, get_transform
from engine.placement import PlacementResult, validate_placement, validate_shape
from schemas.events import (
    EVENT_TYPES, ErrorEvent, GameEndedEvent, GameStartedEvent, GameStateEvent,
    MoveMadeEvent, PlayerJoinedEvent, PlayerPassedEvent, PongEvent, parse_event,
)
from schemas.game_state import GameSnapshot, GameStatus, PlayerInfo, PlayerStateModel, SessionConfig
from .exceptions import InvalidSnapshot, ProtocolError

logger = logging.getLogger(__name__)

FIRST_PLAYER = PlayerSlot.P1

NOT_PLAYING = "game is not in progress"
NOT_SEATED = "you are not seated in this room"
NOT_YOUR_TURN = "not your turn"
ALREADY_PASSED = "you have already passed"


@dataclass
class PlayerState:
    """Mutable per-player state for the lifetime of a session."""
    slot: PlayerSlot
    pieces_used: List[bool] = field(default_factory=lambda: [False] * PIECE_COUNT)
    penalty: int = 0
    backup_time: float = 0.0
    passed: bool = False

    @property
    def color_id(self) -> int:
        return self.slot.color_id

    @property
    def total_pieces_used(self) -> int:
        return sum(self.pieces_used)

    @property
    def is_first_move(self) -> bool:
        return self.total_pieces_used == 0

    def merge(self, update: Optional[PlayerStateModel]) -> bool:
        """
        Copy the server-provided fields onto this state.

        Returns:
            False if the update would clear a piece already marked used
        """
        if update is None:
            return True
        consistent = True
        if update.pieces is not None:
            if any(local and not remote for local, remote in zip(self.pieces_used, update.pieces)):
                consistent = False
            else:
                self.pieces_used = list(update.pieces)
        if update.penalty is not None:
            self.penalty = update.penalty
        if update.backup_time is not None:
            self.backup_time = update.backup_time
        if update.passed is not None:
            self.passed = self.passed or update.passed
        return consistent


@dataclass
class GameResult:
    """Final outcome; ``provisional`` until the server's game_ended arrives."""
    winner: Union[PlayerSlot, str, None]
    scores: Dict[PlayerSlot, int]
    penalties: Dict[PlayerSlot, int]
    provisional: bool = False

    @property
    def is_draw(self) -> bool:
        return self.winner == DRAW


@dataclass
class PendingMove:
    """A locally validated placement awaiting the server's verdict."""
    round: int
    piece_id: int
    x: int
    y: int
    rotation: int
    flipped: bool
    predicted_board: np.ndarray


@dataclass(frozen=True)
class MoveRecord:
    """
    An accepted placement as applied to the local board.

    ``cells`` are the ``(x, y)`` cells the move filled. ``position``,
    ``rotation`` and ``flipped`` are None when the server only sent the
    post-move board.
    """
    player: PlayerSlot
    piece_id: int
    round: int
    cells: Tuple[Tuple[int, int], ...]
    position: Optional[Tuple[int, int]] = None
    rotation: Optional[int] = None
    flipped: Optional[bool] = None


Listener = Callable[["GameSession"], None]

_HANDLERS: Dict[type, Callable[["GameSession", Any], None]] = {}


def _handles(event_type: type):
    def register(func):
        _HANDLERS[event_type] = func
        return func
    return register


class GameSession:
    """
    Turn/session state machine for one room.

    Lifecycle is ``waiting -> playing -> finished`` and never moves backwards.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        on_resync: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.user_id = str(user_id) if user_id is not None else None
        self.my_slot: Optional[PlayerSlot] = None
        self.config = SessionConfig()
        self.roster: Dict[PlayerSlot, PlayerInfo] = {}
        self.players: Dict[PlayerSlot, PlayerState] = {}
        self.board = new_board(self.config.board_size)
        self.current_player: Optional[PlayerSlot] = None
        self.current_round = 0
        self.round_start: Optional[float] = None  # epoch seconds
        self.result: Optional[GameResult] = None
        self.last_error: Optional[str] = None
        self.pending: Optional[PendingMove] = None
        self.initialized = False
        self.resync_requests = 0
        # Moves applied since the last snapshot, oldest first
        self.moves: List[MoveRecord] = []
        self._last_turn_event: Optional[Tuple[str, PlayerSlot, int]] = None
        self._on_resync = on_resync
        self._clock = clock
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def status(self) -> GameStatus:
        return self.config.game_status

    @property
    def board_size(self) -> int:
        return self.config.board_size

    @property
    def seats(self) -> List[PlayerSlot]:
        """Seated slots in turn order."""
        return sorted(set(self.roster) | set(self.players), key=lambda slot: slot.color_id)

    @property
    def is_ready(self) -> bool:
        """Whether enough players have joined to start."""
        return len(self.roster) >= self.config.required_players

    @property
    def my_state(self) -> Optional[PlayerState]:
        if self.my_slot is None:
            return None
        return self.players.get(self.my_slot)

    @property
    def is_my_turn(self) -> bool:
        return (
            self.status == GameStatus.PLAYING
            and self.my_slot is not None
            and self.current_player == self.my_slot
        )

    @property
    def display_board(self) -> np.ndarray:
        """Board including the pending placement, if any."""
        if self.pending is not None:
            return self.pending.predicted_board
        return self.board

    @property
    def turn_key(self) -> Tuple[Any, ...]:
        """Changes whenever a running countdown must be restarted."""
        return (self.status, self.current_player, self.current_round, self.round_start, self.my_slot)

    def latest_move_cells(self) -> List[Tuple[int, int]]:
        """Cells filled by the most recent move, for highlighting."""
        if not self.moves:
            return []
        return list(self.moves[-1].cells)

    def score(self, slot: PlayerSlot) -> int:
        state = self.players.get(slot)
        penalty = state.penalty if state is not None else 0
        return final_score(self.board, slot.color_id, penalty)

    def next_eligible(self, after: Optional[PlayerSlot]) -> Optional[PlayerSlot]:
        """First non-passed seat following ``after`` in rotation order."""
        seats = self.seats
        if not seats:
            return None
        start = seats.index(after) + 1 if after in seats else 0
        for offset in range(len(seats)):
            slot = seats[(start + offset) % len(seats)]
            state = self.players.get(slot)
            if state is None or not state.passed:
                return slot
        return None

    # ------------------------------------------------------------------
    # Listeners and resync
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(session)`` after every applied event. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception(f"Session listener {listener!r} failed")

    def request_resync(self, reason: str) -> None:
        """Ask the owner to fetch a full snapshot; local state is left untouched."""
        self.resync_requests += 1
        logger.warning(f"Resync requested: {reason}")
        if self._on_resync is not None:
            self._on_resync(reason)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def handle_payload(self, payload: Any) -> bool:
        """
        Decode and apply one inbound frame.

        Malformed or unknown frames are logged and dropped.

        Returns:
            True if the frame was a recognized event
        """
        try:
            event = decode_event(payload)
        except ProtocolError as e:
            logger.warning(f"Dropping inbound frame: {e}")
            return False
        self.apply_event(event)
        return True

    def apply_event(self, event: Any) -> None:
        handler = _HANDLERS.get(type(event))
        if handler is None:
            logger.warning(f"No handler for event {type(event).__name__}")
            return
        handler(self, event)
        self._notify()

    def apply_snapshot(self, snapshot: GameSnapshot) -> bool:
        """
        Replace all local state with an authoritative snapshot.

        Snapshots that would move the lifecycle backwards are ignored. While
        playing, so are snapshots from an earlier round or that empty occupied
        cells; those also request a fresh fetch.

        Returns:
            True if the snapshot was applied
        """
        try:
            applied = self._replace_state(snapshot)
        except InvalidSnapshot as e:
            logger.error(f"Rejected snapshot: {e}")
            return False
        if applied:
            self._notify()
        return applied

    @_handles(GameStateEvent)
    def _on_game_state(self, event: GameStateEvent) -> None:
        try:
            self._replace_state(event)
        except InvalidSnapshot as e:
            logger.error(f"Rejected game_state event: {e}")

    def _replace_state(self, snapshot: GameSnapshot) -> bool:
        config = snapshot.config
        if self.initialized and config.game_status.rank < self.status.rank:
            logger.warning(
                f"Ignoring stale snapshot: status {config.game_status.value} is behind local {self.status.value}"
            )
            return False
        try:
            board = (
                board_from_rows(snapshot.board, config.board_size)
                if snapshot.board is not None
                else new_board(config.board_size)
            )
        except ValueError as e:
            raise InvalidSnapshot(str(e)) from e
        if self.initialized and self.status == GameStatus.PLAYING and config.game_status == GameStatus.PLAYING:
            behind = snapshot.progress.current_round < self.current_round
            cleared = cleared_cells(self.board, board)
            if behind or cleared:
                logger.warning(
                    f"Ignoring stale snapshot: round {snapshot.progress.current_round} "
                    f"(local {self.current_round}), {cleared} occupied cell(s) cleared"
                )
                self.request_resync("snapshot older than local state")
                return False

        roster ={slot: info for slot, info in snapshot.players.items() if info is not None}
        players: Dict[PlayerSlot, PlayerState] = {}
        for slot in sorted(set(roster) | set(snapshot.player_states), key=lambda s: s.color_id):
            state = PlayerState(slot, backup_time=config.backup_time)
            state.merge(snapshot.player_states.get(slot))
            players[slot] = state

        self.config = config
        self.roster = roster
        self.players = players
        self.board = board
        self.current_round = snapshot.progress.current_round
        self.current_player = snapshot.progress.current_player
        self.round_start = _to_seconds(snapshot.progress.round_start_time)
        self.pending = None
        self.result = None
        self.moves = []
        self._last_turn_event = None
        self.initialized = True
        self._resolve_identity()

        if self.status == GameStatus.PLAYING:
            if self.current_player is None or self.current_player not in self.players:
                fallback = self.next_eligible(None)
                logger.warning(f"Snapshot has no valid current player; assuming {fallback}")
                self.current_player = fallback
            if self.round_start is None:
                self.round_start = self._clock()
        elif self.status == GameStatus.FINISHED:
            self.result = self._build_result(snapshot.winner, snapshot.scores, snapshot.penalties, provisional=False)
        logger.info(
            f"Applied snapshot: status={self.status.value} round={self.current_round} "
            f"current={self.current_player} seats={[s.value for s in self.seats]}"
        )
        return True

    @_handles(PlayerJoinedEvent)
    def _on_player_joined(self, event: PlayerJoinedEvent) -> None:
        identity_known = self.my_slot is not None
        if self.status != GameStatus.WAITING:
            self.request_resync(f"{event.player.value} joined while {self.status.value}")
            return
        self.roster[event.player] = event.info
        self.players.setdefault(event.player, PlayerState(event.player, backup_time=self.config.backup_time))
        self._resolve_identity()
        logger.info(f"Player {event.player.value} joined ({len(self.roster)}/{self.config.required_players})")
        if not identity_known:
            # Earlier roster changes may have been missed while our seat was unknown
            self.request_resync("roster changed before own seat was known")

    @_handles(GameStartedEvent)
    def _on_game_started(self, event: GameStartedEvent) -> None:
        if self.status != GameStatus.WAITING:
            logger.info(f"Ignoring game_started while {self.status.value}")
            return
        self.config = self.config.model_copy(update={"game_status": GameStatus.PLAYING})
        for slot in self.roster:
            self.players.setdefault(slot, PlayerState(slot, backup_time=self.config.backup_time))
        self.current_player = event.current_player or FIRST_PLAYER
        if event.current_round is not None:
            self.current_round = event.current_round
        self.round_start = _to_seconds(event.round_start_time) or self._clock()
        self.pending = None
        logger.info(f"Game started; {self.current_player.value} to move")
        if self.current_player not in self.players or not self.is_ready:
            self.request_resync("game started with an incomplete local roster")

    @_handles(MoveMadeEvent)
    def _on_move_made(self, event: MoveMadeEvent) -> None:
        if not self._check_turn_event(event):
            return
        state = self.players[event.player]
        piece_id = event.piece_index
        if state.pieces_used[piece_id]:
            self.request_resync(f"{event.player.value} reused piece {piece_id}")
            return

        board = self._post_move_board(event, state)
        if board is None:
            return

        cells = tuple((int(col), int(row)) for row, col in np.argwhere((board != 0) & (self.board == 0)))
        self.board = board
        state.pieces_used[piece_id] = True
        self.moves.append(MoveRecord(
            event.player, piece_id, event.current_round, cells,
            position=(event.position.x, event.position.y) if event.position is not None else None,
            rotation=event.rotation,
            flipped=event.flip,
        ))
        self._last_turn_event = (event.type, event.player, event.current_round)
        if not state.merge(event.player_state):
            self.request_resync(f"piece flags for {event.player.value} disagree with the server")
        logger.info(f"{event.player.value} placed piece {piece_id} (round {event.current_round})")
        self._advance_turn(event.next_player, event.current_round, event.round_start_time)

    @_handles(PlayerPassedEvent)
    def _on_player_passed(self, event: PlayerPassedEvent) -> None:
        if not self._check_turn_event(event):
            return
        state = self.players[event.player]
        state.passed = True
        self._last_turn_event = (event.type, event.player, event.current_round)
        if not state.merge(event.player_state):
            self.request_resync(f"piece flags for {event.player.value} disagree with the server")
        logger.info(f"{event.player.value} passed (round {event.current_round})")
        if self.next_eligible(event.player) is None:
            self.current_round = event.current_round
            self._finish(None, None, None, provisional=True)
            return
        self._advance_turn(event.next_player, event.current_round, event.round_start_time)

    @_handles(GameEndedEvent)
    def _on_game_ended(self, event: GameEndedEvent) -> None:
        if self.status == GameStatus.FINISHED and self.result is not None and not self.result.provisional:
            logger.info("Ignoring duplicate game_ended")
            return
        if event.board is not None:
            try:
                self.board = board_from_rows(event.board, self.board_size)
            except ValueError as e:
                logger.warning(f"Ignoring final board: {e}")
        self._finish(event.winner, event.scores or None, event.penalties or None, provisional=False)

    @_handles(PongEvent)
    def _on_pong(self, event: PongEvent) -> None:
        # Liveness is tracked by the connection manager
        pass

    @_handles(ErrorEvent)
    def _on_error(self, event: ErrorEvent) -> None:
        logger.warning(f"Server error: {event.message}")
        self.last_error = event.message
        self.pending = None

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    def _check_turn_event(self, event: Union[MoveMadeEvent, PlayerPassedEvent]) -> bool:
        """Gate move/pass events; returns False when the event must not be applied."""
        if self.status != GameStatus.PLAYING:
            if self.status == GameStatus.WAITING:
                self.request_resync(f"{event.type} received before game start")
            else:
                logger.info(f"Ignoring {event.type} after game end")
            return False
        if event.current_round < self.current_round:
            logger.info(f"Ignoring stale {event.type} for round {event.current_round} (local {self.current_round})")
            return False
        if event.current_round == self.current_round:
            if self._is_duplicate(event):
                logger.info(f"Ignoring duplicate {event.type} by {event.player.value} (round {event.current_round})")
                return False
            self.pending = None
            self.request_resync(f"{event.type} by {event.player.value} repeats round {event.current_round}")
            return False
        self.pending = None
        if event.current_round > self.current_round + 1:
            self.request_resync(f"skipped from round {self.current_round} to {event.current_round}")
            return False
        if event.player != self.current_player:
            self.request_resync(
                f"{event.type} by {event.player.value} but {self.current_player} holds the turn"
            )
            return False
        if event.player not in self.players:
            self.request_resync(f"{event.type} by unseated {event.player.value}")
            return False
        return True

    def _is_duplicate(self, event: Union[MoveMadeEvent, PlayerPassedEvent]) -> bool:
        """Whether the event repeats the last move or pass already applied."""
        if self._last_turn_event != (event.type, event.player, event.current_round):
            return False
        state = self.players.get(event.player)
        if state is None:
            return False
        if isinstance(event, MoveMadeEvent):
            return state.pieces_used[event.piece_index]
        return state.passed

    def _post_move_board(self, event: MoveMadeEvent, state: PlayerState) -> Optional[np.ndarray]:
        if event.board is not None:
            try:
                board = board_from_rows(event.board, self.board_size)
            except ValueError as e:
                self.request_resync(f"unusable board in move_made: {e}")
                return None
            if cleared_cells(self.board, board):
                self.request_resync("move_made board clears occupied cells")
                return None
            return board
        if event.position is None:
            self.request_resync("move_made without board or placement")
            return None
        shape = get_transform(event.piece_index, event.rotation or 0, bool(event.flip))
        x, y = event.position.x, event.position.y
        result = validate_shape(shape, x, y, self.board, state.color_id, state.is_first_move)
        if not result:
            self.request_resync(f"server move does not fit local board: {result.reason}")
            return None
        return apply_placement(self.board, shape, x, y, state.color_id)

    def _advance_turn(self, next_player: Optional[PlayerSlot], round_: int, start_ms: Optional[float]) -> None:
        expected = self.next_eligible(self.current_player)
        if next_player is None:
            next_player = expected
        elif next_player != expected:
            logger.warning(f"Server passed turn to {next_player.value}; local rotation expected {expected}")
        if next_player is None:
            self._finish(None, None, None, provisional=True)
            return
        self.current_player = next_player
        self.current_round = round_
        self.round_start = _to_seconds(start_ms) or self._clock()

    def _finish(
        self,
        winner: Union[PlayerSlot, str, None],
        scores: Optional[Dict[PlayerSlot, int]],
        penalties: Optional[Dict[PlayerSlot, int]],
        provisional: bool,
    ) -> None:
        self.config = self.config.model_copy(update={"game_status": GameStatus.FINISHED})
        self.pending = None
        self.result = self._build_result(winner, scores, penalties, provisional)
        logger.info(
            f"Game finished: winner={getattr(self.result.winner, 'value', self.result.winner)} "
            f"provisional={provisional}"
        )

    def _build_result(
        self,
        winner: Union[PlayerSlot, str, None],
        scores: Optional[Dict[PlayerSlot, int]],
        penalties: Optional[Dict[PlayerSlot, int]],
        provisional: bool,
    ) -> GameResult:
        if penalties is None:
            penalties = {slot: state.penalty for slot, state in self.players.items()}
        if scores is None:
            scores = {slot: self.score(slot) for slot in self.seats}
        if winner is None:
            winner = decide_winner(scores)
        return GameResult(winner, dict(scores), dict(penalties), provisional)

    def _resolve_identity(self) -> None:
        if self.user_id is None:
            return
        for slot, info in self.roster.items():
            if info.user_id == self.user_id:
                if self.my_slot != slot:
                    logger.info(f"Seated as {slot.value}")
                self.my_slot = slot
                return

    # ------------------------------------------------------------------
    # Local (provisional) actions
    # ------------------------------------------------------------------

    def check_move(self, piece_id: int, x: int, y: int, rotation: int = 0, flipped: bool = False) -> PlacementResult:
        """Validate a placement for this client's own seat without side effects."""
        if self.status != GameStatus.PLAYING:
            return PlacementResult(False, NOT_PLAYING)
        state = self.my_state
        if state is None:
            return PlacementResult(False, NOT_SEATED)
        if self.current_player != self.my_slot:
            return PlacementResult(False, NOT_YOUR_TURN)
        if state.passed:
            return PlacementResult(False, ALREADY_PASSED)
        return validate_placement(
            piece_id, x, y, rotation, flipped, self.board,
            state.color_id, state.is_first_move, state.pieces_used,
        )

    def propose_move(self, piece_id: int, x: int, y: int, rotation: int = 0, flipped: bool = False) -> PlacementResult:
        """
        Validate and record a provisional placement.

        The predicted board is kept until an authoritative event for this
        turn arrives; it never replaces ``board``.
        """
        result = self.check_move(piece_id, x, y, rotation, flipped)
        if not result:
            return result
        shape = get_transform(piece_id, rotation, flipped)
        self.pending = PendingMove(
            round=self.current_round,
            piece_id=piece_id,
            x=x,
            y=y,
            rotation=rotation % 4,
            flipped=bool(flipped),
            predicted_board=apply_placement(self.board, shape, x, y, self.my_state.color_id),
        )
        self._notify()
        return result

    def discard_pending(self) -> None:
        if self.pending is not None:
            self.pending = None
            self._notify()


_missing = [event_type.__name__ for event_type in EVENT_TYPES if event_type not in _HANDLERS]
if _missing:
    raise TypeError(f"GameSession has no handler for: {', '.join(_missing)}")


def decode_event(payload: Any):
    """Validate a decoded frame, raising ProtocolError on any problem."""
    try:
        return parse_event(payload)
    except ValidationError as e:
        kind = payload.get("type") if isinstance(payload, dict) else None
        raise ProtocolError(f"invalid '{kind}' event ({e.error_count()} error(s))") from e
    except ValueError as e:
        raise ProtocolError(str(e)) from e


def _to_seconds(epoch_ms: Optional[float]) -> Optional[float]:
    if epoch_ms is None or epoch_ms <= 0:
        return None
    return epoch_ms / 1000.0
