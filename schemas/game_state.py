"""
Game state schemas
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field, field_validator, model_validator

from engine.board import DRAW, PlayerSlot
from engine.pieces import PIECE_COUNT


class GameStatus(str, Enum):
    """Game status enumeration."""
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"

    @property
    def rank(self) -> int:
        """Lifecycle position; statuses only ever move to a higher rank."""
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = (GameStatus.WAITING, GameStatus.PLAYING, GameStatus.FINISHED)


def _parse_slot(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return PlayerSlot.parse(value)
        except ValueError:
            return value
    return value


def _parse_winner(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() == DRAW:
        return DRAW
    return _parse_slot(value)


def normalize_slot_keys(value: Any) -> Any:
    """Map legacy role keys (``creator``/``joiner``) onto slot keys."""
    if not isinstance(value, dict):
        return value
    return {_parse_slot(key): item for key, item in value.items()}


def _unwrap_board(value: Any) -> Any:
    # Some payloads nest the grid as {"board": [[...]]}
    if isinstance(value, dict) and "board" in value:
        return value["board"]
    return value


Slot = Annotated[PlayerSlot, BeforeValidator(_parse_slot)]
Winner = Annotated[Union[PlayerSlot, str], BeforeValidator(_parse_winner)]
BoardRows = Annotated[List[List[int]], BeforeValidator(_unwrap_board)]


class Position(BaseModel):
    """Top-left corner of a shape's bounding box on the board."""
    x: int
    y: int


class SessionConfig(BaseModel):
    """Room configuration."""
    board_size: int = Field(default=14, alias="boardSize")
    limit_time: float = Field(default=60, ge=0, alias="limitTime", description="Per-turn allotment in seconds")
    required_players: int = Field(default=2, ge=2, le=4, alias="requiredPlayers")
    backup_time: float = Field(default=0, ge=0, alias="backupTime", description="Initial banked time in seconds")
    game_status: GameStatus = Field(default=GameStatus.WAITING, alias="gameStatus")

    class Config:
        populate_by_name = True

    @field_validator("board_size")
    @classmethod
    def _check_board_size(cls, value: int) -> int:
        if value not in (14, 17, 20):
            raise ValueError(f"Unsupported board size: {value}")
        return value


class PlayerInfo(BaseModel):
    """Identity of a seated player."""
    user_id: Optional[str] = Field(default=None, alias="userId")
    account: Optional[str] = None

    class Config:
        populate_by_name = True

    @field_validator("user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class PlayerStateModel(BaseModel):
    """
    Per-player state as sent by the server.

    Every field is optional so partial updates (``move_made.playerState``)
    can be merged onto the local copy.
    """
    pieces: Optional[List[bool]] = None
    total_pieces_used: Optional[int] = Field(default=None, ge=0, alias="totalPiecesUsed")
    penalty: Optional[int] = None
    backup_time: Optional[float] = Field(default=None, alias="backupTime")
    passed: Optional[bool] = None

    class Config:
        populate_by_name = True

    @field_validator("pieces")
    @classmethod
    def _check_pieces(cls, value: Optional[List[bool]]) -> Optional[List[bool]]:
        if value is not None and len(value) != PIECE_COUNT:
            raise ValueError(f"pieces must have {PIECE_COUNT} entries, got {len(value)}")
        return value


class Progress(BaseModel):
    """Turn progress."""
    current_player: Optional[Slot] = Field(default=None, alias="currentPlayer")
    current_round: int = Field(default=0, ge=0, alias="currentRound")
    round_start_time: Optional[float] = Field(
        default=None, alias="roundStartTime", description="Epoch milliseconds"
    )

    class Config:
        populate_by_name = True


class GameSnapshot(BaseModel):
    """Full authoritative state of a room."""
    config: SessionConfig
    players: Dict[Slot, Optional[PlayerInfo]] = Field(default_factory=dict)
    progress: Progress = Field(default_factory=Progress)
    board: Optional[BoardRows] = None
    player_states: Dict[Slot, PlayerStateModel] = Field(default_factory=dict, alias="playerStates")
    winner: Optional[Winner] = None
    scores: Optional[Dict[Slot, int]] = None
    penalties: Optional[Dict[Slot, int]] = None

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("players", "playerStates", "scores", "penalties"):
            if key in data:
                data[key] = normalize_slot_keys(data[key])
        # Older payloads carry player states as top-level "creator"/"joiner"
        states = dict(data.get("playerStates") or {})
        for legacy in ("creator", "joiner"):
            if isinstance(data.get(legacy), dict):
                states.setdefault(PlayerSlot.parse(legacy), data.pop(legacy))
        if states:
            data["playerStates"] = states
        if "finalScores" in data and "scores" not in data:
            data["scores"] = normalize_slot_keys(data.pop("finalScores"))
        return data
