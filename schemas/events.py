"""
Pydantic schemas for server-to-client game events.

Every inbound frame is a JSON object tagged by ``type``. ``parse_event``
turns a decoded frame into exactly one of the ``InboundEvent`` variants.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from engine.board import PlayerSlot
from .game_state import (
    BoardRows, GameSnapshot, PlayerInfo, PlayerStateModel, Position, Slot, Winner,
    normalize_slot_keys,
)


class GameStateEvent(GameSnapshot):
    """Full snapshot pushed by the server (on connect or on demand)."""
    type: Literal["game_state"] = "game_state"


class PlayerJoinedEvent(BaseModel):
    """A player took a seat in the room."""
    type: Literal["player_joined"] = "player_joined"
    player: Slot
    info: PlayerInfo = Field(default_factory=PlayerInfo)

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_joiner(cls, data: Any) -> Any:
        # Two-player rooms announce {"joiner": {...}} without a slot
        if isinstance(data, dict) and "player" not in data and isinstance(data.get("joiner"), dict):
            data = dict(data)
            data["player"] = PlayerSlot.P2
            data["info"] = data.pop("joiner")
        return data


class GameStartedEvent(BaseModel):
    """The room creator started the game."""
    type: Literal["game_started"] = "game_started"
    current_player: Optional[Slot] = Field(default=None, alias="currentPlayer")
    current_round: Optional[int] = Field(default=None, ge=0, alias="currentRound")
    round_start_time: Optional[float] = Field(default=None, alias="roundStartTime")

    class Config:
        populate_by_name = True


class MoveMadeEvent(BaseModel):
    """
    A placement was accepted by the server.

    ``board`` is the full post-move board when the server includes it;
    otherwise ``position``/``rotation``/``flip`` describe the placement.
    """
    type: Literal["move_made"] = "move_made"
    player: Slot
    piece_index: int = Field(alias="pieceIndex", ge=0, le=20)
    next_player: Optional[Slot] = Field(default=None, alias="nextPlayer")
    current_round: int = Field(alias="currentRound", ge=0)
    player_state: Optional[PlayerStateModel] = Field(default=None, alias="playerState")
    board: Optional[BoardRows] = None
    position: Optional[Position] = None
    rotation: Optional[int] = None
    flip: Optional[bool] = None
    round_start_time: Optional[float] = Field(default=None, alias="roundStartTime")

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _fold_board_state(cls, data: Any) -> Any:
        if isinstance(data, dict) and "board" not in data and "boardState" in data:
            data = dict(data)
            data["board"] = data.pop("boardState")
        return data


class PlayerPassedEvent(BaseModel):
    """A player withdrew from further placements."""
    type: Literal["player_passed"] = "player_passed"
    player: Slot
    next_player: Optional[Slot] = Field(default=None, alias="nextPlayer")
    current_round: int = Field(alias="currentRound", ge=0)
    player_state: Optional[PlayerStateModel] = Field(default=None, alias="playerState")
    round_start_time: Optional[float] = Field(default=None, alias="roundStartTime")

    class Config:
        populate_by_name = True


class GameEndedEvent(BaseModel):
    """The server declared the game over."""
    type: Literal["game_ended"] = "game_ended"
    winner: Optional[Winner] = None
    scores: Dict[Slot, int] = Field(default_factory=dict)
    penalties: Dict[Slot, int] = Field(default_factory=dict)
    board: Optional[BoardRows] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in ("scores", "penalties"):
                if key in data:
                    data[key] = normalize_slot_keys(data[key])
        return data


class PongEvent(BaseModel):
    """Heartbeat reply."""
    type: Literal["pong"] = "pong"


class ErrorEvent(BaseModel):
    """Session-level error reported by the server."""
    type: Literal["error"] = "error"
    message: str = "Unknown server error"


InboundEvent = Annotated[
    Union[
        GameStateEvent,
        PlayerJoinedEvent,
        GameStartedEvent,
        MoveMadeEvent,
        PlayerPassedEvent,
        GameEndedEvent,
        PongEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

EVENT_TYPES = (
    GameStateEvent,
    PlayerJoinedEvent,
    GameStartedEvent,
    MoveMadeEvent,
    PlayerPassedEvent,
    GameEndedEvent,
    PongEvent,
    ErrorEvent,
)

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(InboundEvent)


def parse_event(payload: Any) -> Union[
    GameStateEvent, PlayerJoinedEvent, GameStartedEvent, MoveMadeEvent,
    PlayerPassedEvent, GameEndedEvent, PongEvent, ErrorEvent,
]:
    """
    Validate a decoded frame into a typed event.

    Raises:
        ValueError: If the frame is not an object. pydantic's
            ValidationError (a ValueError) for unknown types or bad fields.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    return _EVENT_ADAPTER.validate_python(payload)

