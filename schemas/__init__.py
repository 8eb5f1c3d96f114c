"""
Pydantic schemas for the Blokus room protocol.
"""

from .game_state import (
    GameSnapshot, GameStatus, PlayerInfo, PlayerStateModel, Position,
    Progress, SessionConfig,
)
from .events import (
    ErrorEvent, GameEndedEvent, GameStartedEvent, GameStateEvent, InboundEvent,
    MoveMadeEvent, PlayerJoinedEvent, PlayerPassedEvent, PongEvent, parse_event,
)
from .commands import HeartbeatCommand, MoveCommand, PassCommand, board_payload, to_wire

__all__ = [
    "GameSnapshot",
    "GameStatus",
    "PlayerInfo",
    "PlayerStateModel",
    "Position",
    "Progress",
    "SessionConfig",
    "ErrorEvent",
    "GameEndedEvent",
    "GameStartedEvent",
    "GameStateEvent",
    "InboundEvent",
    "MoveMadeEvent",
    "PlayerJoinedEvent",
    "PlayerPassedEvent",
    "PongEvent",
    "parse_event",
    "HeartbeatCommand",
    "MoveCommand",
    "PassCommand",
    "board_payload",
    "to_wire",
]
