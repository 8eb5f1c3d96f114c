"""
Room client: session state machine, connection, timer and REST wrapper.
"""

from .api import GameApi
from .config import ClientSettings
from .connection import (
    Connected, ConnectionFailed, ConnectionManager, Disconnected, MessageReceived,
    Transport, TransportClosed, WebSocketTransport, backoff_delay,
)
from .exceptions import ApiError, ClientError, ConnectionExhausted, InvalidSnapshot, ProtocolError
from .preview import PlacementPreview
from .room import GameRoom
from .session import GameResult, GameSession, MoveRecord, PendingMove, PlayerState
from .status import AvailableActions, ScoreLine, available_actions, game_status_text, round_status, scoreboard
from .timer import TimerReading, TurnTicker, WarningLevel, compute_timer, format_clock

__all__ = [
    "GameApi",
    "ClientSettings",
    "Connected",
    "ConnectionFailed",
    "ConnectionManager",
    "Disconnected",
    "MessageReceived",
    "Transport",
    "TransportClosed",
    "WebSocketTransport",
    "backoff_delay",
    "ApiError",
    "ClientError",
    "ConnectionExhausted",
    "InvalidSnapshot",
    "ProtocolError",
    "PlacementPreview",
    "GameRoom",
    "GameResult",
    "GameSession",
    "MoveRecord",
    "PendingMove",
    "PlayerState",
    "AvailableActions",
    "available_actions",
    "game_status_text",
    "round_status",
    "ScoreLine",
    "scoreboard",
    "TimerReading",
    "TurnTicker",
    "WarningLevel",
    "compute_timer",
    "format_clock",
]
