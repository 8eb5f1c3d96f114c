"""
Client settings for connecting to a Blokus room.

Defaults match the server's expectations; each value can be overridden
through an environment variable:

    BLOKUS_API_URL                 REST base URL (default: http://127.0.0.1:8787)
    BLOKUS_WS_URL                  WebSocket base URL (default: ws://127.0.0.1:8787)
    BLOKUS_TOKEN                   Bearer token for REST and WebSocket auth
    BLOKUS_HEARTBEAT_INTERVAL      Seconds between heartbeats (default: 15)
    BLOKUS_HEARTBEAT_TIMEOUT       Seconds without pong before reconnecting (default: 30)
    BLOKUS_RECONNECT_BASE_DELAY    First reconnect delay in seconds (default: 1)
    BLOKUS_RECONNECT_MAX_DELAY     Reconnect delay cap in seconds (default: 10)
    BLOKUS_RECONNECT_MAX_ATTEMPTS  Attempts before giving up (default: 5)
"""

import logging
import os
from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientSettings:
    """
    Structured client configuration.

    Attributes:
        api_url: REST base URL of the room service
        ws_url: WebSocket base URL of the room service
        token: Bearer token (None = anonymous)
        heartbeat_interval: Seconds between heartbeat pings
        heartbeat_timeout: Seconds without a pong before the transport is force-closed
        reconnect_base_delay: First reconnect delay; doubles per attempt
        reconnect_max_delay: Upper bound on a single reconnect delay
        reconnect_max_attempts: Attempts before a terminal connection error
        timer_tick: Seconds between countdown recomputations
        limit_warning_seconds: Limit time below which the timer shows a warning
        backup_danger_seconds: Backup time below which the timer shows danger
        request_timeout: Seconds before a REST call is abandoned
    """

    api_url: str = "http://127.0.0.1:8787"
    ws_url: str = "ws://127.0.0.1:8787"
    token: Optional[str] = None
    heartbeat_interval: float = 15.0
    heartbeat_timeout: float = 30.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 10.0
    reconnect_max_attempts: int = 5
    timer_tick: float = 0.1
    limit_warning_seconds: float = 10.0
    backup_danger_seconds: float = 30.0
    request_timeout: float = 10.0

    def __post_init__(self):
        if self.heartbeat_interval <= 0 or self.heartbeat_timeout <= 0:
            raise ValueError("Heartbeat interval and timeout must be positive")
        if self.reconnect_base_delay <= 0 or self.reconnect_max_delay < self.reconnect_base_delay:
            raise ValueError("Reconnect delays must be positive and max_delay >= base_delay")
        if self.reconnect_max_attempts < 0:
            raise ValueError("reconnect_max_attempts must be >= 0")
        if self.timer_tick <= 0:
            raise ValueError("timer_tick must be positive")

    def room_socket_url(self, room_id: str) -> str:
        """WebSocket URL for a room, carrying the token as a query parameter."""
        url = f"{self.ws_url.rstrip('/')}/game/connect/{quote(room_id, safe='')}"
        if self.token:
            url += f"?token={quote(self.token, safe='')}"
        return url

    @classmethod
    def from_env(cls, **overrides) -> "ClientSettings":
        """Build settings from BLOKUS_* environment variables."""
        defaults = cls()
        settings = replace(
            defaults,
            api_url=os.getenv("BLOKUS_API_URL", defaults.api_url).strip() or defaults.api_url,
            ws_url=os.getenv("BLOKUS_WS_URL", defaults.ws_url).strip() or defaults.ws_url,
            token=os.getenv("BLOKUS_TOKEN") or None,
            heartbeat_interval=_env_float("BLOKUS_HEARTBEAT_INTERVAL", defaults.heartbeat_interval),
            heartbeat_timeout=_env_float("BLOKUS_HEARTBEAT_TIMEOUT", defaults.heartbeat_timeout),
            reconnect_base_delay=_env_float("BLOKUS_RECONNECT_BASE_DELAY", defaults.reconnect_base_delay),
            reconnect_max_delay=_env_float("BLOKUS_RECONNECT_MAX_DELAY", defaults.reconnect_max_delay),
            reconnect_max_attempts=int(_env_float("BLOKUS_RECONNECT_MAX_ATTEMPTS", defaults.reconnect_max_attempts)),
        )
        if overrides:
            settings = replace(settings, **overrides)
        return settings


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default
    if value < 0 or (value == 0 and name != "BLOKUS_RECONNECT_MAX_ATTEMPTS"):
        logger.warning(f"Ignoring non-positive {name}={raw!r}; using {default}")
        return default
    return value
