"""
Blocking REST client for the room service.

Responses use the envelope ``{"success": bool, "data": ..., "error": str}``.
Calls block; ``GameRoom`` runs them in the default executor.
"""

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional
from urllib.parse import quote

from pydantic import ValidationError

from schemas.game_state import GameSnapshot
from .exceptions import ApiError, InvalidSnapshot

logger = logging.getLogger(__name__)


class GameApi:
    """Thin wrapper over the create/join/state/start endpoints."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(url, data=data, method=method, headers=headers)
        logger.debug(f"{method} {url}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise ApiError(_error_message(e.read(), f"HTTP {e.code}"), status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise ApiError(f"Network error: {getattr(e, 'reason', e)}") from e

        try:
            payload = json.loads(raw or b"{}")
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}") from e
        if isinstance(payload, dict) and payload.get("success") is False:
            raise ApiError(payload.get("error") or f"{method} {path} failed", status=200)
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    def create_room(self, limit_time: float) -> str:
        """Create a room; returns its id."""
        data = self._request("POST", "/game/create", {"limitTime": limit_time})
        room_id = data.get("roomId") if isinstance(data, dict) else None
        if not room_id:
            raise ApiError("Room created without an id")
        logger.info(f"Created room {room_id}")
        return str(room_id)

    def join_room(self, room_id: str) -> Any:
        data = self._request("POST", f"/game/join/{quote(room_id, safe='')}")
        logger.info(f"Joined room {room_id}")
        return data

    def fetch_state(self, room_id: str) -> GameSnapshot:
        """Full authoritative snapshot of a room."""
        data = self._request("GET", f"/game/state/{quote(room_id, safe='')}")
        try:
            return GameSnapshot.model_validate(data)
        except ValidationError as e:
            raise InvalidSnapshot(f"State for room {room_id} failed validation: {e.error_count()} error(s)") from e

    def start_game(self, room_id: str) -> Any:
        data = self._request("POST", f"/game/start/{quote(room_id, safe='')}")
        logger.info(f"Start requested for room {room_id}")
        return data


def _error_message(body: bytes, fallback: str) -> str:
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        return fallback
    if isinstance(payload, dict):
        return payload.get("error") or payload.get("message") or fallback
    return fallback
