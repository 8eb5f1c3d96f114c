"""
Shared exception definitions for the room client.

Hierarchy:
- ClientError (base for all client exceptions)
  - ApiError (REST collaborator failures)
  - ProtocolError (malformed or unrecognized inbound frames)
  - InvalidSnapshot (a full-state payload that cannot be applied)
  - ConnectionExhausted (reconnection attempts used up)

Placement failures are not exceptions; see ``engine.placement.PlacementResult``.
"""

from typing import Optional


class ClientError(Exception):
    """Base exception for all client errors."""
    retryable: bool = True


class ApiError(ClientError):
    """HTTP or network failure talking to the room API."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        # Network failures have no status; 5xx are server-side hiccups
        return self.status is None or self.status >= 500


class ProtocolError(ClientError):
    retryable = False


class InvalidSnapshot(ClientError):
    retryable = False


class ConnectionExhausted(ClientError):
    retryable = False
