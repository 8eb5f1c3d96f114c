"""
Pydantic schemas for client-to-server commands.
"""

from typing import Any, Dict, List, Literal

import numpy as np
from pydantic import BaseModel, Field

from .game_state import Position


class MoveCommand(BaseModel):
    """Request to place a piece."""
    type: Literal["move"] = "move"
    piece_index: int = Field(..., ge=0, le=20, alias="pieceIndex", description="ID of the piece to place")
    position: Position
    rotation: int = Field(..., ge=0, le=3)
    flip: bool = False
    board_state: List[List[int]] = Field(alias="boardState", description="Predicted post-move board")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "type": "move",
                "pieceIndex": 0,
                "position": {"x": 0, "y": 0},
                "rotation": 0,
                "flip": False,
                "boardState": [[1, 0], [0, 0]],
            }
        }


class PassCommand(BaseModel):
    """Withdraw from further placements."""
    type: Literal["pass"] = "pass"


class HeartbeatCommand(BaseModel):
    """Liveness ping; the server answers with ``pong``."""
    type: Literal["heartbeat"] = "heartbeat"


def board_payload(board: np.ndarray) -> List[List[int]]:
    """Convert a numpy board to plain nested lists for JSON."""
    return [[int(value) for value in row] for row in board]


def to_wire(command: BaseModel) -> Dict[str, Any]:
    """Serialize a command with the server's camelCase field names."""
    return command.dict(by_alias=True)
