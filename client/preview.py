"""
Piece selection and trial placement for the local player.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from engine.pieces import anchor_offset, get_piece, get_transform
from engine.placement import PlacementResult
from .session import GameSession

logger = logging.getLogger(__name__)

NO_PIECE_SELECTED = "no piece selected"


class PlacementPreview:
    """
    Tracks the selected piece, its transform and the trial position.

    A trial is a ``PendingMove`` on the session. Anything that changes the
    shape under the cursor (select, rotate, flip, clear) drops it.
    """

    def __init__(self, session: GameSession):
        self.session = session
        self.selected_piece: Optional[int] = None
        self.rotation = 0
        self.flipped = False
        self.last_result: Optional[PlacementResult] = None

    @property
    def trial(self) -> Optional[Tuple[int, int]]:
        """Origin of the pending placement, dropped by any authoritative event."""
        pending = self.session.pending
        if pending is None or pending.piece_id != self.selected_piece:
            return None
        return pending.x, pending.y

    @property
    def shape(self) -> Optional[np.ndarray]:
        if self.selected_piece is None:
            return None
        return get_transform(self.selected_piece, self.rotation, self.flipped)

    def select(self, piece_id: Optional[int]) -> None:
        """Select a piece (or None to deselect); resets rotation and flip."""
        if piece_id is not None:
            get_piece(piece_id)
        self.selected_piece = piece_id
        self.rotation = 0
        self.flipped = False
        self.clear_trial()

    def rotate(self) -> None:
        if self.selected_piece is None:
            return
        self.rotation = (self.rotation + 1) % 4
        self.clear_trial()

    def flip(self) -> None:
        if self.selected_piece is None:
            return
        self.flipped = not self.flipped
        self.clear_trial()

    def clear_trial(self) -> None:
        self.last_result = None
        self.session.discard_pending()

    def place_at(self, cell_x: int, cell_y: int) -> PlacementResult:
        """
        Try the selected piece with its anchor cell on ``(cell_x, cell_y)``.

        On success the placement becomes the session's pending move.
        """
        if self.selected_piece is None:
            return PlacementResult(False, NO_PIECE_SELECTED)
        self.clear_trial()
        dx, dy = anchor_offset(self.shape)
        x, y = cell_x - dx, cell_y - dy
        result = self.session.propose_move(self.selected_piece, x, y, self.rotation, self.flipped)
        self.last_result = result
        if not result:
            logger.debug(f"Trial of piece {self.selected_piece} at ({x}, {y}) rejected: {result.reason}")
        return result

    def reset(self) -> None:
        """Forget the selection, e.g. after the move was confirmed."""
        self.selected_piece = None
        self.rotation = 0
        self.flipped = False
        self.last_result = None
