"""
Placement validation for Blokus moves.

Checks run in a fixed order and stop at the first failure:
1. Piece not already used by this player
2. Every filled cell lies on the board
3. No filled cell overlaps an occupied cell
4. Adjacency: first moves must cover a board corner; later moves must not
   share an edge with the player's own cells and must touch one of them
   diagonally

All checks read the pre-move board only; nothing here mutates a board.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from .board import board_corners
from .pieces import PIECE_COUNT, cached_transform, shape_cells, unique_orientations

logger = logging.getLogger(__name__)

UNKNOWN_PIECE = "unknown piece"
PIECE_ALREADY_USED = "piece already used"
OUT_OF_BOUNDS = "piece is outside the board"
OVERLAPS_PIECE = "piece overlaps an existing piece"
FIRST_MOVE_CORNER = "first move must occupy a corner"
EDGE_ADJACENT = "piece is edge-adjacent to own piece"
NO_CORNER_CONTACT = "piece has no corner contact with own piece"

_EDGE_OFFSETS = ((0, -1), (0, 1), (-1, 0), (1, 0))
_CORNER_OFFSETS = ((-1, -1), (1, -1), (-1, 1), (1, 1))


@dataclass(frozen=True)
class PlacementResult:
    """Outcome of a placement check; ``reason`` is empty when valid."""
    valid: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.valid


VALID = PlacementResult(True)


def is_out_of_bounds(shape: np.ndarray, x: int, y: int, board_size: int) -> bool:
    """True if any filled cell falls outside a ``board_size`` board."""
    return any(
        not (0 <= cx < board_size and 0 <= cy < board_size)
        for cx, cy in shape_cells(shape, x, y)
    )


def is_overlapping(shape: np.ndarray, x: int, y: int, board: np.ndarray) -> bool:
    """True if any filled cell lands on an occupied cell. Assumes in-bounds."""
    return any(board[cy, cx] != 0 for cx, cy in shape_cells(shape, x, y))


def covers_corner(shape: np.ndarray, x: int, y: int, board_size: int) -> bool:
    """True if the placement covers one of the four board corners."""
    corners = set(board_corners(board_size))
    return any(cell in corners for cell in shape_cells(shape, x, y))


def check_adjacency(shape: np.ndarray, x: int, y: int, board: np.ndarray, color_id: int) -> Optional[str]:
    """
    Apply the corner-must / edge-forbidden rule for a non-first move.

    Returns:
        None when the rule holds, otherwise the failure reason
    """
    size = board.shape[0]
    has_corner_contact = False
    for cx, cy in shape_cells(shape, x, y):
        for dx, dy in _EDGE_OFFSETS:
            nx, ny = cx + dx, cy + dy
            if 0 <= nx < size and 0 <= ny < size and board[ny, nx] == color_id:
                return EDGE_ADJACENT
        if not has_corner_contact:
            for dx, dy in _CORNER_OFFSETS:
                nx, ny = cx + dx, cy + dy
                if 0 <= nx < size and 0 <= ny < size and board[ny, nx] == color_id:
                    has_corner_contact = True
                    break
    if not has_corner_contact:
        return NO_CORNER_CONTACT
    return None


def validate_shape(
    shape: np.ndarray,
    x: int,
    y: int,
    board: np.ndarray,
    color_id: int,
    is_first_move: bool,
) -> PlacementResult:
    """Bounds, overlap and adjacency checks for an already-transformed shape."""
    size = board.shape[0]
    if is_out_of_bounds(shape, x, y, size):
        return PlacementResult(False, OUT_OF_BOUNDS)
    if is_overlapping(shape, x, y, board):
        return PlacementResult(False, OVERLAPS_PIECE)
    if is_first_move:
        if not covers_corner(shape, x, y, size):
            return PlacementResult(False, FIRST_MOVE_CORNER)
        return VALID
    reason = check_adjacency(shape, x, y, board, color_id)
    if reason is not None:
        return PlacementResult(False, reason)
    return VALID


def validate_placement(
    piece_id: int,
    x: int,
    y: int,
    rotation: int,
    flipped: bool,
    board: np.ndarray,
    color_id: int,
    is_first_move: bool,
    pieces_used: Optional[Sequence[bool]] = None,
) -> PlacementResult:
    """
    Check whether a player may place a piece.

    The board size is read from ``board``; it is never assumed.

    Args:
        piece_id: Catalog id (0..20)
        x: Column of the shape's bounding-box top-left
        y: Row of the shape's bounding-box top-left
        rotation: Clockwise quarter turns (modulo 4)
        flipped: Whether the base shape is mirrored before rotating
        board: Current (pre-move) board
        color_id: The acting player's color id
        is_first_move: Whether the player has placed no pieces yet
        pieces_used: Per-piece used flags for the player, if known

    Returns:
        PlacementResult with a human-readable reason on failure
    """
    if not isinstance(piece_id, (int, np.integer)) or not 0 <= piece_id < PIECE_COUNT:
        return PlacementResult(False, UNKNOWN_PIECE)
    if pieces_used is not None and piece_id < len(pieces_used) and pieces_used[piece_id]:
        return PlacementResult(False, PIECE_ALREADY_USED)
    shape = cached_transform(piece_id, rotation, flipped)
    return validate_shape(shape, x, y, board, color_id, is_first_move)


def iter_legal_placements(
    board: np.ndarray,
    color_id: int,
    is_first_move: bool,
    pieces_used: Optional[Sequence[bool]] = None,
) -> Iterator[Tuple[int, int, bool, int, int]]:
    """
    Yield every legal ``(piece_id, rotation, flipped, x, y)`` for a player.

    One entry per distinct orientation, so symmetric pieces are not repeated.
    """
    size = board.shape[0]
    for piece_id in range(PIECE_COUNT):
        if pieces_used is not None and pieces_used[piece_id]:
            continue
        for rotation, flipped in unique_orientations(piece_id):
            shape = cached_transform(piece_id, rotation, flipped)
            height, width = shape.shape
            for y in range(size - height + 1):
                for x in range(size - width + 1):
                    if validate_shape(shape, x, y, board, color_id, is_first_move):
                        yield piece_id, rotation, flipped, x, y


def has_legal_placement(
    board: np.ndarray,
    color_id: int,
    is_first_move: bool,
    pieces_used: Optional[Sequence[bool]] = None,
) -> bool:
    """Whether the player has at least one legal placement left."""
    for _ in iter_legal_placements(board, color_id, is_first_move, pieces_used):
        return True
    return False
