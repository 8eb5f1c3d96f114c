"""
Blokus piece catalog with all 21 polyominoes and the rotate/flip transforms.

Shapes are 2D numpy arrays indexed ``[row, col]`` (``row`` is the board ``y``
axis, ``col`` the ``x`` axis). Transforms always flip first and then rotate
clockwise ``rotation`` times, so ``(rotation, flipped)`` names exactly one of
the eight orientations.
"""

from functools import lru_cache

import numpy as np
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from dataclasses import dataclass


PIECE_COUNT = 21


@dataclass(frozen=True)
class Piece:
    """Represents a Blokus piece."""
    id: int
    name: str
    shape: np.ndarray  # 2D array representing the piece
    size: int  # Number of squares in the piece

    def __post_init__(self):
        """Validate piece after initialization."""
        if self.shape.ndim != 2:
            raise ValueError("Piece shape must be 2D")
        if np.sum(self.shape) != self.size:
            raise ValueError("Piece shape sum must equal size")
        self.shape.flags.writeable = False


def _piece(piece_id: int, name: str, rows: Sequence[Sequence[int]]) -> Piece:
    shape = np.array(rows, dtype=np.int8)
    return Piece(piece_id, name, shape, int(shape.sum()))


# Ids and shapes match the server's catalog; do not reorder.
PIECES: Tuple[Piece, ...] = (
    # 1 square
    _piece(0, "I1", [[1]]),
    # 2 squares
    _piece(1, "I2", [[1, 1]]),
    # 3 squares
    _piece(2, "I3", [[1, 1, 1]]),
    _piece(3, "L3", [[1, 0], [1, 1]]),
    # 4 squares
    _piece(4, "I4", [[1, 1, 1, 1]]),
    _piece(5, "O4", [[1, 1], [1, 1]]),
    _piece(6, "T4", [[1, 1, 1], [0, 1, 0]]),
    _piece(7, "L4", [[1, 0, 0], [1, 1, 1]]),
    _piece(8, "Z4", [[1, 1, 0], [0, 1, 1]]),
    # 5 squares
    _piece(9, "I5", [[1, 1, 1, 1, 1]]),
    _piece(10, "L5", [[1, 0, 0, 0], [1, 1, 1, 1]]),
    _piece(11, "T5", [[1, 1, 1], [0, 1, 0], [0, 1, 0]]),
    _piece(12, "V5", [[1, 0, 0], [1, 0, 0], [1, 1, 1]]),
    _piece(13, "N5", [[0, 1, 0], [1, 1, 0], [1, 0, 0], [1, 0, 0]]),
    _piece(14, "Z5", [[1, 1, 0], [0, 1, 0], [0, 1, 1]]),
    _piece(15, "P5", [[1, 1], [1, 1], [1, 0]]),
    _piece(16, "W5", [[1, 0, 0], [1, 1, 0], [0, 1, 1]]),
    _piece(17, "U5", [[1, 0, 1], [1, 1, 1]]),
    _piece(18, "F5", [[0, 1, 1], [1, 1, 0], [0, 1, 0]]),
    _piece(19, "X5", [[0, 1, 0], [1, 1, 1], [0, 1, 0]]),
    _piece(20, "Y5", [[0, 1], [1, 1], [0, 1], [0, 1]]),
)

PIECE_SIZES: Tuple[int, ...] = tuple(piece.size for piece in PIECES)


def get_piece(piece_id: int) -> Piece:
    """Get a piece by its ID, raising ValueError for unknown ids."""
    if not isinstance(piece_id, (int, np.integer)) or not 0 <= piece_id < PIECE_COUNT:
        raise ValueError(f"Unknown piece id: {piece_id!r}")
    return PIECES[piece_id]


def rotate_clockwise(shape: np.ndarray) -> np.ndarray:
    """Rotate a shape 90 degrees clockwise, returning a new array."""
    return np.rot90(shape, k=-1).copy()


def flip_horizontal(shape: np.ndarray) -> np.ndarray:
    """Mirror a shape left-to-right (reverse each row)."""
    return np.fliplr(shape).copy()


def get_transform(piece_id: int, rotation: int = 0, flipped: bool = False) -> np.ndarray:
    """
    Get the shape of a piece after applying a transform.

    The flip is applied to the base shape first, then the result is rotated
    clockwise ``rotation % 4`` times.

    Args:
        piece_id: Catalog id (0..20)
        rotation: Number of clockwise quarter turns, taken modulo 4
        flipped: Whether to mirror the base shape before rotating

    Returns:
        New 2D numpy array; callers may modify it freely
    """
    shape = get_piece(piece_id).shape
    if flipped:
        shape = flip_horizontal(shape)
    for _ in range(rotation % 4):
        shape = rotate_clockwise(shape)
    return np.array(shape, dtype=np.int8)


@lru_cache(maxsize=None)
def unique_orientations(piece_id: int) -> Tuple[Tuple[int, bool], ...]:
    """
    Get the ``(rotation, flipped)`` pairs that produce distinct shapes.

    Symmetric pieces collapse: X5 and I1 have one orientation, O4 one,
    I2 two, and fully asymmetric pentominoes eight.
    """
    seen: List[np.ndarray] = []
    orientations = []
    for flipped in (False, True):
        for rotation in range(4):
            shape = get_transform(piece_id, rotation, flipped)
            if any(np.array_equal(shape, existing) for existing in seen):
                continue
            seen.append(shape)
            orientations.append((rotation, flipped))
    return tuple(orientations)


def shape_cells(shape: np.ndarray, x: int, y: int) -> List[Tuple[int, int]]:
    """
    Get the board cells a shape occupies when its bounding box starts at (x, y).

    Returns:
        List of ``(x, y)`` tuples for filled cells
    """
    rows, cols = np.nonzero(shape)
    return [(x + int(c), y + int(r)) for r, c in zip(rows, cols)]


def anchor_offset(shape: np.ndarray) -> Tuple[int, int]:
    """
    Offset of the first filled cell in the first non-empty row.

    The UI positions pieces by that cell, so a click at ``(cx, cy)`` maps to
    the bounding-box origin ``(cx - dx, cy - dy)``.
    """
    for r in range(shape.shape[0]):
        filled = np.flatnonzero(shape[r])
        if filled.size:
            return int(filled[0]), r
    return 0, 0


def available_pieces(pieces_used: Optional[Iterable[bool]]) -> List[int]:
    """Ids of pieces not yet marked as used."""
    if pieces_used is None:
        return []
    return [piece_id for piece_id, used in enumerate(pieces_used) if not used]


def remaining_squares(pieces_used: Optional[Iterable[bool]]) -> int:
    """Total squares across a player's unused pieces."""
    return sum(PIECE_SIZES[piece_id] for piece_id in available_pieces(pieces_used))


# Cached transforms, keyed by (piece_id, rotation, flipped)
_TRANSFORM_CACHE: Dict[Tuple[int, int, bool], np.ndarray] = {}


def cached_transform(piece_id: int, rotation: int, flipped: bool) -> np.ndarray:
    """Read-only cached variant of get_transform for hot loops."""
    key = (piece_id, rotation % 4, bool(flipped))
    shape = _TRANSFORM_CACHE.get(key)
    if shape is None:
        shape = get_transform(*key)
        shape.flags.writeable = False
        _TRANSFORM_CACHE[key] = shape
    return shape
