"""
Blokus board model: player slots, board grids, placement and scoring.

A board is an ``N x N`` numpy integer grid indexed ``[y, x]`` where:
- 0 represents empty space
- 1-4 represent the color id of the owning player slot

Boards are treated as values: ``apply_placement`` always returns a new grid.
"""

import numpy as np
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from enum import Enum

from .pieces import shape_cells


DRAW = "draw"

# Latest-move cells, indexed by color id - 1
HIGHLIGHT_MARKS = "ABCD"

BOARD_SIZES: Dict[int, int] = {
    2: 14,
    3: 17,
    4: 20,
}

# Legacy two-player role names used by older room payloads.
_LEGACY_ROLES = {
    "creator": "p1",
    "joiner": "p2",
}


class PlayerSlot(str, Enum):
    """Seat in a session; also fixes the turn rotation order."""
    P1 = "p1"
    P2 = "p2"
    P3 = "p3"
    P4 = "p4"

    @property
    def color_id(self) -> int:
        """Board cell value owned by this slot."""
        return _SLOT_ORDER.index(self) + 1

    @classmethod
    def from_color_id(cls, color_id: int) -> "PlayerSlot":
        if not 1 <= color_id <= len(_SLOT_ORDER):
            raise ValueError(f"Invalid color id: {color_id!r}")
        return _SLOT_ORDER[color_id - 1]

    @classmethod
    def parse(cls, raw: Union[str, "PlayerSlot"]) -> "PlayerSlot":
        """Parse a wire identifier (``p1``..``p4`` or a legacy role name)."""
        if isinstance(raw, PlayerSlot):
            return raw
        if not isinstance(raw, str):
            raise ValueError(f"Invalid player slot: {raw!r}")
        value = raw.strip().lower()
        value = _LEGACY_ROLES.get(value, value)
        return cls(value)


_SLOT_ORDER: Tuple[PlayerSlot, ...] = tuple(PlayerSlot)


def board_size_for_players(player_count: int) -> int:
    """Board edge length for a configured player count."""
    try:
        return BOARD_SIZES[player_count]
    except KeyError:
        raise ValueError(f"Unsupported player count: {player_count}") from None


def new_board(size: int) -> np.ndarray:
    """Create an empty board."""
    if size not in BOARD_SIZES.values():
        raise ValueError(f"Unsupported board size: {size}")
    return np.zeros((size, size), dtype=np.int8)


def board_from_rows(rows: Sequence[Sequence[int]], size: Optional[int] = None) -> np.ndarray:
    """
    Build a board from nested lists, validating shape and cell values.

    Args:
        rows: Row-major cell values
        size: Expected edge length; inferred from ``rows`` when None

    Raises:
        ValueError: If the grid is not square, has the wrong size, or holds
            values outside 0..4
    """
    grid = np.array(rows, dtype=np.int64)
    if grid.ndim != 2 or grid.shape[0] != grid.shape[1]:
        raise ValueError(f"Board must be square, got shape {grid.shape}")
    if size is not None and grid.shape[0] != size:
        raise ValueError(f"Board size {grid.shape[0]} does not match expected {size}")
    if grid.size and (grid.min() < 0 or grid.max() > len(_SLOT_ORDER)):
        raise ValueError("Board cells must be between 0 and 4")
    return grid.astype(np.int8)


def board_corners(size: int) -> List[Tuple[int, int]]:
    """The four corner cells as (x, y)."""
    last = size - 1
    return [(0, 0), (last, 0), (0, last), (last, last)]


def apply_placement(board: np.ndarray, shape: np.ndarray, x: int, y: int, color_id: int) -> np.ndarray:
    """
    Place a shape on a copy of the board.

    Every filled shape cell at offset (x, y) is set to ``color_id``; the input
    board is never modified.

    Raises:
        ValueError: If any filled cell lands outside the board
    """
    new = board.copy()
    size = new.shape[0]
    for cx, cy in shape_cells(shape, x, y):
        if not (0 <= cx < size and 0 <= cy < size):
            raise ValueError(f"Cell ({cx}, {cy}) is outside a {size}x{size} board")
        new[cy, cx] = color_id
    return new


def count_squares(board: np.ndarray, color_id: int) -> int:
    """Total cells owned by a color."""
    return int(np.count_nonzero(board == color_id))


def final_score(board: np.ndarray, color_id: int, penalty: int) -> int:
    """
    Squares covered minus penalty.

    Not clamped: the server decides whether negative scores are shown as 0.
    """
    return count_squares(board, color_id) - penalty


def decide_winner(scores: Mapping[PlayerSlot, int]) -> Union[PlayerSlot, str, None]:
    """Slot with the top score, ``"draw"`` on a shared top score, None if empty."""
    if not scores:
        return None
    best = max(scores.values())
    leaders = [slot for slot, score in scores.items() if score == best]
    if len(leaders) > 1:
        return DRAW
    return leaders[0]


def cleared_cells(old: np.ndarray, new: np.ndarray) -> int:
    """Number of cells filled in ``old`` that are empty or differ in ``new``."""
    if old.shape != new.shape:
        return int(np.count_nonzero(old))
    filled = old != 0
    return int(np.count_nonzero(filled & (new != old)))


def render_board(board: np.ndarray, highlight: Optional[Iterable[Tuple[int, int]]] = None) -> str:
    """
    String representation of the board.

    Empty cells are ".", owned cells the color digit. Cells listed in
    ``highlight`` as (x, y) are drawn with the color letter A-D instead.
    """
    marked = set(highlight or ())
    result = []
    for y, row in enumerate(board):
        line = []
        for x, value in enumerate(row):
            if value == 0:
                line.append(".")
            elif (x, y) in marked:
                line.append(HIGHLIGHT_MARKS[int(value) - 1])
            else:
                line.append(str(int(value)))
        result.append("".join(line))
    return "\n".join(result)
