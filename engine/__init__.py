"""
Blokus rules engine package.

This package contains the client-side game rules, including:
- Piece catalog and rotate/flip transforms
- Board model, player slots and scoring
- Placement validation and legal placement search
"""

from .board import (
    DRAW, PlayerSlot, apply_placement, board_corners, board_from_rows,
    board_size_for_players, count_squares, decide_winner, final_score, new_board,
)
from .pieces import PIECES, Piece, flip_horizontal, get_piece, get_transform, rotate_clockwise
from .placement import PlacementResult, has_legal_placement, iter_legal_placements, validate_placement

__all__ = [
    'DRAW', 'PlayerSlot',
    'apply_placement', 'board_corners', 'board_from_rows', 'board_size_for_players',
    'count_squares', 'decide_winner', 'final_score', 'new_board',
    'PIECES', 'Piece', 'flip_horizontal', 'get_piece', 'get_transform', 'rotate_clockwise',
    'PlacementResult', 'has_legal_placement', 'iter_legal_placements', 'validate_placement',
]
