"""
Display-level status derived from a session: turn text, the scoreboard and
which actions are currently available.
"""

from dataclasses import dataclass
from typing import List, Optional

from engine.board import PlayerSlot, count_squares
from engine.pieces import available_pieces, remaining_squares
from engine.placement import has_legal_placement
from schemas.game_state import GameStatus
from .session import GameSession


@dataclass(frozen=True)
class AvailableActions:
    confirm_move: bool = False
    rotate: bool = False
    flip: bool = False
    pass_turn: bool = False
    clear_trial: bool = False
    start_game: bool = False


@dataclass(frozen=True)
class ScoreLine:
    slot: PlayerSlot
    name: str
    squares: int
    penalty: int
    score: int
    pieces_left: int
    squares_left: int


def player_name(session: GameSession, slot: Optional[PlayerSlot]) -> str:
    if slot is None:
        return "nobody"
    info = session.roster.get(slot)
    if info is not None and info.account:
        return info.account
    return slot.value.upper()


def round_status(session: GameSession) -> str:
    """One-line turn summary; empty unless the game is being played."""
    if session.status != GameStatus.PLAYING:
        return ""
    seats = session.seats
    passed = [slot for slot in seats if session.players.get(slot) and session.players[slot].passed]
    if seats and len(passed) == len(seats):
        return "game about to end"
    me = session.my_state
    current = player_name(session, session.current_player)
    if me is not None and me.passed:
        return f"you passed, waiting for {current}"
    if session.is_my_turn:
        text = "your turn"
        if me is not None and not has_legal_placement(
            session.board, me.color_id, me.is_first_move, me.pieces_used
        ):
            text += ", no legal placement left"
    else:
        text = f"{current}'s turn"
    others = [player_name(session, slot) for slot in passed if slot != session.my_slot]
    if others:
        text += f" ({', '.join(others)} passed)"
    return text


def game_status_text(session: GameSession) -> str:
    """Lifecycle summary, including the final result once finished."""
    if not session.initialized:
        return "loading"
    if session.status == GameStatus.WAITING:
        if session.my_slot == PlayerSlot.P1:
            return "waiting to start" if session.is_ready else "waiting for players"
        return f"waiting for {player_name(session, PlayerSlot.P1)} to start"
    if session.status == GameStatus.PLAYING:
        return "game in progress"
    result = session.result
    if result is None:
        return "game over"
    parts = ", ".join(
        f"{player_name(session, slot)}: {score} (penalty {result.penalties.get(slot, 0)})"
        for slot, score in sorted(result.scores.items(), key=lambda item: item[0].color_id)
    )
    headline = "draw" if result.is_draw else f"{player_name(session, result.winner)} wins"
    if result.provisional:
        headline += " (provisional)"
    return f"{headline} - {parts}" if parts else headline


def available_actions(session: GameSession, preview=None) -> AvailableActions:
    """Which controls are enabled, given the session and an optional ``PlacementPreview``."""
    if not session.initialized:
        return AvailableActions()
    playing = session.status == GameStatus.PLAYING
    me = session.my_state
    has_piece = preview is not None and preview.selected_piece is not None
    has_trial = preview is not None and preview.trial is not None
    return AvailableActions(
        confirm_move=playing and session.is_my_turn and has_trial,
        rotate=has_piece,
        flip=has_piece,
        pass_turn=playing and session.is_my_turn and me is not None and not me.passed,
        clear_trial=has_trial,
        start_game=(
            session.my_slot == PlayerSlot.P1
            and session.is_ready
            and session.status == GameStatus.WAITING
        ),
    )


def scoreboard(session: GameSession) -> List[ScoreLine]:
    """
    Per-seat score lines, best score first.

    Uses the final result once one exists, otherwise the live board.
    ``squares_left`` is the size of the pieces a player still holds.
    """
    result = session.result
    lines = []
    for slot in session.seats:
        state = session.players.get(slot)
        pieces_used = state.pieces_used if state is not None else None
        if result is not None and slot in result.scores:
            score = result.scores[slot]
            penalty = result.penalties.get(slot, 0)
        else:
            score = session.score(slot)
            penalty = state.penalty if state is not None else 0
        lines.append(ScoreLine(
            slot=slot,
            name=player_name(session, slot),
            squares=count_squares(session.board, slot.color_id),
            penalty=penalty,
            score=score,
            pieces_left=len(available_pieces(pieces_used)),
            squares_left=remaining_squares(pieces_used),
        ))
    # sorted() is stable, so ties keep turn order
    return sorted(lines, key=lambda line: line.score, reverse=True)
