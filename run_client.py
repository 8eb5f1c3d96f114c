#!/usr/bin/env python3
"""
Follow a Blokus room from the terminal.

Creates or joins a room, keeps the connection alive and prints the board and
turn status whenever the session changes. Settings come from BLOKUS_*
environment variables (see client/config.py).
"""

import argparse
import asyncio
import logging
from pathlib import Path

from client import ClientSettings, ConnectionExhausted, GameApi, GameRoom, game_status_text, round_status, scoreboard
from client.exceptions import ApiError
from engine.board import render_board
from schemas.game_state import GameStatus
from utils.logging_setup import create_session_log_dir, setup_logging

logger = logging.getLogger(__name__)


async def follow(room_id: str, settings: ClientSettings, user_id: str, auto_start: bool):
    room = GameRoom(room_id, settings, user_id=user_id)
    last = {"key": None, "start_sent": False}

    def show(session):
        key = (session.status, session.current_round, session.current_player, session.resync_requests)
        if key == last["key"]:
            return
        last["key"] = key
        print(render_board(session.display_board, highlight=session.latest_move_cells()))
        print(game_status_text(session))
        status = round_status(session)
        if status:
            print(status)
        for line in scoreboard(session):
            print(f"  {line.name}: {line.score} ({line.squares} squares, -{line.penalty}, {line.pieces_left} pieces left)")

    room.session.add_listener(show)
    if auto_start:
        room.session.add_listener(lambda session: _maybe_start(room, last))
    try:
        await room.run_until_closed()
    finally:
        await room.close()


def _maybe_start(room: GameRoom, flags: dict):
    session = room.session
    if flags["start_sent"]:
        return
    if session.status == GameStatus.WAITING and session.is_ready and session.my_slot is not None:
        flags["start_sent"] = True
        asyncio.get_running_loop().create_task(room.start_game())


def main():
    parser = argparse.ArgumentParser(description="Follow a Blokus room")
    parser.add_argument("--room", help="Room id to join; omit to create a new room")
    parser.add_argument("--limit-time", type=float, default=60, help="Per-turn seconds when creating a room")
    parser.add_argument("--user-id", required=True, help="Your user id, used to find your seat")
    parser.add_argument("--auto-start", action="store_true", help="Start the game once enough players joined")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-dir", type=Path, default=None, help="Write logs under a timestamped directory")
    args = parser.parse_args()

    settings = ClientSettings.from_env()
    log_file = None
    if args.log_dir is not None:
        log_file = create_session_log_dir(args.log_dir, args.room) / "client.log"
    setup_logging(args.log_level, log_file)

    api = GameApi(settings.api_url, settings.token, settings.request_timeout)
    room_id = args.room
    try:
        if room_id is None:
            room_id = api.create_room(args.limit_time)
            print(f"Created room {room_id}")
        else:
            api.join_room(room_id)
    except ApiError as e:
        logger.error(f"Could not enter room: {e}")
        raise SystemExit(1)

    print(f"Following room {room_id} (Ctrl+C to stop)")
    try:
        asyncio.run(follow(room_id, settings, args.user_id, args.auto_start))
    except ConnectionExhausted as e:
        logger.error(str(e))
        raise SystemExit(2)
    except KeyboardInterrupt:
        print("Stopped")


if __name__ == "__main__":
    main()
