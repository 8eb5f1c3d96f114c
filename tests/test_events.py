"""
Tests for inbound event parsing and outbound command serialization.
"""

import unittest

import numpy as np
from pydantic import ValidationError

from engine.board import DRAW, PlayerSlot
from schemas.commands import HeartbeatCommand, MoveCommand, PassCommand, board_payload, to_wire
from schemas.events import (
    ErrorEvent, GameEndedEvent, GameStateEvent, MoveMadeEvent, PlayerJoinedEvent,
    PlayerPassedEvent, PongEvent, parse_event,
)
from schemas.game_state import GameSnapshot, GameStatus, Position
from tests.utils_rooms import move_payload, player_state, snapshot_payload


class TestParseEvent(unittest.TestCase):
    """Test decoding of every inbound event kind."""

    def test_game_state(self):
        event = parse_event(snapshot_payload(players=("p1", "p2", "p3")))
        self.assertIsInstance(event, GameStateEvent)
        self.assertEqual(event.config.board_size, 17)
        self.assertEqual(event.config.game_status, GameStatus.PLAYING)
        self.assertEqual(event.progress.current_player, PlayerSlot.P1)
        self.assertEqual(set(event.players), {PlayerSlot.P1, PlayerSlot.P2, PlayerSlot.P3})
        self.assertEqual(event.players[PlayerSlot.P2].user_id, "u2")
        self.assertEqual(event.player_states[PlayerSlot.P3].backup_time, 120)

    def test_legacy_game_state(self):
        payload = {
            "type": "game_state",
            "config": {"boardSize": 14, "limitTime": 30, "gameStatus": "waiting"},
            "players": {"creator": {"userId": 7, "account": "alice"}, "joiner": None},
            "progress": {"currentPlayer": "creator", "currentRound": 0},
            "board": {"board": [[0] * 14 for _ in range(14)]},
            "creator": player_state(used=(0,)),
        }
        event = parse_event(payload)
        self.assertEqual(event.players[PlayerSlot.P1].user_id, "7")
        self.assertIsNone(event.players[PlayerSlot.P2])
        self.assertEqual(event.progress.current_player, PlayerSlot.P1)
        self.assertTrue(event.player_states[PlayerSlot.P1].pieces[0])
        self.assertEqual(len(event.board), 14)

    def test_player_joined(self):
        event = parse_event({"type": "player_joined", "player": "p3", "info": {"userId": "u3"}})
        self.assertIsInstance(event, PlayerJoinedEvent)
        self.assertEqual(event.player, PlayerSlot.P3)
        legacy = parse_event({"type": "player_joined", "joiner": {"userId": "u2", "account": "bob"}})
        self.assertEqual(legacy.player, PlayerSlot.P2)
        self.assertEqual(legacy.info.account, "bob")

    def test_move_made(self):
        event = parse_event(move_payload("p1", 3, 2, x=4, y=5, rotation=1, flip=True, next_player="p2"))
        self.assertIsInstance(event, MoveMadeEvent)
        self.assertEqual(event.piece_index, 3)
        self.assertEqual(event.position, Position(x=4, y=5))
        self.assertTrue(event.flip)
        self.assertEqual(event.next_player, PlayerSlot.P2)
        self.assertIsNone(event.board)

    def test_move_made_board_state_key(self):
        rows = [[0] * 14 for _ in range(14)]
        rows[0][0] = 1
        event = parse_event({"type": "move_made", "player": "creator", "pieceIndex": 0,
                             "currentRound": 1, "boardState": rows})
        self.assertEqual(event.player, PlayerSlot.P1)
        self.assertEqual(event.board[0][0], 1)

    def test_player_passed_game_ended_pong_error(self):
        passed = parse_event({"type": "player_passed", "player": "p2", "currentRound": 4, "nextPlayer": "p1"})
        self.assertIsInstance(passed, PlayerPassedEvent)
        ended = parse_event({"type": "game_ended", "winner": "joiner", "scores": {"creator": 3, "joiner": 9},
                             "penalties": {"creator": 1}})
        self.assertIsInstance(ended, GameEndedEvent)
        self.assertEqual(ended.winner, PlayerSlot.P2)
        self.assertEqual(ended.scores[PlayerSlot.P1], 3)
        self.assertEqual(parse_event({"type": "game_ended", "winner": "draw"}).winner, DRAW)
        self.assertIsInstance(parse_event({"type": "pong"}), PongEvent)
        error = parse_event({"type": "error", "message": "Not your turn"})
        self.assertIsInstance(error, ErrorEvent)
        self.assertEqual(error.message, "Not your turn")

    def test_malformed_frames(self):
        with self.assertRaises(ValueError):
            parse_event(["not", "an", "object"])
        with self.assertRaises(ValidationError):
            parse_event({"type": "chat", "text": "hi"})
        with self.assertRaises(ValidationError):
            parse_event({"type": "move_made", "player": "p1"})
        with self.assertRaises(ValidationError):
            parse_event({"type": "move_made", "player": "p9", "pieceIndex": 0, "currentRound": 1})
        with self.assertRaises(ValidationError):
            parse_event(snapshot_payload(board_size=15))

    def test_snapshot_with_final_scores(self):
        payload = snapshot_payload(status="finished")
        payload["winner"] = "p1"
        payload["finalScores"] = {"creator": 20, "joiner": 11}
        snapshot = GameSnapshot.model_validate(payload)
        self.assertEqual(snapshot.scores, {PlayerSlot.P1: 20, PlayerSlot.P2: 11})


class TestCommands(unittest.TestCase):

    def test_move_command_wire_format(self):
        board = np.zeros((14, 14), dtype=np.int8)
        board[0, 0] = 1
        command = MoveCommand(
            piece_index=0, position=Position(x=0, y=0), rotation=0, flip=False, board_state=board_payload(board)
        )
        wire = to_wire(command)
        self.assertEqual(wire["type"], "move")
        self.assertEqual(wire["pieceIndex"], 0)
        self.assertEqual(wire["position"], {"x": 0, "y": 0})
        self.assertEqual(wire["boardState"][0][0], 1)
        self.assertIsInstance(wire["boardState"][0][0], int)

    def test_move_command_rejects_bad_rotation(self):
        with self.assertRaises(ValidationError):
            MoveCommand(piece_index=0, position=Position(x=0, y=0), rotation=4, board_state=[])

    def test_simple_commands(self):
        self.assertEqual(to_wire(PassCommand()), {"type": "pass"})
        self.assertEqual(to_wire(HeartbeatCommand()), {"type": "heartbeat"})


if __name__ == '__main__':
    unittest.main()
