"""
Tests for GameRoom: commands, resync after reconnect, and terminal failures.
"""

import asyncio
import unittest
from unittest.mock import MagicMock

from client.config import ClientSettings
from client.connection import FATAL_MESSAGE
from client.exceptions import ApiError, ConnectionExhausted
from client.room import MAX_REJECTED_SNAPSHOTS, NO_TRIAL, GameRoom
from client.session import ALREADY_PASSED, NOT_YOUR_TURN
from schemas.game_state import GameSnapshot
from tests.utils_rooms import FakeTransport, move_payload, player_state, settle, snapshot_payload


class RoomHarness:
    """GameRoom over fake transports and a mocked REST API."""

    def __init__(self, user_id="u1", fail_connect=False):
        self.transports = []
        self.delays = []
        self.fail_connect = fail_connect
        self.api = MagicMock()
        self.room = GameRoom(
            "room1",
            ClientSettings(),
            user_id=user_id,
            api=self.api,
            transport_factory=self.factory,
            sleep=self.sleep,
        )

    def factory(self):
        transport = FakeTransport(fail_connect=self.fail_connect)
        self.transports.append(transport)
        return transport

    async def sleep(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)

    async def open_with(self, **snapshot):
        self.room.start()
        await settle()
        self.transports[-1].push(snapshot_payload(**snapshot))
        await settle()

    async def wait_for_resync(self):
        for _ in range(200):
            task = self.room._resync_task
            if task is not None and task.done():
                return
            await asyncio.sleep(0.01)
        raise AssertionError("resync did not finish")


class TestRoomCommands(unittest.TestCase):
    """Test move, pass and start commands."""

    def test_confirm_move_sends_predicted_board(self):
        async def run_test():
            h = RoomHarness()
            await h.open_with()
            room = h.room
            self.assertTrue(room.connected)
            self.assertTrue(room.session.is_my_turn)
            self.assertTrue(room.ticker.running)

            self.assertFalse(room.confirm_move())
            self.assertEqual(room.error, NO_TRIAL)

            room.preview.select(0)
            self.assertTrue(room.preview.place_at(0, 0))
            self.assertTrue(room.confirm_move())
            await settle()

            move = h.transports[0].sent[-1]
            self.assertEqual(move["type"], "move")
            self.assertEqual(move["pieceIndex"], 0)
            self.assertEqual(move["position"], {"x": 0, "y": 0})
            self.assertEqual(move["boardState"][0][0], 1)
            self.assertIsNone(room.preview.selected_piece)
            # The local board waits for the server's move_made
            self.assertEqual(int(room.session.board[0, 0]), 0)
            await room.close()

        asyncio.run(run_test())

    def test_pass_turn_rules(self):
        async def run_test():
            h = RoomHarness()
            await h.open_with(current="p2", states={"p1": player_state(passed=True)})
            room = h.room
            self.assertFalse(room.pass_turn())
            self.assertEqual(room.error, ALREADY_PASSED)
            await room.close()

            h = RoomHarness()
            await h.open_with(current="p2")
            self.assertFalse(h.room.pass_turn())
            self.assertEqual(h.room.error, NOT_YOUR_TURN)
            await h.room.close()

            h = RoomHarness()
            await h.open_with(current="p1")
            self.assertTrue(h.room.pass_turn())
            await settle()
            self.assertEqual(h.transports[0].sent, [{"type": "pass"}])
            await h.room.close()

        asyncio.run(run_test())

    def test_only_first_seat_starts_game(self):
        async def run_test():
            h = RoomHarness(user_id="u2")
            await h.open_with(status="waiting")
            self.assertFalse(await h.room.start_game())
            h.api.start_game.assert_not_called()
            await h.room.close()

            h = RoomHarness(user_id="u1")
            await h.open_with(status="waiting", players=("p1",), required=2)
            self.assertFalse(await h.room.start_game())
            self.assertEqual(h.room.error, "waiting for more players")
            await h.room.close()

            h = RoomHarness(user_id="u1")
            await h.open_with(status="waiting")
            self.assertTrue(await h.room.start_game())
            h.api.start_game.assert_called_once_with("room1")
            await h.room.close()

        asyncio.run(run_test())

    def test_server_error_surfaces(self):
        async def run_test():
            h = RoomHarness()
            await h.open_with()
            h.transports[0].push({"type": "error", "message": "Not your turn"})
            await settle()
            self.assertEqual(h.room.error, "Not your turn")
            await h.room.close()

        asyncio.run(run_test())


class TestRoomResilience(unittest.TestCase):
    """Test reconnect resync and terminal connection failure."""

    def test_reconnect_fetches_snapshot(self):
        async def run_test():
            h = RoomHarness()
            h.api.fetch_state.return_value = GameSnapshot.model_validate(snapshot_payload(round_=3, current="p2"))
            await h.open_with()
            h.api.fetch_state.assert_not_called()

            h.transports[0].drop()
            await settle()
            self.assertEqual(len(h.transports), 2)
            self.assertTrue(h.room.connected)
            self.assertIsNone(h.room.error)

            await h.wait_for_resync()
            h.api.fetch_state.assert_called_once_with("room1")
            self.assertEqual(h.room.session.current_round, 3)
            self.assertEqual(h.room.session.current_player.value, "p2")
            await h.room.close()

        asyncio.run(run_test())

    def test_resync_requests_are_coalesced(self):
        async def run_test():
            h = RoomHarness()
            h.api.fetch_state.return_value = GameSnapshot.model_validate(snapshot_payload())
            h.room.request_resync("first")
            h.room.request_resync("second")
            await h.wait_for_resync()
            self.assertEqual(h.api.fetch_state.call_count, 1)

            # A request that arrives while a fetch is in flight re-runs it once
            loop = asyncio.get_running_loop()
            calls = []

            def fetch(room_id):
                calls.append(room_id)
                if len(calls) == 1:
                    loop.call_soon_threadsafe(h.room.request_resync, "during fetch")
                return GameSnapshot.model_validate(snapshot_payload())

            h.api.fetch_state.side_effect = fetch
            h.room.request_resync("third")
            await h.wait_for_resync()
            self.assertEqual(calls, ["room1", "room1"])
            await h.room.close()

        asyncio.run(run_test())

    def test_rejected_snapshots_stop_refetching(self):
        async def run_test():
            h = RoomHarness()
            await h.open_with()
            h.transports[0].push(move_payload("p1", 0, 2, x=0, y=0))
            await settle()
            self.assertEqual(h.room.session.current_round, 2)

            # The server keeps answering with the round before the move
            h.api.fetch_state.return_value = GameSnapshot.model_validate(snapshot_payload())
            h.room.request_resync("test")
            await h.wait_for_resync()
            self.assertEqual(h.api.fetch_state.call_count, MAX_REJECTED_SNAPSHOTS)
            self.assertEqual(h.room.session.current_round, 2)
            self.assertEqual(int(h.room.session.board[0, 0]), 1)
            await h.room.close()

        asyncio.run(run_test())

    def test_resync_failure_sets_error(self):
        async def run_test():
            h = RoomHarness()
            h.api.fetch_state.side_effect = ApiError("HTTP 503", status=503)
            h.room.request_resync("test")
            await h.wait_for_resync()
            self.assertEqual(h.room.error, "HTTP 503")
            self.assertFalse(h.room.session.initialized)
            await h.room.close()

        asyncio.run(run_test())

    def test_exhausted_reconnects_are_fatal(self):
        async def run_test():
            h = RoomHarness(fail_connect=True)
            with self.assertRaises(ConnectionExhausted):
                await asyncio.wait_for(h.room.run_until_closed(), timeout=2)
            self.assertEqual(h.room.fatal_error, FATAL_MESSAGE)
            self.assertFalse(h.room.connected)
            self.assertEqual(len(h.transports), 6)

        asyncio.run(run_test())

    def test_local_close_ends_run_quietly(self):
        async def run_test():
            h = RoomHarness()
            runner = asyncio.get_running_loop().create_task(h.room.run_until_closed())
            await settle()
            await h.room.close()
            await asyncio.wait_for(runner, timeout=1)
            self.assertIsNone(h.room.fatal_error)
            self.assertEqual(len(h.transports), 1)

        asyncio.run(run_test())


if __name__ == '__main__':
    unittest.main()
