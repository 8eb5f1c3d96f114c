"""
Tests for the placement preview and the derived status text and actions.
"""

import unittest

from client.preview import NO_PIECE_SELECTED, PlacementPreview
from client.session import GameSession
from client.status import AvailableActions, ScoreLine, available_actions, game_status_text, round_status, scoreboard
from engine.board import PlayerSlot
from tests.utils_rooms import FakeClock, move_payload, player_state, snapshot_payload


def seated(user_id="u1", **snapshot):
    session = GameSession(user_id, clock=FakeClock(2000.0))
    session.handle_payload(snapshot_payload(**snapshot))
    return session


class TestPlacementPreview(unittest.TestCase):
    """Test selection, transforms and trial placement."""

    def test_place_at_uses_anchor_cell(self):
        session = seated()
        preview = PlacementPreview(session)
        preview.select(20)  # Y5, anchor at column 1 of row 0
        result = preview.place_at(13, 0)
        self.assertTrue(result)
        self.assertEqual(preview.trial, (12, 0))
        self.assertEqual((session.pending.x, session.pending.y), (12, 0))
        self.assertEqual(int(session.display_board[0, 13]), 1)
        self.assertEqual(int(session.board[0, 13]), 0)

    def test_rejected_trial_keeps_reason(self):
        preview = PlacementPreview(seated())
        self.assertEqual(preview.place_at(0, 0).reason, NO_PIECE_SELECTED)
        preview.select(0)
        result = preview.place_at(5, 5)
        self.assertFalse(result)
        self.assertIs(preview.last_result, result)
        self.assertIsNone(preview.trial)

    def test_transforms_clear_trial(self):
        session = seated()
        preview = PlacementPreview(session)
        preview.select(1)
        preview.place_at(0, 0)
        self.assertIsNotNone(preview.trial)

        preview.rotate()
        self.assertEqual(preview.rotation, 1)
        self.assertIsNone(preview.trial)
        self.assertIsNone(session.pending)
        self.assertEqual(preview.shape.shape, (2, 1))

        preview.place_at(0, 0)
        preview.flip()
        self.assertTrue(preview.flipped)
        self.assertIsNone(session.pending)

    def test_select_resets_transform(self):
        preview = PlacementPreview(seated())
        preview.select(7)
        preview.rotate()
        preview.flip()
        preview.select(8)
        self.assertEqual((preview.rotation, preview.flipped), (0, False))
        with self.assertRaises(ValueError):
            preview.select(21)

    def test_transforms_without_selection_do_nothing(self):
        preview = PlacementPreview(seated())
        preview.rotate()
        preview.flip()
        self.assertEqual((preview.rotation, preview.flipped), (0, False))
        self.assertIsNone(preview.shape)

    def test_authoritative_move_drops_trial(self):
        session = seated()
        preview = PlacementPreview(session)
        preview.select(0)
        preview.place_at(0, 0)
        session.handle_payload(move_payload("p1", 0, 2, x=0, y=0, next_player="p2"))
        self.assertIsNone(preview.trial)
        self.assertEqual(int(session.board[0, 0]), 1)


class TestRoundStatus(unittest.TestCase):
    """Test the one-line turn summary."""

    def test_turn_text(self):
        self.assertEqual(round_status(seated()), "your turn")
        self.assertEqual(round_status(seated(current="p2")), "player2's turn")
        self.assertEqual(round_status(seated(status="waiting")), "")

    def test_passed_players_are_listed(self):
        session = seated(players=("p1", "p2", "p3"), current="p2", states={"p3": player_state(passed=True)})
        self.assertEqual(round_status(session), "player2's turn (player3 passed)")

        session = seated(current="p2", states={"p1": player_state(passed=True)})
        self.assertEqual(round_status(session), "you passed, waiting for player2")

    def test_everyone_passed(self):
        session = seated(states={"p1": player_state(passed=True), "p2": player_state(passed=True)})
        self.assertEqual(round_status(session), "game about to end")

    def test_stuck_player_is_told(self):
        full = [[2] * 14 for _ in range(14)]
        session = seated(board=full, states={"p1": player_state(used=range(20))})
        self.assertEqual(round_status(session), "your turn, no legal placement left")


class TestGameStatusText(unittest.TestCase):

    def test_lifecycle_text(self):
        self.assertEqual(game_status_text(GameSession("u1")), "loading")
        self.assertEqual(game_status_text(seated(status="waiting")), "waiting to start")
        self.assertEqual(game_status_text(seated(status="waiting", players=("p1",))), "waiting for players")
        self.assertEqual(game_status_text(seated("u2", status="waiting")), "waiting for player1 to start")
        self.assertEqual(game_status_text(seated()), "game in progress")

    def test_final_result(self):
        session = seated()
        session.handle_payload({
            "type": "game_ended", "winner": "p1",
            "scores": {"p1": 5, "p2": 3}, "penalties": {"p2": 1},
        })
        self.assertEqual(
            game_status_text(session), "player1 wins - player1: 5 (penalty 0), player2: 3 (penalty 1)"
        )

        session = seated()
        session.handle_payload({"type": "game_ended", "winner": "draw", "scores": {"p1": 4, "p2": 4}})
        self.assertTrue(game_status_text(session).startswith("draw - "))


class TestScoreboard(unittest.TestCase):
    """Test per-seat score lines."""

    def test_live_scores_from_board(self):
        session = seated(states={"p2": player_state(penalty=3)})
        session.handle_payload(move_payload("p1", 4, 2, x=0, y=0))
        self.assertEqual(scoreboard(session), [
            ScoreLine(PlayerSlot.P1, "player1", squares=4, penalty=0, score=4, pieces_left=20, squares_left=85),
            ScoreLine(PlayerSlot.P2, "player2", squares=0, penalty=3, score=-3, pieces_left=21, squares_left=89),
        ])

    def test_final_result_ordering(self):
        session = seated()
        session.handle_payload({"type": "game_ended", "winner": "p2", "scores": {"p1": 1, "p2": 5},
                                "penalties": {"p1": 0, "p2": 2}})
        lines = scoreboard(session)
        self.assertEqual([line.slot for line in lines], [PlayerSlot.P2, PlayerSlot.P1])
        self.assertEqual((lines[0].score, lines[0].penalty), (5, 2))

    def test_ties_keep_turn_order(self):
        session = seated(players=("p1", "p2", "p3"))
        self.assertEqual([line.slot for line in scoreboard(session)], [PlayerSlot.P1, PlayerSlot.P2, PlayerSlot.P3])


class TestAvailableActions(unittest.TestCase):

    def test_nothing_before_state_arrives(self):
        self.assertEqual(available_actions(GameSession("u1")), AvailableActions())

    def test_actions_follow_selection_and_trial(self):
        session = seated()
        preview = PlacementPreview(session)
        actions = available_actions(session, preview)
        self.assertTrue(actions.pass_turn)
        self.assertFalse(actions.rotate)
        self.assertFalse(actions.confirm_move)

        preview.select(0)
        preview.place_at(0, 0)
        actions = available_actions(session, preview)
        self.assertTrue(actions.rotate and actions.flip)
        self.assertTrue(actions.confirm_move and actions.clear_trial)
        self.assertFalse(actions.start_game)

    def test_not_my_turn(self):
        actions = available_actions(seated(current="p2"))
        self.assertFalse(actions.pass_turn)
        self.assertFalse(actions.confirm_move)

    def test_start_game_for_first_seat_only(self):
        self.assertTrue(available_actions(seated(status="waiting")).start_game)
        self.assertFalse(available_actions(seated("u2", status="waiting")).start_game)
        self.assertFalse(available_actions(seated(status="waiting", players=("p1",))).start_game)


if __name__ == '__main__':
    unittest.main()
