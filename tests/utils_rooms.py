"""
Shared helpers for room client tests: payload builders, a scripted
transport and a manual clock.
"""

import asyncio
import json

from client.connection import NORMAL_CLOSURE, TransportClosed


def empty_rows(size):
    return [[0] * size for _ in range(size)]


def player_state(used=(), passed=False, penalty=0, backup=120):
    pieces = [False] * 21
    for piece_id in used:
        pieces[piece_id] = True
    return {
        "pieces": pieces,
        "totalPiecesUsed": len(used),
        "penalty": penalty,
        "backupTime": backup,
        "passed": passed,
    }


def snapshot_payload(
    status="playing",
    players=("p1", "p2"),
    current="p1",
    round_=1,
    board=None,
    states=None,
    required=None,
    limit=60,
    backup=120,
    board_size=None,
):
    """A ``game_state`` frame; user ids are ``u1``..``u4`` matching the slot."""
    size = board_size or {2: 14, 3: 17, 4: 20}[max(len(players), 2)]
    states = dict(states or {})
    for slot in players:
        states.setdefault(slot, player_state(backup=backup))
    return {
        "type": "game_state",
        "config": {
            "boardSize": size,
            "limitTime": limit,
            "requiredPlayers": required or max(len(players), 2),
            "backupTime": backup,
            "gameStatus": status,
        },
        "players": {slot: {"userId": f"u{slot[1]}", "account": f"player{slot[1]}"} for slot in players},
        "progress": {"currentPlayer": current, "currentRound": round_, "roundStartTime": 1_000_000},
        "board": board if board is not None else empty_rows(size),
        "playerStates": states,
    }


def move_payload(player, piece, round_, x=None, y=None, rotation=0, flip=False, next_player=None, board=None,
                 state=None):
    payload = {
        "type": "move_made",
        "player": player,
        "pieceIndex": piece,
        "currentRound": round_,
    }
    if x is not None:
        payload["position"] = {"x": x, "y": y}
        payload["rotation"] = rotation
        payload["flip"] = flip
    if next_player is not None:
        payload["nextPlayer"] = next_player
    if board is not None:
        payload["board"] = board
    if state is not None:
        payload["playerState"] = state
    return payload


def pass_payload(player, round_, next_player=None):
    payload = {"type": "player_passed", "player": player, "currentRound": round_}
    if next_player is not None:
        payload["nextPlayer"] = next_player
    return payload


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeTransport:
    """Transport whose inbound frames are pushed by the test."""

    def __init__(self, fail_connect=False):
        self.fail_connect = fail_connect
        self.sent = []
        self.url = None
        self.closed_with = None
        self._open = False
        self._inbox = None

    async def connect(self, url):
        self._inbox = asyncio.Queue()
        if self.fail_connect:
            raise OSError("connection refused")
        self.url = url
        self._open = True

    async def recv(self):
        item = await self._inbox.get()
        if isinstance(item, TransportClosed):
            self._open = False
            raise item
        return item

    async def send(self, text):
        if not self._open:
            raise TransportClosed(reason="not open")
        self.sent.append(json.loads(text))

    async def close(self, code=NORMAL_CLOSURE, reason=""):
        if self._open:
            self._open = False
            self.closed_with = (code, reason)
            self._inbox.put_nowait(TransportClosed(code, reason))

    @property
    def is_open(self):
        return self._open

    def push(self, frame):
        """Queue an inbound frame; dicts are JSON-encoded."""
        self._inbox.put_nowait(json.dumps(frame) if isinstance(frame, (dict, list)) else frame)

    def drop(self, code=1006, reason="dropped"):
        """Simulate the server side going away."""
        self._open = False
        self._inbox.put_nowait(TransportClosed(code, reason))


async def settle(rounds=10):
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
