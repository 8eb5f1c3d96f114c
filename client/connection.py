"""
Resilient room connection.

``ConnectionManager`` keeps one logical connection alive over a transport
that may drop at any time: it dials, pings on a fixed interval, force-closes
a transport whose pongs stop arriving, and redials with capped exponential
backoff until the attempt budget is spent. Callers only see the typed events
below.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from schemas.commands import HeartbeatCommand, to_wire
from .config import ClientSettings

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
HEARTBEAT_TIMEOUT_CODE = 4000

FATAL_MESSAGE = "connection lost, reload required"


class TransportClosed(Exception):
    """Raised by ``Transport.recv`` once the underlying socket is gone."""

    def __init__(self, code: int = ABNORMAL_CLOSURE, reason: str = ""):
        super().__init__(f"closed ({code}) {reason}".strip())
        self.code = code
        self.reason = reason


class Transport(Protocol):
    """Minimal duplex text channel."""

    async def connect(self, url: str) -> None: ...

    async def recv(self) -> str: ...

    async def send(self, text: str) -> None: ...

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None: ...

    @property
    def is_open(self) -> bool: ...


class WebSocketTransport:
    """``Transport`` backed by the ``websockets`` asyncio client."""

    def __init__(self, open_timeout: float = 10.0):
        self.open_timeout = open_timeout
        self._ws = None

    async def connect(self, url: str) -> None:
        self._ws = await websockets.connect(url, open_timeout=self.open_timeout, ping_interval=None)

    async def recv(self) -> str:
        if self._ws is None:
            raise TransportClosed(ABNORMAL_CLOSURE, "not connected")
        try:
            message = await self._ws.recv()
        except ConnectionClosed as e:
            frame = e.rcvd
            if frame is None:
                raise TransportClosed(ABNORMAL_CLOSURE, "connection dropped") from e
            raise TransportClosed(frame.code, frame.reason) from e
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return message

    async def send(self, text: str) -> None:
        if self._ws is None:
            raise TransportClosed(ABNORMAL_CLOSURE, "not connected")
        await self._ws.send(text)

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._ws is not None:
            await self._ws.close(code=code, reason=reason)

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN


@dataclass(frozen=True)
class Connected:
    reconnected: bool


@dataclass(frozen=True)
class MessageReceived:
    payload: Dict[str, Any]


@dataclass(frozen=True)
class Disconnected:
    code: int
    reason: str


@dataclass(frozen=True)
class ConnectionFailed:
    message: str


ConnectionEvent = Union[Connected, MessageReceived, Disconnected, ConnectionFailed]


def backoff_delay(attempt: int, base: float, max_delay: float) -> float:
    """Delay before reconnect attempt ``attempt`` (0-based)."""
    return min(base * (2 ** attempt), max_delay)


class ConnectionManager:
    """
    Owns the socket for one room session.

    Args:
        transport_factory: Builds a fresh ``Transport`` per dial
        url: Room socket URL
        settings: Heartbeat and backoff parameters
        on_event: Called with every ``ConnectionEvent``, in order
        clock: Monotonic seconds, used for pong bookkeeping
        sleep: Awaitable sleep between reconnect attempts
    """

    def __init__(
        self,
        transport_factory: Callable[[], Transport],
        url: str,
        settings: ClientSettings,
        on_event: Callable[[ConnectionEvent], Any],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._factory = transport_factory
        self.url = url
        self.settings = settings
        self._on_event = on_event
        self._clock = clock
        self._sleep = sleep
        self.transport: Optional[Transport] = None
        self.attempts = 0
        self.failed = False
        self._closing = False
        self._last_pong = clock()
        self._task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._send_tasks = set()

    @property
    def closing(self) -> bool:
        """True once a local shutdown has begun."""
        return self._closing

    @property
    def is_open(self) -> bool:
        return self.transport is not None and self.transport.is_open

    def connect(self) -> asyncio.Task:
        """Start the connection loop; returns the task driving it."""
        if self._task is None or self._task.done():
            self._closing = False
            self.failed = False
            self.attempts = 0
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def close(self) -> None:
        """Locally initiated shutdown; never followed by a reconnect."""
        self._closing = True
        self._stop_heartbeat()
        if self.transport is not None and self.transport.is_open:
            await self.transport.close(NORMAL_CLOSURE, "client closed")
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Connection closed by client")

    def send(self, payload: Dict[str, Any]) -> bool:
        """
        Fire-and-forget send.

        Returns:
            False if the transport is not open; the frame is dropped
        """
        if not self.is_open:
            logger.error(f"Cannot send '{payload.get('type')}': connection not open")
            return False
        text = json.dumps(payload)
        task = asyncio.get_running_loop().create_task(self._send(self.transport, text))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)
        return True

    async def _send(self, transport: Transport, text: str) -> None:
        try:
            await transport.send(text)
        except (TransportClosed, ConnectionClosed, OSError) as e:
            logger.error(f"Send failed: {e}")

    def _emit(self, event: ConnectionEvent) -> None:
        try:
            self._on_event(event)
        except Exception:
            logger.exception(f"Connection event handler failed for {type(event).__name__}")

    async def run(self) -> None:
        """Dial, read and redial until closed locally or out of attempts."""
        dials = 0
        while not self._closing:
            dials += 1
            transport = self._factory()
            self.transport = transport
            try:
                await transport.connect(self.url)
            except (OSError, asyncio.TimeoutError, TransportClosed, WebSocketException) as e:
                logger.warning(f"Dial {dials} failed: {e}")
                code, reason = ABNORMAL_CLOSURE, str(e)
            else:
                self.attempts = 0
                self._last_pong = self._clock()
                logger.info(f"Connected to {self.url}" + (" (reconnected)" if dials > 1 else ""))
                self._emit(Connected(reconnected=dials > 1))
                self._start_heartbeat(transport)
                try:
                    code, reason = await self._read_loop(transport)
                finally:
                    self._stop_heartbeat()
                logger.info(f"Disconnected ({code}) {reason}")
                self._emit(Disconnected(code, reason))

            if self._closing:
                break
            if self.attempts >= self.settings.reconnect_max_attempts:
                self.failed = True
                logger.error(f"Giving up after {self.attempts} reconnect attempts")
                self._emit(ConnectionFailed(FATAL_MESSAGE))
                break
            delay = backoff_delay(
                self.attempts, self.settings.reconnect_base_delay, self.settings.reconnect_max_delay
            )
            self.attempts += 1
            logger.info(
                f"Reconnecting in {delay:.1f}s (attempt {self.attempts}/{self.settings.reconnect_max_attempts})"
            )
            await self._sleep(delay)

    async def _read_loop(self, transport: Transport):
        while True:
            try:
                raw = await transport.recv()
            except TransportClosed as e:
                return e.code, e.reason
            payload = self._decode(raw)
            if payload is None:
                continue
            if payload.get("type") == "pong":
                self._last_pong = self._clock()
            self._emit(MessageReceived(payload))

    @staticmethod
    def _decode(raw: str) -> Optional[Dict[str, Any]]:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Dropping non-JSON frame: {str(raw)[:80]!r}")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"Dropping non-object frame: {type(payload).__name__}")
            return None
        return payload

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _start_heartbeat(self, transport: Transport) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat_loop(transport))

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _heartbeat_loop(self, transport: Transport) -> None:
        while True:
            await asyncio.sleep(self.settings.heartbeat_interval)
            if not await self._heartbeat_tick(transport):
                return

    async def _heartbeat_tick(self, transport: Transport) -> bool:
        """
        Ping, or force-close a transport whose pongs have stopped.

        Returns:
            False once the transport has been closed
        """
        silent_for = self._clock() - self._last_pong
        if silent_for > self.settings.heartbeat_timeout:
            logger.warning(f"No pong for {silent_for:.1f}s; forcing reconnect")
            await transport.close(HEARTBEAT_TIMEOUT_CODE, "heartbeat timeout")
            return False
        if transport.is_open:
            try:
                await transport.send(json.dumps(to_wire(HeartbeatCommand())))
            except (TransportClosed, ConnectionClosed, OSError) as e:
                logger.error(f"Heartbeat send failed: {e}")
        return True
