"""
Turn countdown: remaining per-turn and backup time plus a warning level.

Everything here is advisory. The server owns the real clock, applies the
backup-time decrement and assesses penalties; the readings below only
extrapolate from the last values it sent.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Hashable, Optional

from schemas.game_state import GameStatus

logger = logging.getLogger(__name__)

LIMIT_WARNING_SECONDS = 10.0
BACKUP_DANGER_SECONDS = 30.0


class WarningLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"
    CRITICAL = "critical"


@dataclass(frozen=True)
class TimerReading:
    """One countdown sample. Progress values are fractions in [0, 1]."""
    limit_remaining: float
    backup_remaining: float
    using_backup: bool
    warning_level: WarningLevel
    limit_progress: float
    backup_progress: float

    @property
    def limit_clock(self) -> str:
        return format_clock(self.limit_remaining)

    @property
    def backup_clock(self) -> str:
        return format_clock(self.backup_remaining)


def format_clock(seconds: float) -> str:
    """Render seconds as MM:SS, dropping partial seconds."""
    total = int(math.floor(max(seconds, 0.0)))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def classify_warning(
    limit_remaining: float,
    backup_remaining: float,
    using_backup: bool,
    limit_warning: float = LIMIT_WARNING_SECONDS,
    backup_danger: float = BACKUP_DANGER_SECONDS,
) -> WarningLevel:
    # Most severe first
    if using_backup and backup_remaining <= 0:
        return WarningLevel.CRITICAL
    if using_backup and backup_remaining < backup_danger:
        return WarningLevel.DANGER
    if not using_backup and limit_remaining < limit_warning:
        return WarningLevel.WARNING
    return WarningLevel.NORMAL


def _fraction(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return min(1.0, max(0.0, part / whole))


def compute_timer(
    limit_time: float,
    backup_time: float,
    round_start: Optional[float],
    now: float,
    is_my_turn: bool,
    status: GameStatus,
    backup_allowance: Optional[float] = None,
    limit_warning: float = LIMIT_WARNING_SECONDS,
    backup_danger: float = BACKUP_DANGER_SECONDS,
) -> TimerReading:
    """
    Derive the countdown for the local player.

    Args:
        limit_time: Per-turn allotment in seconds
        backup_time: Banked time at the start of this round, as last sent by the server
        round_start: Epoch seconds when the turn began
        now: Current epoch seconds
        is_my_turn: Whether the local player holds the turn
        status: Session lifecycle status
        backup_allowance: Initial bank used to scale ``backup_progress``
            (defaults to ``backup_time``)

    Returns:
        TimerReading; a full, normal reading when the countdown is not running
    """
    allowance = backup_allowance if backup_allowance else backup_time
    if status != GameStatus.PLAYING or not is_my_turn or round_start is None:
        return TimerReading(
            limit_remaining=limit_time,
            backup_remaining=backup_time,
            using_backup=False,
            warning_level=WarningLevel.NORMAL,
            limit_progress=1.0 if limit_time > 0 else 0.0,
            backup_progress=_fraction(backup_time, allowance),
        )

    elapsed = max(0.0, now - round_start)
    if elapsed < limit_time:
        limit_remaining = limit_time - elapsed
        backup_remaining = backup_time
        using_backup = False
    else:
        limit_remaining = 0.0
        backup_remaining = max(0.0, backup_time - (elapsed - limit_time))
        using_backup = True

    return TimerReading(
        limit_remaining=limit_remaining,
        backup_remaining=backup_remaining,
        using_backup=using_backup,
        warning_level=classify_warning(
            limit_remaining, backup_remaining, using_backup, limit_warning, backup_danger
        ),
        limit_progress=_fraction(limit_remaining, limit_time),
        backup_progress=_fraction(backup_remaining, allowance),
    )


def session_reading(session, now: Optional[float] = None, limit_warning: float = LIMIT_WARNING_SECONDS,
                    backup_danger: float = BACKUP_DANGER_SECONDS) -> TimerReading:
    """Countdown for ``session``'s own seat."""
    state = session.my_state
    backup = state.backup_time if state is not None else session.config.backup_time
    return compute_timer(
        limit_time=session.config.limit_time,
        backup_time=backup,
        round_start=session.round_start,
        now=time.time() if now is None else now,
        is_my_turn=session.is_my_turn,
        status=session.status,
        backup_allowance=session.config.backup_time or None,
        limit_warning=limit_warning,
        backup_danger=backup_danger,
    )


class TurnTicker:
    """
    Cancelable periodic countdown callback.

    ``sync(key, running)`` is called whenever session state changes; the
    running task is torn down whenever the key changes so a countdown never
    outlives the turn it was started for.
    """

    def __init__(self, read: Callable[[], TimerReading], on_tick: Callable[[TimerReading], Any],
                 interval: float = 0.1):
        self._read = read
        self._on_tick = on_tick
        self.interval = interval
        self._key: Optional[Hashable] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sync(self, key: Hashable, running: bool) -> None:
        if not running:
            self.stop()
            self._key = key
            return
        if self.running and key == self._key:
            return
        self.stop()
        self._key = key
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Timer restarted for turn {key}")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                self._on_tick(self._read())
            except Exception:
                logger.exception("Timer tick callback failed")
            await asyncio.sleep(self.interval)
