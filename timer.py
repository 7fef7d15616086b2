# timer.py
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from clock import SystemClock
from config import session_minutes
from errors import ValidationError
from events import SessionCompleted, TimerStateChanged, TimerTicked
from remote import BackgroundWriter
from schemas import SessionType

logger = logging.getLogger("habitloop.timer")


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (TimerState.COMPLETED, TimerState.CANCELLED)


class SessionHandle:
    def __init__(self, owner: Optional[str], session_type: SessionType, started_at: datetime):
        self.owner = owner
        self.session_type = session_type
        self.started_at = started_at
        self.session_id: Optional[str] = None
        self._insert = None

    @property
    def local_only(self) -> bool:
        return self.owner is None


class FocusSessionTimer:
    """
    Countdown state machine for one focus block.

        IDLE -> RUNNING <-> PAUSED -> COMPLETED
                RUNNING | PAUSED   -> CANCELLED

    Remaining time only ever goes down and stops at zero. It moves either by
    tick() (one second per call) or by sync(), which catches up with the wall
    clock after the tick source was suspended. Reaching zero while running
    completes the session exactly once; the remote update for it runs in the
    background and cannot undo the completion.
    """

    def __init__(self, session_type=SessionType.pomodoro, remote=None, clock=None,
                 writer: Optional[BackgroundWriter] = None, events=None):
        self.remote = remote
        self.clock = clock or SystemClock()
        self.events = events
        self.writer = writer or BackgroundWriter(events)
        self.state = TimerState.IDLE
        self.handle: Optional[SessionHandle] = None
        self._session_type = SessionType(session_type)
        self._remaining = self.total_seconds
        # wall-clock reference for the current running stretch
        self._anchor_at: Optional[datetime] = None
        self._anchor_remaining = self._remaining
        self._elapsed = 0

    @property
    def session_type(self) -> SessionType:
        return self._session_type

    @session_type.setter
    def session_type(self, value):
        if self.state != TimerState.IDLE:
            raise ValidationError("Session type is fixed once the timer has started")
        self._session_type = SessionType(value)
        self._remaining = self.total_seconds
        self._anchor_remaining = self._remaining

    @property
    def duration_minutes(self) -> int:
        return session_minutes(self._session_type)

    @property
    def total_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    # TRANSITIONS

    def start(self, owner: Optional[str] = None) -> SessionHandle:
        if self.state != TimerState.IDLE:
            raise ValidationError(f"Cannot start a timer that is {self.state.value}")
        now = self.clock.now()
        self.handle = SessionHandle(owner, self._session_type, now)
        self._remaining = self.total_seconds
        self._anchor(now)
        self._set_state(TimerState.RUNNING)
        if not self.handle.local_only and self.remote is not None:
            self.handle._insert = self.writer.spawn(self._insert_session(self.handle), "focus_session.start")
        return self.handle

    def tick(self) -> None:
        if self.state != TimerState.RUNNING:
            return
        self._elapsed += 1
        self._apply(self._anchor_remaining - self._elapsed)

    def sync(self) -> None:
        """Catch up with the wall clock, e.g. after the app was backgrounded."""
        if self.state != TimerState.RUNNING:
            return
        wall = int((self.clock.now() - self._anchor_at).total_seconds())
        if wall > self._elapsed:
            self._elapsed = wall
            self._apply(self._anchor_remaining - self._elapsed)

    def pause(self) -> None:
        if self.state != TimerState.RUNNING:
            return
        self.sync()
        if self.state == TimerState.RUNNING:
            self._set_state(TimerState.PAUSED)

    def resume(self) -> None:
        if self.state != TimerState.PAUSED:
            return
        self._anchor(self.clock.now())
        self._set_state(TimerState.RUNNING)

    def cancel(self) -> None:
        # an unfinished session keeps ended_at null remotely
        if self.state not in (TimerState.RUNNING, TimerState.PAUSED):
            return
        self._set_state(TimerState.CANCELLED)

    # INTERNALS

    def _anchor(self, now: datetime) -> None:
        self._anchor_at = now
        self._anchor_remaining = self._remaining
        self._elapsed = 0

    def _apply(self, remaining: int) -> None:
        remaining = max(0, min(self._remaining, remaining))
        if remaining != self._remaining:
            self._remaining = remaining
            if self.events is not None:
                self.events.emit(TimerTicked(remaining_seconds=remaining))
        if self._remaining == 0:
            self._complete()

    def _complete(self) -> None:
        if self.state != TimerState.RUNNING:
            return
        self._set_state(TimerState.COMPLETED)
        handle = self.handle
        logger.info("Focus session (%s) completed", self._session_type.value)
        if self.events is not None:
            self.events.emit(SessionCompleted(
                session_type=self._session_type.value,
                duration_minutes=self.duration_minutes,
                session_id=handle.session_id if handle else None,
            ))
        if handle is not None and handle._insert is not None:
            self.writer.spawn(self._end_session(handle, self.clock.now()), "focus_session.end")

    def _set_state(self, state: TimerState) -> None:
        previous, self.state = self.state, state
        if self.events is not None:
            self.events.emit(TimerStateChanged(previous=previous.value, current=state.value))

    async def _insert_session(self, handle: SessionHandle):
        handle.session_id = await self.remote.insert_focus_session(
            handle.owner, handle.started_at, handle.session_type
        )
        return handle.session_id

    async def _end_session(self, handle: SessionHandle, ended_at: datetime):
        await handle._insert
        if handle.session_id is None:
            logger.warning("Completed focus session was never stored, skipping end update")
            return
        # full configured length, pauses do not count against it
        await self.remote.update_focus_session_end(handle.session_id, ended_at, self.duration_minutes)

    async def flush(self) -> None:
        await self.writer.drain()
