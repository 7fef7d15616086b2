# recorder.py
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from errors import ValidationError
from remote import BackgroundWriter
from schemas import AppRef

logger = logging.getLogger("habitloop.recorder")


class LogState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class LogHandle:
    """
    One "app open" event. Anonymous handles are local only and never reach
    the remote store.
    """

    def __init__(self, owner: Optional[str], app: AppRef, opened_at: datetime, intention: Optional[str]):
        self.owner = owner
        self.app = app
        self.opened_at = opened_at
        self.intention = intention
        self.state = LogState.OPEN
        self.closed_at: Optional[datetime] = None
        self.duration_seconds: Optional[int] = None
        self.reflection: Optional[str] = None
        self.log_id: Optional[str] = None
        self._insert = None

    @property
    def local_only(self) -> bool:
        return self.owner is None

    def __repr__(self):
        return (
            f"<LogHandle app={self.app.package_identifier} state={self.state.value} "
            f"log_id={self.log_id}>"
        )


class UsageSessionRecorder:
    """
    Records app opens and closes as UsageLog rows.

    Both calls return immediately; the remote insert/update runs in the
    background and a failure there is logged, never raised. Reaching the app
    matters more than keeping the log.
    """

    def __init__(self, remote, clock, writer: Optional[BackgroundWriter] = None, events=None):
        self.remote = remote
        self.clock = clock
        self.writer = writer or BackgroundWriter(events)

    def open(self, owner: Optional[str], app: AppRef, intention: Optional[str] = None) -> LogHandle:
        intention = (intention or "").strip() or None
        handle = LogHandle(owner, app, self.clock.now(), intention)
        if handle.local_only or self.remote is None:
            return handle
        handle._insert = self.writer.spawn(self._insert_log(handle), "usage_log.open")
        return handle

    async def _insert_log(self, handle: LogHandle):
        handle.log_id = await self.remote.insert_usage_log(
            handle.owner, handle.opened_at, handle.intention, handle.app
        )
        return handle.log_id

    def close(self, handle: LogHandle, reflection: Optional[str] = None) -> None:
        if handle.state == LogState.CLOSED:
            logger.warning("Ignoring second close of %r", handle)
            return

        closed_at = self.clock.now()
        duration = int((closed_at - handle.opened_at).total_seconds())
        if duration < 0:
            raise ValidationError("App closed before it was opened")

        handle.closed_at = closed_at
        handle.duration_seconds = duration
        handle.reflection = (reflection or "").strip()
        handle.state = LogState.CLOSED

        if handle._insert is None:
            return
        self.writer.spawn(self._close_log(handle), "usage_log.close")

    async def _close_log(self, handle: LogHandle):
        await handle._insert
        if handle.log_id is None:
            logger.warning("Open of %r was never stored, dropping its close", handle)
            return
        await self.remote.update_usage_log_close(
            handle.log_id, handle.closed_at, handle.duration_seconds, handle.reflection
        )

    async def flush(self) -> None:
        await self.writer.drain()
