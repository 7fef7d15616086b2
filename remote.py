# remote.py
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional, Set

import pydantic
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

import crud
import schemas
from database import SessionLocal
from errors import HabitError, RemoteUnavailable, ValidationError
from events import PersistenceFailed

logger = logging.getLogger("habitloop.remote")


class RemoteStore(ABC):
    """
    Owner-scoped operations the core needs from the authoritative store.
    Every call may raise RemoteUnavailable.
    """

    @abstractmethod
    async def list_apps(self, owner: str, profile: Optional[str] = None) -> List[schemas.App]: ...

    @abstractmethod
    async def upsert_app(self, owner: str, app: schemas.AppIn) -> schemas.App: ...

    @abstractmethod
    async def delete_app(self, app_id: str) -> None: ...

    @abstractmethod
    async def insert_usage_log(self, owner: str, opened_at: datetime, intention: Optional[str] = None,
                               app: Optional[schemas.AppRef] = None) -> str: ...

    @abstractmethod
    async def update_usage_log_close(self, log_id: str, closed_at: datetime, duration_seconds: int,
                                     reflection: Optional[str] = None) -> None: ...

    @abstractmethod
    async def list_usage_logs(self, owner: str, start: datetime, end: datetime) -> List[schemas.UsageLog]: ...

    @abstractmethod
    async def insert_focus_session(self, owner: str, started_at: datetime,
                                   session_type: schemas.SessionType) -> str: ...

    @abstractmethod
    async def update_focus_session_end(self, session_id: str, ended_at: datetime, duration_minutes: int) -> None: ...

    @abstractmethod
    async def list_streaks(self, owner: str, start: date, end: date) -> List[schemas.Streak]: ...

    @abstractmethod
    async def upsert_streak(self, owner: str, day: date, total_minutes: int, goal_met: bool) -> schemas.Streak: ...


class SqlRemoteStore(RemoteStore):
    """
    RemoteStore backed by the SQLAlchemy tables in models.py. Blocking work runs
    in a worker thread with its own session so the event loop never waits on I/O.
    """

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    def _run(self, fn, *args):
        db = self._session_factory()
        try:
            return fn(db, *args)
        except IntegrityError as e:
            db.rollback()
            raise ValidationError(str(e.orig)) from e
        except (OperationalError, DBAPIError) as e:
            db.rollback()
            raise RemoteUnavailable(str(e.orig)) from e
        except SQLAlchemyError as e:
            db.rollback()
            raise RemoteUnavailable(str(e)) from e
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e
        finally:
            db.close()

    async def _call(self, fn, *args):
        return await asyncio.to_thread(self._run, fn, *args)

    async def list_apps(self, owner, profile=None):
        def op(db):
            return [schemas.App.model_validate(r) for r in crud.list_apps(db, owner, profile)]
        return await self._call(op)

    async def upsert_app(self, owner, app):
        def op(db):
            return schemas.App.model_validate(crud.upsert_app(db, owner, app))
        return await self._call(op)

    async def delete_app(self, app_id):
        await self._call(crud.delete_app, app_id)

    async def insert_usage_log(self, owner, opened_at, intention=None, app=None):
        app = app or schemas.AppRef()
        try:
            entry = schemas.UsageLogOpen(
                opened_at=opened_at,
                intention=intention,
                app_id=app.app_id,
                app_name=app.app_name,
                package_identifier=app.package_identifier,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        def op(db):
            return crud.insert_usage_log(db, owner, entry).id
        return await self._call(op)

    async def update_usage_log_close(self, log_id, closed_at, duration_seconds, reflection=None):
        try:
            close = schemas.UsageLogClose(closed_at=closed_at, duration_seconds=duration_seconds,
                                          reflection=reflection)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e
        await self._call(crud.close_usage_log, log_id, close)

    async def list_usage_logs(self, owner, start, end):
        def op(db):
            return [schemas.UsageLog.model_validate(r) for r in crud.list_usage_logs(db, owner, start, end)]
        return await self._call(op)

    async def insert_focus_session(self, owner, started_at, session_type):
        try:
            start = schemas.FocusSessionStart(started_at=started_at, session_type=session_type)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        def op(db):
            return crud.insert_focus_session(db, owner, start).id
        return await self._call(op)

    async def update_focus_session_end(self, session_id, ended_at, duration_minutes):
        try:
            end = schemas.FocusSessionEnd(ended_at=ended_at, duration_minutes=duration_minutes)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e
        await self._call(crud.end_focus_session, session_id, end)

    async def list_streaks(self, owner, start, end):
        def op(db):
            return [schemas.Streak.model_validate(r) for r in crud.list_streaks(db, owner, start, end)]
        return await self._call(op)

    async def upsert_streak(self, owner, day, total_minutes, goal_met):
        try:
            body = schemas.StreakIn(total_screen_time_minutes=total_minutes, goal_met=goal_met)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        def op(db):
            return schemas.Streak.model_validate(crud.upsert_streak(db, owner, day, body))
        return await self._call(op)


class BackgroundWriter:
    """
    Fire-and-forget remote writes. Callers never wait on (or see) a failed
    write; failures are logged and published as PersistenceFailed.
    """

    def __init__(self, events=None):
        self.events = events
        self._pending: Set[asyncio.Task] = set()

    def spawn(self, coro, operation: str) -> Optional[asyncio.Task]:
        """Schedule `coro` on the running loop. Without one the write is dropped and None returned."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("Remote write %s skipped, no running event loop", operation)
            self._report(operation, RemoteUnavailable("no running event loop"))
            return None
        task = loop.create_task(self._guard(coro, operation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _guard(self, coro, operation):
        try:
            return await coro
        except HabitError as e:
            logger.warning("Remote write %s failed: %s", operation, e)
            self._report(operation, e)
        except Exception as e:
            logger.exception("Remote write %s crashed", operation)
            self._report(operation, e)
        return None

    def _report(self, operation, error):
        if self.events is not None:
            self.events.emit(PersistenceFailed(operation=operation, error=error))

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))
