"""
Shared fixtures: a throwaway SQLite store, a manual clock, an in-memory
device cache and a remote store that is always offline.
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

import models  # noqa: F401
from clock import ManualClock
from database import Base, make_engine
from errors import RemoteUnavailable
from events import EventBus
from local_cache import MemoryCache
from remote import RemoteStore, SqlRemoteStore

# a Wednesday
START = datetime(2024, 3, 6, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlRemoteStore(session_factory)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def cache():
    return MemoryCache()


class RecordingBus(EventBus):
    def __init__(self):
        super().__init__()
        self.seen = []

    def emit(self, event):
        self.seen.append(event)
        super().emit(event)

    def of(self, kind):
        return [e for e in self.seen if type(e) is kind]


@pytest.fixture
def bus():
    return RecordingBus()


class OfflineStore(RemoteStore):
    """Every call fails as if the network were down, and is counted."""

    def __init__(self):
        self.calls = []

    def _fail(self, name):
        self.calls.append(name)
        raise RemoteUnavailable(f"{name}: network unreachable")

    async def list_apps(self, owner, profile=None):
        self._fail("list_apps")

    async def upsert_app(self, owner, app):
        self._fail("upsert_app")

    async def delete_app(self, app_id):
        self._fail("delete_app")

    async def insert_usage_log(self, owner, opened_at, intention=None, app=None):
        self._fail("insert_usage_log")

    async def update_usage_log_close(self, log_id, closed_at, duration_seconds, reflection=None):
        self._fail("update_usage_log_close")

    async def list_usage_logs(self, owner, start, end):
        self._fail("list_usage_logs")

    async def insert_focus_session(self, owner, started_at, session_type):
        self._fail("insert_focus_session")

    async def update_focus_session_end(self, session_id, ended_at, duration_minutes):
        self._fail("update_focus_session_end")

    async def list_streaks(self, owner, start, end):
        self._fail("list_streaks")

    async def upsert_streak(self, owner, day, total_minutes, goal_met):
        self._fail("upsert_streak")


@pytest.fixture
def offline():
    return OfflineStore()
