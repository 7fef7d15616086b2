"""Tests for the app open/close usage recorder."""

from datetime import timedelta

import pytest

from errors import ValidationError
from events import PersistenceFailed
from recorder import LogState, UsageSessionRecorder
from schemas import AppCategory, AppIn, AppRef

CHAT = AppRef(app_id="a1", app_name="Chat", package_identifier="com.chat")


async def _logs(store, clock, owner="u1"):
    return await store.list_usage_logs(owner, clock.now() - timedelta(days=1), clock.now() + timedelta(days=1))


@pytest.mark.asyncio
async def test_close_sets_duration_closed_at_and_reflection_together(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    handle = recorder.open("u1", CHAT, intention="  check the group  ")
    await recorder.flush()

    (log,) = await _logs(store, clock)
    assert log.closed_at is None and log.duration_seconds is None and log.reflection is None
    assert log.intention == "check the group"

    clock.advance(seconds=95.7)
    recorder.close(handle, reflection="got distracted")
    await recorder.flush()

    (log,) = await _logs(store, clock)
    assert log.duration_seconds == 95
    assert log.closed_at == handle.closed_at
    assert log.reflection == "got distracted"
    assert log.app_name == "Chat" and log.package_identifier == "com.chat"
    assert handle.state == LogState.CLOSED


@pytest.mark.asyncio
async def test_close_without_reflection_still_closes(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    handle = recorder.open("u1", CHAT)
    clock.advance(seconds=10)
    recorder.close(handle)
    await recorder.flush()

    (log,) = await _logs(store, clock)
    assert log.duration_seconds == 10
    assert log.closed_at is not None
    assert log.reflection == ""


def test_anonymous_open_close_is_local_only(offline, clock):
    recorder = UsageSessionRecorder(offline, clock)
    restricted = AppRef(app_name="Chat", package_identifier="com.chat")

    handle = recorder.open(None, restricted, intention="reply to mom")
    clock.advance(seconds=42)
    recorder.close(handle)

    assert handle.local_only
    assert handle.duration_seconds == 42
    assert handle.intention == "reply to mom"
    assert offline.calls == []
    assert recorder.writer.pending == 0


@pytest.mark.asyncio
async def test_remote_failure_never_reaches_the_caller(offline, clock, bus):
    recorder = UsageSessionRecorder(offline, clock, events=bus)

    handle = recorder.open("u1", CHAT, intention="quick look")
    clock.advance(seconds=30)
    recorder.close(handle, reflection="ok")
    await recorder.flush()

    assert handle.state == LogState.CLOSED
    assert handle.duration_seconds == 30
    assert handle.log_id is None
    # the close is dropped because the open never got an id
    assert offline.calls == ["insert_usage_log"]
    assert [e.operation for e in bus.of(PersistenceFailed)] == ["usage_log.open"]


@pytest.mark.asyncio
async def test_negative_duration_is_rejected_and_handle_stays_open(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    handle = recorder.open("u1", CHAT)
    clock.advance(seconds=-5)

    with pytest.raises(ValidationError):
        recorder.close(handle)

    assert handle.state == LogState.OPEN
    assert handle.closed_at is None and handle.duration_seconds is None
    await recorder.flush()


@pytest.mark.asyncio
async def test_second_close_is_ignored(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    handle = recorder.open("u1", CHAT)
    clock.advance(seconds=20)
    recorder.close(handle, reflection="first")
    clock.advance(seconds=100)
    recorder.close(handle, reflection="second")
    await recorder.flush()

    (log,) = await _logs(store, clock)
    assert log.duration_seconds == 20
    assert log.reflection == "first"


@pytest.mark.asyncio
async def test_log_survives_app_deletion(store, clock):
    app = await store.upsert_app("u1", AppIn(name="Chat", package_identifier="com.chat",
                                             category=AppCategory.restricted, daily_limit_minutes=10))
    recorder = UsageSessionRecorder(store, clock)
    handle = recorder.open("u1", AppRef.from_app(app))
    clock.advance(seconds=5)
    recorder.close(handle)
    await recorder.flush()

    await store.delete_app(app.id)

    (log,) = await _logs(store, clock)
    assert log.app_id == app.id
    assert log.app_name == "Chat"
    assert log.package_identifier == "com.chat"


@pytest.mark.asyncio
async def test_every_open_creates_a_new_log(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    for _ in range(3):
        handle = recorder.open("u1", CHAT)
        clock.advance(seconds=1)
        recorder.close(handle)
    await recorder.flush()

    assert len(await _logs(store, clock)) == 3


def test_open_outside_event_loop_degrades_to_local(store, session_factory, clock, bus):
    import models

    recorder = UsageSessionRecorder(store, clock, events=bus)
    handle = recorder.open("u1", CHAT, intention="quick look")
    clock.advance(seconds=12)
    recorder.close(handle, reflection="done")

    assert handle.state == LogState.CLOSED
    assert handle.duration_seconds == 12
    assert handle.log_id is None
    assert recorder.writer.pending == 0
    assert [e.operation for e in bus.of(PersistenceFailed)] == ["usage_log.open"]
    db = session_factory()
    try:
        assert db.query(models.UsageLog).count() == 0
    finally:
        db.close()
