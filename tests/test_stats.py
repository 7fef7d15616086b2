"""Tests for the stats service and the streak roll-up."""

import asyncio
from datetime import date, timedelta

import pytest
import sqlalchemy.exc

import crud
from background import run_timer, streak_loop
from config import UserSettings
from recorder import UsageSessionRecorder
from schemas import AppRef
from stats import StatsService
from timer import FocusSessionTimer, TimerState

CHAT = AppRef(app_name="Chat", package_identifier="com.chat")


async def _use(recorder, clock, seconds):
    handle = recorder.open("u1", CHAT)
    clock.advance(seconds=seconds)
    recorder.close(handle)
    await recorder.flush()


@pytest.mark.asyncio
async def test_summary_for_anonymous_user_is_empty(offline, clock):
    stats = StatsService(offline, clock, UserSettings())

    summary = await stats.summary(None)

    assert summary.offline
    assert summary.daily_total_minutes == 0
    assert [p.minutes for p in summary.weekly] == [0] * 7
    assert summary.reference_date == date(2024, 3, 6)
    assert offline.calls == []


@pytest.mark.asyncio
async def test_summary_when_store_is_down(offline, clock):
    summary = await StatsService(offline, clock, UserSettings()).summary("u1")
    assert summary.offline
    assert summary.streak_days == 0


@pytest.mark.asyncio
async def test_summary_uses_logs_streaks_and_goal(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    await _use(recorder, clock, 45 * 60)
    await store.upsert_streak("u1", date(2024, 3, 5), 30, True)
    await store.upsert_streak("u1", date(2024, 3, 4), 30, True)
    await store.upsert_streak("u1", date(2024, 3, 3), 300, False)

    stats = StatsService(store, clock, UserSettings(daily_goal_minutes=30))
    summary = await stats.summary("u1")

    assert not summary.offline
    assert summary.daily_total_minutes == 45
    assert summary.weekly[-1].minutes == 45
    assert summary.average_minutes == 6
    assert summary.deviation_percent == 650
    assert summary.streak_days == 2
    assert summary.daily_goal_minutes == 30
    assert summary.goal_met is False


@pytest.mark.asyncio
async def test_record_day_upserts_one_row_per_date(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    stats = StatsService(store, clock, UserSettings(daily_goal_minutes=60))

    await _use(recorder, clock, 20 * 60)
    first = await stats.record_day("u1")
    await _use(recorder, clock, 50 * 60)
    second = await stats.record_day("u1")

    rows = await store.list_streaks("u1", date(2024, 3, 1), date(2024, 3, 31))
    assert len(rows) == 1
    assert first.goal_met and first.total_screen_time_minutes == 20
    assert not second.goal_met and second.total_screen_time_minutes == 70
    assert rows[0] == second


@pytest.mark.asyncio
async def test_record_day_without_owner_does_nothing(offline, clock):
    assert await StatsService(offline, clock, UserSettings()).record_day(None) is None
    assert offline.calls == []


@pytest.mark.asyncio
async def test_streak_loop_keeps_today_current(store, clock):
    recorder = UsageSessionRecorder(store, clock)
    await _use(recorder, clock, 10 * 60)
    stats = StatsService(store, clock, UserSettings())

    task = asyncio.ensure_future(streak_loop(stats, "u1", poll_seconds=3600))
    rows = []
    for _ in range(200):
        await asyncio.sleep(0.01)
        rows = await store.list_streaks("u1", clock.now().date(), clock.now().date())
        if rows:
            break
    task.cancel()

    assert rows and rows[0].total_screen_time_minutes == 10


@pytest.mark.asyncio
async def test_run_timer_catches_up_with_wall_clock(store, clock):
    timer = FocusSessionTimer(remote=store, clock=clock)
    timer.start("u1")
    clock.advance(minutes=40)

    await asyncio.wait_for(run_timer(timer, period=0), timeout=5)

    assert timer.state == TimerState.COMPLETED
    assert timer.writer.pending == 0


@pytest.mark.asyncio
async def test_summary_is_offline_when_store_times_out(store, clock, monkeypatch):
    def exhausted(*args, **kwargs):
        raise sqlalchemy.exc.TimeoutError("QueuePool limit reached")

    monkeypatch.setattr(crud, "list_usage_logs", exhausted)

    summary = await StatsService(store, clock, UserSettings()).summary("u1")

    assert summary.offline
    assert summary.daily_total_minutes == 0
