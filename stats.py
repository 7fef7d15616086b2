# stats.py
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import aggregation
from errors import HabitError
from schemas import Streak, UsageSummary

logger = logging.getLogger("habitloop.stats")

STREAK_LOOKBACK_DAYS = 30


def day_bounds(start: date, end: date):
    """Inclusive UTC datetime range covering the calendar days start..end."""
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.max, tzinfo=timezone.utc),
    )


class StatsService:
    """
    Fetches an owner's usage logs and streak rows and feeds them to the
    aggregation functions. Anonymous users, or an unreachable store, get a
    summary over empty data flagged as offline.
    """

    def __init__(self, remote, clock, settings):
        self.remote = remote
        self.clock = clock
        self.settings = settings

    def today(self) -> date:
        return aggregation.utc_day(self.clock.now())

    async def summary(self, owner: Optional[str], reference_date: Optional[date] = None) -> UsageSummary:
        reference_date = reference_date or self.today()
        goal = self.settings.daily_goal_minutes
        if owner is None or self.remote is None:
            return aggregation.summarize([], [], reference_date, goal).model_copy(update={"offline": True})

        week_start = reference_date - timedelta(days=aggregation.WEEK_DAYS - 1)
        try:
            logs = await self.remote.list_usage_logs(owner, *day_bounds(week_start, reference_date))
            streaks = await self.remote.list_streaks(
                owner, reference_date - timedelta(days=STREAK_LOOKBACK_DAYS - 1), reference_date
            )
        except HabitError as e:
            logger.warning("Stats for %s unavailable, showing empty summary: %s", owner, e)
            return aggregation.summarize([], [], reference_date, goal).model_copy(update={"offline": True})
        return aggregation.summarize(logs, streaks, reference_date, goal)

    async def record_day(self, owner: Optional[str], day: Optional[date] = None) -> Optional[Streak]:
        """Upsert the Streak row for `day` from its usage total and the daily goal."""
        if owner is None or self.remote is None:
            return None
        day = day or self.today()
        logs = await self.remote.list_usage_logs(owner, *day_bounds(day, day))
        total = aggregation.daily_total_minutes(logs, day)
        met = aggregation.goal_met(total, self.settings.daily_goal_minutes)
        return await self.remote.upsert_streak(owner, day, total, met)
