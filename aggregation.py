# aggregation.py
"""
Screen-time statistics derived from raw usage logs and streak rows.

Everything here is a pure function of its arguments. Days are UTC calendar
days of ``opened_at``; seconds are summed first and rounded to minutes once.
"""
import math
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List

from schemas import DayPoint, UsageSummary

WEEK_DAYS = 7
WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def utc_day(ts: datetime) -> date:
    if ts.tzinfo is None:
        return ts.date()
    return ts.astimezone(timezone.utc).date()


def seconds_by_day(logs: Iterable) -> Dict[date, int]:
    totals: Dict[date, int] = defaultdict(int)
    for log in logs:
        totals[utc_day(log.opened_at)] += log.duration_seconds or 0
    return dict(totals)


def window(reference_date: date, days: int = WEEK_DAYS) -> List[date]:
    """The `days` calendar days ending at reference_date, oldest first."""
    return [reference_date - timedelta(days=i) for i in range(days - 1, -1, -1)]


def daily_total_minutes(logs: Iterable, reference_date: date) -> int:
    return round_half_up(seconds_by_day(logs).get(reference_date, 0) / 60)


def weekly_series(logs: Iterable, reference_date: date) -> List[DayPoint]:
    by_day = seconds_by_day(logs)
    return [
        DayPoint(label=WEEKDAY_LABELS[d.weekday()], date=d, minutes=round_half_up(by_day.get(d, 0) / 60))
        for d in window(reference_date)
    ]


def seven_day_average(logs: Iterable, reference_date: date) -> int:
    by_day = seconds_by_day(logs)
    total_seconds = sum(by_day.get(d, 0) for d in window(reference_date))
    return round_half_up(total_seconds / 60 / WEEK_DAYS)


def deviation_percent(today_minutes: int, average_minutes: int) -> int:
    # negative means under the average
    if average_minutes <= 0:
        return 0
    return round_half_up((today_minutes - average_minutes) / average_minutes * 100)


def streak_length(streaks: Iterable, contiguous: bool = True) -> int:
    """
    Consecutive goal-met days counting back from the most recent row.

    With contiguous=True a missing day ends the streak; otherwise gaps
    are skipped over and only a goal_met=False row ends it.
    """
    by_date = {s.date: s for s in streaks}
    count = 0
    previous = None
    for day in sorted(by_date, reverse=True):
        if contiguous and previous is not None and previous - day != timedelta(days=1):
            break
        if not by_date[day].goal_met:
            break
        count += 1
        previous = day
    return count


def goal_met(daily_minutes: int, daily_goal_minutes: int) -> bool:
    return daily_minutes <= daily_goal_minutes


def summarize(logs, streaks, reference_date: date, daily_goal_minutes: int,
              contiguous: bool = True) -> UsageSummary:
    logs = list(logs)
    today = daily_total_minutes(logs, reference_date)
    average = seven_day_average(logs, reference_date)
    return UsageSummary(
        reference_date=reference_date,
        daily_total_minutes=today,
        weekly=weekly_series(logs, reference_date),
        average_minutes=average,
        deviation_percent=deviation_percent(today, average),
        streak_days=streak_length(streaks, contiguous=contiguous),
        daily_goal_minutes=daily_goal_minutes,
        goal_met=goal_met(today, daily_goal_minutes),
    )


def format_minutes(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}m" if rest else f"{hours}h"
