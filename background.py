# background.py
import asyncio
import logging

logger = logging.getLogger("habitloop.background")


async def run_timer(timer, period: float = 1.0):
    """
    Periodic tick source for a FocusSessionTimer.
    Each wake-up reconciles against the wall clock instead of assuming one
    second passed, so a suspended loop (app in background) catches up.
    Returns once the timer reaches a terminal state.
    """
    while not timer.finished:
        await asyncio.sleep(period)
        try:
            timer.sync()
        except Exception as e:
            logger.exception("Timer loop error: %s", e)
    await timer.flush()


async def streak_loop(stats, owner, poll_seconds: int = 300):
    """
    Keeps today's streak row current for `owner`, every poll_seconds.
    Runs until cancelled.
    """
    while True:
        try:
            row = await stats.record_day(owner)
            if row is not None:
                logger.info(f"Streak {row.date}: {row.total_screen_time_minutes} min, goal met={row.goal_met}")
        except Exception as e:
            logger.exception("Streak loop error: %s", e)
        await asyncio.sleep(poll_seconds)
