# crud.py
from sqlalchemy import or_
from sqlalchemy.orm import Session
import models
import schemas
from datetime import date, datetime, timezone
from typing import Optional


def _naive(dt: datetime) -> datetime:
    # columns hold naive UTC
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# APPS
def list_apps(db: Session, owner: str, profile: Optional[str] = None):
    q = db.query(models.App).filter(models.App.owner == owner)
    if profile:
        q = q.filter(or_(models.App.profile_scope == profile, models.App.profile_scope.is_(None)))
    return q.order_by(models.App.name.asc()).all()


def get_app(db: Session, app_id: str):
    return db.query(models.App).filter(models.App.id == app_id).first()


def upsert_app(db: Session, owner: str, app: schemas.AppIn):
    """
    Insert-or-update on (owner, package_identifier). Re-adding a package
    updates the existing row instead of creating a second one.
    """
    row = db.query(models.App).filter(
        models.App.owner == owner,
        models.App.package_identifier == app.package_identifier,
    ).first()
    if row is None:
        row = models.App(owner=owner, package_identifier=app.package_identifier)
        db.add(row)
    row.name = app.name
    row.category = app.category.value
    row.daily_limit_minutes = app.daily_limit_minutes
    row.profile_scope = app.profile_scope
    row.updated_at = datetime.utcnow()
    db.commit(); db.refresh(row)
    return row


def delete_app(db: Session, app_id: str):
    row = get_app(db, app_id)
    if row:
        db.delete(row); db.commit(); return True
    return False


# USAGE LOGS
def insert_usage_log(db: Session, owner: str, entry: schemas.UsageLogOpen):
    row = models.UsageLog(
        owner=owner,
        opened_at=_naive(entry.opened_at),
        intention=entry.intention,
        app_id=entry.app_id,
        app_name=entry.app_name,
        package_identifier=entry.package_identifier,
    )
    db.add(row); db.commit(); db.refresh(row)
    return row


def get_usage_log(db: Session, log_id: str):
    return db.query(models.UsageLog).filter(models.UsageLog.id == log_id).first()


def close_usage_log(db: Session, log_id: str, close: schemas.UsageLogClose):
    row = get_usage_log(db, log_id)
    if not row:
        return None
    if row.closed_at is not None:
        # closed exactly once; duration is never recomputed
        return row
    row.closed_at = _naive(close.closed_at)
    row.duration_seconds = close.duration_seconds
    row.reflection = close.reflection if close.reflection is not None else ""
    db.commit(); db.refresh(row)
    return row


def list_usage_logs(db: Session, owner: str, start: datetime, end: datetime):
    return db.query(models.UsageLog).filter(
        models.UsageLog.owner == owner,
        models.UsageLog.opened_at >= _naive(start),
        models.UsageLog.opened_at <= _naive(end),
    ).order_by(models.UsageLog.opened_at.desc()).all()


# FOCUS SESSIONS
def insert_focus_session(db: Session, owner: str, start: schemas.FocusSessionStart):
    row = models.FocusSession(
        owner=owner,
        session_type=start.session_type.value,
        started_at=_naive(start.started_at),
    )
    db.add(row); db.commit(); db.refresh(row)
    return row


def get_focus_session(db: Session, session_id: str):
    return db.query(models.FocusSession).filter(models.FocusSession.id == session_id).first()


def end_focus_session(db: Session, session_id: str, end: schemas.FocusSessionEnd):
    row = get_focus_session(db, session_id)
    if not row:
        return None
    if row.ended_at is not None:
        return row
    row.ended_at = _naive(end.ended_at)
    row.duration_minutes = end.duration_minutes
    db.commit(); db.refresh(row)
    return row


# STREAKS
def list_streaks(db: Session, owner: str, start: date, end: date):
    return db.query(models.Streak).filter(
        models.Streak.owner == owner,
        models.Streak.date >= start,
        models.Streak.date <= end,
    ).order_by(models.Streak.date.desc()).all()


def upsert_streak(db: Session, owner: str, day: date, streak: schemas.StreakIn):
    row = db.query(models.Streak).filter(
        models.Streak.owner == owner, models.Streak.date == day
    ).first()
    if row is None:
        row = models.Streak(owner=owner, date=day)
        db.add(row)
    row.total_screen_time_minutes = streak.total_screen_time_minutes
    row.goal_met = streak.goal_met
    db.commit(); db.refresh(row)
    return row
