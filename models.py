from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Text, UniqueConstraint
from datetime import datetime
import uuid
from database import Base


def _new_id():
    return str(uuid.uuid4())


class App(Base):
    __tablename__ = "apps"
    id = Column(String, primary_key=True, default=_new_id)
    owner = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    package_identifier = Column(String, nullable=False)
    category = Column(String, nullable=False, default="allowed")  # allowed, restricted, blocked
    daily_limit_minutes = Column(Integer, nullable=True)
    profile_scope = Column(String, nullable=True)  # null = every profile
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("owner", "package_identifier", name="uix_app_owner_package"),
    )


class UsageLog(Base):
    __tablename__ = "usage_logs"
    id = Column(String, primary_key=True, default=_new_id)
    owner = Column(String, nullable=False, index=True)
    # weak reference, the app row may be gone; name/package are a snapshot
    app_id = Column(String, nullable=True)
    app_name = Column(String, nullable=True)
    package_identifier = Column(String, nullable=True)
    opened_at = Column(DateTime, nullable=False, index=True)
    closed_at = Column(DateTime, nullable=True)
    intention = Column(Text, nullable=True)
    reflection = Column(Text, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class FocusSession(Base):
    __tablename__ = "focus_sessions"
    id = Column(String, primary_key=True, default=_new_id)
    owner = Column(String, nullable=False, index=True)
    session_type = Column(String, nullable=False, default="pomodoro")  # pomodoro, deep, custom
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Streak(Base):
    __tablename__ = "streaks"
    id = Column(String, primary_key=True, default=_new_id)
    owner = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    total_screen_time_minutes = Column(Integer, nullable=False, default=0)
    goal_met = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("owner", "date", name="uix_streak_owner_date"),
    )
