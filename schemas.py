# schemas.py
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional
from datetime import date, datetime, timezone
from enum import Enum


class AppCategory(str, Enum):
    allowed = "allowed"
    restricted = "restricted"
    blocked = "blocked"


class SessionType(str, Enum):
    pomodoro = "pomodoro"
    deep = "deep"
    custom = "custom"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes; everything in the core is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# APPS
class AppIn(BaseModel):
    name: str = Field(min_length=1)
    package_identifier: str = Field(min_length=1)
    category: AppCategory = AppCategory.allowed
    daily_limit_minutes: Optional[int] = Field(default=None, gt=0)
    profile_scope: Optional[str] = None

    @model_validator(mode="after")
    def limit_only_when_restricted(self):
        if self.category != AppCategory.restricted:
            self.daily_limit_minutes = None
        return self


class App(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    owner: str
    name: str
    package_identifier: str
    category: AppCategory
    daily_limit_minutes: Optional[int] = None
    profile_scope: Optional[str] = None

    def visible_under(self, profile: Optional[str]) -> bool:
        return self.profile_scope is None or profile is None or self.profile_scope == profile


class AppRef(BaseModel):
    """What a usage log remembers about the app it was opened for."""
    model_config = ConfigDict(frozen=True)

    app_id: Optional[str] = None
    app_name: Optional[str] = None
    package_identifier: Optional[str] = None

    @classmethod
    def from_app(cls, app: App) -> "AppRef":
        return cls(app_id=app.id, app_name=app.name, package_identifier=app.package_identifier)


# USAGE LOGS
class UsageLogOpen(BaseModel):
    opened_at: datetime
    intention: Optional[str] = None
    app_id: Optional[str] = None
    app_name: Optional[str] = None
    package_identifier: Optional[str] = None

    @field_validator("opened_at")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class UsageLogClose(BaseModel):
    closed_at: datetime
    duration_seconds: int = Field(ge=0)
    reflection: Optional[str] = None

    @field_validator("closed_at")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class UsageLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner: str
    app_id: Optional[str] = None
    app_name: Optional[str] = None
    package_identifier: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    intention: Optional[str] = None
    reflection: Optional[str] = None
    duration_seconds: Optional[int] = Field(default=None, ge=0)

    @field_validator("opened_at", "closed_at")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


# FOCUS SESSIONS
class FocusSessionStart(BaseModel):
    started_at: datetime
    session_type: SessionType = SessionType.pomodoro

    @field_validator("started_at")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class FocusSessionEnd(BaseModel):
    ended_at: datetime
    duration_minutes: int = Field(ge=0)

    @field_validator("ended_at")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


class FocusSession(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner: str
    session_type: SessionType
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    @field_validator("started_at", "ended_at")
    @classmethod
    def utc_timestamps(cls, value):
        return as_utc(value)


# STREAKS
class StreakIn(BaseModel):
    total_screen_time_minutes: int = Field(ge=0)
    goal_met: bool


class Streak(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    owner: str
    date: date
    total_screen_time_minutes: int = 0
    goal_met: bool = False


# STATS
class DayPoint(BaseModel):
    label: str
    date: date
    minutes: int


class UsageSummary(BaseModel):
    reference_date: date
    daily_total_minutes: int
    weekly: List[DayPoint]
    average_minutes: int
    deviation_percent: int
    streak_days: int
    daily_goal_minutes: int
    goal_met: bool
    offline: bool = False
