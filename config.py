# config.py
from pydantic import BaseModel, Field, ValidationError, field_validator
from enum import Enum
import json
import logging

from schemas import SessionType

logger = logging.getLogger("habitloop.config")

SETTINGS_KEY = "settings"
DEFAULT_DAILY_GOAL_MINUTES = 120

# total minutes and display label per session type
FOCUS_SESSION_TYPES = {
    SessionType.pomodoro: {"duration": 25, "label": "Pomodoro"},
    SessionType.deep: {"duration": 90, "label": "Deep Work"},
    SessionType.custom: {"duration": 30, "label": "Custom"},
}


def session_minutes(session_type) -> int:
    return FOCUS_SESSION_TYPES[SessionType(session_type)]["duration"]


class Theme(str, Enum):
    light = "light"
    dark = "dark"


class UserSettings(BaseModel):
    """
    Explicit configuration handed to each component at construction.
    Persist it with save_settings() after a change.
    """

    theme: Theme = Theme.light
    daily_goal_minutes: int = Field(default=DEFAULT_DAILY_GOAL_MINUTES, gt=0)
    onboarding_complete: bool = False
    motivation_anchor: str = ""
    hide_notification_badges: bool = False
    dnd_enabled: bool = False
    dnd_start: str = Field(default="22:00", pattern=r"^\d{2}:\d{2}$")
    dnd_end: str = Field(default="07:00", pattern=r"^\d{2}:\d{2}$")

    @field_validator("theme", mode="before")
    @classmethod
    def legacy_theme(cls, value):
        # grayscale was retired, fall back to light
        if value == "grayscale":
            return Theme.light
        return value


def load_settings(cache) -> UserSettings:
    raw = cache.get(SETTINGS_KEY)
    if raw is None:
        return UserSettings()
    try:
        stored = json.loads(raw)
        if not isinstance(stored, dict):
            raise ValueError("settings record is not an object")
        return UserSettings(**{**UserSettings().model_dump(), **stored})
    except (ValueError, ValidationError) as e:
        logger.warning("Ignoring unreadable settings record: %s", e)
        return UserSettings()


def save_settings(cache, settings: UserSettings) -> None:
    cache.set(SETTINGS_KEY, settings.model_dump_json().encode("utf-8"))
