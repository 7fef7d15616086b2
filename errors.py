# errors.py


class HabitError(Exception):
    """Base class for every error raised by the habit core."""


class RemoteUnavailable(HabitError):
    """Network / transport failure talking to the remote store. Never fatal."""


class NotAuthenticated(HabitError):
    """Operation needs an owner but none is signed in."""


class ValidationError(HabitError):
    """Bad input for a single operation (negative duration, malformed date...)."""
