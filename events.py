# events.py
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type
import logging

logger = logging.getLogger("habitloop.events")


@dataclass(frozen=True)
class CatalogUpdated:
    apps: Tuple[Any, ...]


@dataclass(frozen=True)
class SyncFailed:
    owner: str
    error: Exception


@dataclass(frozen=True)
class TimerTicked:
    remaining_seconds: int


@dataclass(frozen=True)
class TimerStateChanged:
    previous: str
    current: str


@dataclass(frozen=True)
class SessionCompleted:
    # session_id is None for local-only sessions and while the start insert is still in flight
    session_type: str
    duration_minutes: int
    session_id: Optional[str] = None


@dataclass(frozen=True)
class PersistenceFailed:
    operation: str
    error: Exception = field(compare=False)


class EventBus:
    """
    Plain observer registry. Listeners subscribe per event class and are called
    synchronously in registration order. A failing listener is logged and never
    breaks the emitter or the other listeners.
    """

    def __init__(self):
        self._listeners: Dict[Type, List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: Type, callback: Callable[[Any], None]) -> Callable[[], None]:
        self._listeners.setdefault(event_type, []).append(callback)

        def unsubscribe():
            listeners = self._listeners.get(event_type, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def emit(self, event) -> None:
        for callback in list(self._listeners.get(type(event), [])):
            try:
                callback(event)
            except Exception:
                logger.exception("Listener for %s failed", type(event).__name__)
