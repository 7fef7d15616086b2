# catalog.py
import logging
import re
from typing import Optional, Tuple

import pydantic
from pydantic import TypeAdapter

from errors import HabitError, NotAuthenticated, ValidationError
from events import CatalogUpdated, SyncFailed
from schemas import App, AppCategory, AppIn

logger = logging.getLogger("habitloop.catalog")

SNAPSHOT_KEY = "catalog:apps"
DEFAULT_RESTRICTED_LIMIT_MINUTES = 20

_apps_adapter = TypeAdapter(Tuple[App, ...])


class AppCatalogCache:
    """
    Local-first list of monitored apps.

    Reads are always served from the last known-good snapshot. refresh()
    reconciles it with the remote store and replaces it in one assignment;
    on failure the old snapshot stays and a SyncFailed event is emitted.
    """

    def __init__(self, remote, cache, events=None):
        self.remote = remote
        self.cache = cache
        self.events = events
        self.last_sync_error: Optional[Exception] = None
        self._stale = False
        self._generation = 0
        self._applied_generation = 0
        self._apps: Tuple[App, ...] = self._load_snapshot()

    # READS

    def snapshot(self) -> Tuple[App, ...]:
        return self._apps

    @property
    def stale(self) -> bool:
        return self._stale

    def allowed_apps(self, active_profile: Optional[str] = None) -> Tuple[App, ...]:
        return tuple(
            a for a in self._apps
            if a.category == AppCategory.allowed and a.visible_under(active_profile)
        )

    def restricted_apps(self) -> Tuple[App, ...]:
        # restricted apps always surface, they go through the intention prompt
        return tuple(a for a in self._apps if a.category == AppCategory.restricted)

    def find(self, package_identifier: str) -> Optional[App]:
        for a in self._apps:
            if a.package_identifier == package_identifier:
                return a
        return None

    # SYNC

    async def refresh(self, owner: Optional[str], profile: Optional[str] = None) -> Tuple[App, ...]:
        if owner is None:
            return self._apps

        self._generation += 1
        generation = self._generation
        try:
            apps = tuple(await self.remote.list_apps(owner, profile))
        except HabitError as e:
            logger.warning("Catalog refresh for %s failed, serving cached apps: %s", owner, e)
            self.last_sync_error = e
            if self.events is not None:
                self.events.emit(SyncFailed(owner=owner, error=e))
            return self._apps

        if generation < self._applied_generation:
            # a newer refresh already landed
            return self._apps

        self._applied_generation = generation
        self._apps = apps
        self._stale = False
        self.last_sync_error = None
        self._save_snapshot(apps)
        if self.events is not None:
            self.events.emit(CatalogUpdated(apps=apps))
        return apps

    # WRITES

    async def upsert(self, owner: Optional[str], app: AppIn) -> App:
        if owner is None:
            raise NotAuthenticated("Adding apps needs a signed-in user")
        saved = await self.remote.upsert_app(owner, app)
        self._stale = True
        logger.info("Saved app %s (%s)", saved.package_identifier, saved.category.value)
        return saved

    async def remove(self, app_id: str) -> None:
        await self.remote.delete_app(app_id)
        remaining = tuple(a for a in self._apps if a.id != app_id)
        if len(remaining) != len(self._apps):
            self._apps = remaining
            self._save_snapshot(remaining)
        self._stale = True

    async def quick_add(self, owner: Optional[str], name: str,
                        package_identifier: Optional[str] = None) -> Optional[App]:
        """Add an app as allowed. Returns None if the package is already listed."""
        name = name.strip() or "Custom App"
        package_identifier = (package_identifier or "").strip() or custom_package_identifier(name)
        if self.find(package_identifier) is not None:
            return None
        return await self.upsert(owner, AppIn(name=name, package_identifier=package_identifier))

    async def set_category(self, owner: Optional[str], app: App, category: AppCategory,
                           daily_limit_minutes: Optional[int] = None) -> App:
        if category == AppCategory.restricted and daily_limit_minutes is None:
            daily_limit_minutes = app.daily_limit_minutes or DEFAULT_RESTRICTED_LIMIT_MINUTES
        try:
            update = AppIn(
                name=app.name,
                package_identifier=app.package_identifier,
                category=category,
                daily_limit_minutes=daily_limit_minutes,
                profile_scope=app.profile_scope,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e
        return await self.upsert(owner, update)

    # ON-DEVICE SNAPSHOT

    def _load_snapshot(self) -> Tuple[App, ...]:
        raw = self.cache.get(SNAPSHOT_KEY)
        if raw is None:
            return ()
        try:
            return _apps_adapter.validate_json(raw)
        except pydantic.ValidationError as e:
            logger.warning("Discarding unreadable catalog snapshot: %s", e)
            return ()

    def _save_snapshot(self, apps: Tuple[App, ...]) -> None:
        self.cache.set(SNAPSHOT_KEY, _apps_adapter.dump_json(apps))


def custom_package_identifier(name: str) -> str:
    return "com.custom." + re.sub(r"\s", "", name.lower())
