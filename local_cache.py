# local_cache.py
from sqlalchemy import Column, LargeBinary, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from typing import Dict, Optional
import logging

logger = logging.getLogger("habitloop.local_cache")

# on-device store, kept apart from the authoritative tables
CacheBase = declarative_base()


class CacheEntry(CacheBase):
    __tablename__ = "cache_entries"
    key = Column(String, primary_key=True)
    value = Column(LargeBinary, nullable=False)


class MemoryCache:
    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteCache:
    """
    Durable key/value persistence for the catalog snapshot and user settings.
    Values are opaque bytes.
    """

    def __init__(self, path: str = "habitloop_cache.db"):
        self.engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
        CacheBase.metadata.create_all(bind=self.engine)
        self._session = sessionmaker(bind=self.engine)

    def get(self, key: str) -> Optional[bytes]:
        with self._session() as db:
            row = db.get(CacheEntry, key)
            return bytes(row.value) if row else None

    def set(self, key: str, value: bytes) -> None:
        with self._session() as db:
            row = db.get(CacheEntry, key)
            if row is None:
                db.add(CacheEntry(key=key, value=value))
            else:
                row.value = value
            db.commit()
        logger.debug("Stored %d bytes under %s", len(value), key)

    def delete(self, key: str) -> None:
        with self._session() as db:
            row = db.get(CacheEntry, key)
            if row:
                db.delete(row); db.commit()
