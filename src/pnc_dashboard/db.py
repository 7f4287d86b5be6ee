"""MongoDB snapshot store behind the in-memory cache.

Keeps the last good API result per cache key so a restart does not have to
re-hit every upstream. Falls back GRACEFULLY when:
  - MONGODB_URI is not set
  - MongoDB is unreachable
  - User lacks permissions on the pnc_dashboard database

Every public method catches exceptions and returns safe defaults
so the dashboard NEVER fails because of a MongoDB problem.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

log = logging.getLogger(__name__)

DATABASE_NAME = "pnc_dashboard"


class SnapshotStore:
    """Lazily connected key -> JSON document store."""

    def __init__(self, uri: str, database: str = DATABASE_NAME):
        self.uri = uri
        self.database = database
        self._client: Any = None
        self._db: Any = None
        self._available: bool | None = None

    def _get_db(self):
        """Lazy-init MongoDB connection. Returns None if unavailable or unauthorized."""
        if self._available is False:
            return None
        if self._db is not None:
            return self._db

        if not self.uri:
            log.info("MONGODB_URI not set, running without persistent snapshots")
            self._available = False
            return None

        try:
            from pymongo import MongoClient
            self._client = MongoClient(self.uri, serverSelectionTimeoutMS=5000)

            # Ping confirms connectivity, but NOT database-level authorization
            self._client.admin.command("ping")

            db = self._client[self.database]
            # Fails here if the user has no readWrite on our database
            db.snapshots.find_one({}, {"_id": 1})
            db.snapshots.create_index("key", unique=True)

            self._db = db
            self._available = True
            log.info("MongoDB connected and authorized on %s", self.database)
            return self._db

        except Exception as exc:
            log.warning("MongoDB unavailable: %s", exc)
            self._available = False
            self._db = None
            self._client = None
            return None

    def is_available(self) -> bool:
        self._get_db()
        return self._available is True

    def save(self, key: str, data: dict) -> None:
        """Upsert a snapshot. Silently fails if MongoDB unavailable."""
        try:
            db = self._get_db()
            if db is None:
                return
            db.snapshots.update_one(
                {"key": key},
                {"$set": {"key": key, "data": data, "saved_at": datetime.now(timezone.utc)}},
                upsert=True,
            )
        except Exception as exc:
            log.debug("snapshot save failed for %s: %s", key, exc)

    def load(self, key: str, max_age_seconds: float) -> dict | None:
        """Snapshot no older than ``max_age_seconds``, else None."""
        try:
            db = self._get_db()
            if db is None:
                return None
            cutoff = datetime.now(timezone.utc) - timedelta(seconds=max_age_seconds)
            doc = db.snapshots.find_one(
                {"key": key, "saved_at": {"$gte": cutoff}}, {"_id": 0, "data": 1},
            )
            return doc.get("data") if doc else None
        except Exception as exc:
            log.debug("snapshot load failed for %s: %s", key, exc)
            return None

    def close(self) -> None:
        try:
            if self._client is not None:
                self._client.close()
        except Exception as exc:
            log.debug("MongoDB close failed: %s", exc)
        finally:
            self._client = None
            self._db = None
