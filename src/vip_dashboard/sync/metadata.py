"""Per entity kind sync progress (last successful sync and etag)."""

from datetime import datetime
from typing import Optional

from vip_dashboard.database.models import SyncMetadata
from vip_dashboard.database.repository import Repository
from vip_dashboard.utils.constants import TOPIC_SYNC_METADATA
from vip_dashboard.utils.formatters import later_of, parse_iso, to_iso, utcnow


class SyncMetadataStore:
    """One row per entity kind in ``sync_metadata``, created lazily."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def metadata(self, key: str) -> SyncMetadata:
        """Fetch the row for *key*, inserting an empty one on first use."""
        existing = self.repo.get_sync_metadata(key)
        if existing is not None:
            return existing
        with self.repo.transaction(TOPIC_SYNC_METADATA) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO sync_metadata (key, updated_at) "
                "VALUES (?, ?)",
                (key, to_iso(utcnow())),
            )
        return self.repo.get_sync_metadata(key)

    def update(self, conn, key: str, last_sync: Optional[datetime],
               etag: Optional[str]):
        """Record progress inside the caller's transaction.

        ``last_successful_sync`` never moves backwards: the stored value is
        kept when it is later than *last_sync*.
        """
        row = conn.execute(
            "SELECT last_successful_sync FROM sync_metadata WHERE key = ?",
            (key,),
        ).fetchone()
        current = parse_iso(row["last_successful_sync"]) if row else None
        newest = later_of(current, last_sync)
        conn.execute(
            "INSERT INTO sync_metadata (key, last_successful_sync, etag, updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET "
            "last_successful_sync = excluded.last_successful_sync, "
            "etag = excluded.etag, updated_at = excluded.updated_at",
            (key, to_iso(newest), etag, to_iso(utcnow())),
        )

    def reset(self, key: str):
        """Forget progress for *key* so the next sync is a full one."""
        with self.repo.transaction(TOPIC_SYNC_METADATA) as conn:
            conn.execute("DELETE FROM sync_metadata WHERE key = ?", (key,))
