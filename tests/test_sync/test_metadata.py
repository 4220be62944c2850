"""Tests for per-kind sync metadata."""

from datetime import datetime, timedelta, timezone

from vip_dashboard.sync.metadata import SyncMetadataStore

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


class TestSyncMetadataStore:
    def test_created_lazily(self, repo):
        store = SyncMetadataStore(repo)
        assert repo.get_sync_metadata("tickets") is None
        metadata = store.metadata("tickets")
        assert metadata.key == "tickets"
        assert metadata.last_successful_sync is None
        assert metadata.etag is None
        assert repo.count("sync_metadata") == 1

    def test_metadata_is_stable(self, repo):
        store = SyncMetadataStore(repo)
        store.metadata("tickets")
        store.metadata("tickets")
        assert repo.count("sync_metadata") == 1

    def test_update_records_progress(self, repo):
        store = SyncMetadataStore(repo)
        with repo.transaction() as conn:
            store.update(conn, "tickets", T0, '"v1"')
        metadata = store.metadata("tickets")
        assert metadata.last_successful_sync == T0
        assert metadata.etag == '"v1"'

    def test_never_regresses(self, repo):
        store = SyncMetadataStore(repo)
        with repo.transaction() as conn:
            store.update(conn, "tickets", T0, '"v1"')
        with repo.transaction() as conn:
            store.update(conn, "tickets", T0 - timedelta(days=1), '"v2"')
        metadata = store.metadata("tickets")
        assert metadata.last_successful_sync == T0
        assert metadata.etag == '"v2"'

    def test_reset(self, repo):
        store = SyncMetadataStore(repo)
        with repo.transaction() as conn:
            store.update(conn, "tickets", T0, '"v1"')
        store.reset("tickets")
        assert store.metadata("tickets").last_successful_sync is None
