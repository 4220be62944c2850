"""SyncEngine: pulls the paginated collections into the Local Store.

For every entity kind the engine walks the collection page by page,
starting from the kind's last successful sync:

1. ``GET <path>?limit=&page=&updated_since=&cursor=`` (the first page of a
   repeat sync also carries ``If-None-Match`` with the stored etag)
2. 304 stops the run; nothing is merged
3. Each page is merged and its progress recorded in one transaction, so
   an interrupted run never leaves metadata ahead of the data
4. 429 and 5xx retry the same page after a backoff delay

``sync_all()`` runs the four kinds concurrently and keeps whatever each
one managed to merge, even when another fails.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from vip_dashboard.api.client import APIClient
from vip_dashboard.api.dto import (
    ClientDTO,
    HardwareDTO,
    InventoryEventDTO,
    TicketDTO,
    paged,
)
from vip_dashboard.api.endpoints import Endpoint
from vip_dashboard.api.errors import RateLimitedError, ServerError
from vip_dashboard.config import Config
from vip_dashboard.database.repository import Repository
from vip_dashboard.utils.constants import (
    ENTITY_CLIENTS,
    ENTITY_HARDWARE,
    ENTITY_INVENTORY_EVENTS,
    ENTITY_KINDS,
    ENTITY_TICKETS,
    SYNC_PATHS,
    TOPIC_ATTACHMENTS,
    TOPIC_SYNC_METADATA,
)
from vip_dashboard.utils.formatters import later_of, to_query_iso

from .backoff import BackoffPolicy
from .mapper import EntityMapper
from .metadata import SyncMetadataStore

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base exception for sync operations."""


class SyncCancelled(SyncError):
    """The run was cancelled before it finished."""


@dataclass(frozen=True)
class SyncTarget:
    """How one entity kind is fetched and which topics its merges touch."""

    kind: str
    path: str
    decode: Callable[[Any], Any]
    topics: tuple[str, ...]


# Merging clients attaches waiting tickets; merging hardware attaches
# waiting events; merging events bumps their hardware.
SYNC_TARGETS = {
    ENTITY_TICKETS: SyncTarget(
        ENTITY_TICKETS, SYNC_PATHS[ENTITY_TICKETS],
        paged(TicketDTO.from_json), (ENTITY_TICKETS, TOPIC_ATTACHMENTS),
    ),
    ENTITY_CLIENTS: SyncTarget(
        ENTITY_CLIENTS, SYNC_PATHS[ENTITY_CLIENTS],
        paged(ClientDTO.from_json), (ENTITY_CLIENTS, ENTITY_TICKETS),
    ),
    ENTITY_HARDWARE: SyncTarget(
        ENTITY_HARDWARE, SYNC_PATHS[ENTITY_HARDWARE],
        paged(HardwareDTO.from_json), (ENTITY_HARDWARE, ENTITY_INVENTORY_EVENTS),
    ),
    ENTITY_INVENTORY_EVENTS: SyncTarget(
        ENTITY_INVENTORY_EVENTS, SYNC_PATHS[ENTITY_INVENTORY_EVENTS],
        paged(InventoryEventDTO.from_json),
        (ENTITY_INVENTORY_EVENTS, ENTITY_HARDWARE),
    ),
}


class SyncEngine:
    """Incremental, paginated sync of every entity kind."""

    def __init__(self, client: APIClient, repo: Repository,
                 mapper: Optional[EntityMapper] = None,
                 metadata_store: Optional[SyncMetadataStore] = None,
                 page_limit: Optional[int] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        self.client = client
        self.repo = repo
        self.mapper = mapper or EntityMapper(repo)
        self.metadata_store = metadata_store or SyncMetadataStore(repo)
        self.page_limit = page_limit or Config.SYNC_PAGE_LIMIT
        self._sleep = sleep

        self._backoffs = {kind: BackoffPolicy() for kind in ENTITY_KINDS}
        self._state_lock = threading.Lock()
        self._cancel_events: set[threading.Event] = set()

        self.is_syncing = False
        self.last_error: Optional[str] = None
        self.last_errors: dict[str, str] = {}
        self.last_sync_dates: dict[str, Optional[datetime]] = {}

    # ── Public API ──────────────────────────────────────────────

    def sync_all(self) -> Optional[dict[str, int]]:
        """Sync every entity kind concurrently.

        Returns the number of merged records per kind that succeeded, or
        None when another ``sync_all()`` was already running. Failures are
        recorded in ``last_errors``; ``last_error`` holds the first one in
        kind order and is cleared by a fully successful run.
        """
        with self._state_lock:
            if self.is_syncing:
                logger.debug("Sync already in progress; skipping")
                return None
            self.is_syncing = True

        cancel_event = self._open_run()
        summary: dict[str, int] = {}
        errors: dict[str, str] = {}
        try:
            with ThreadPoolExecutor(max_workers=len(ENTITY_KINDS),
                                    thread_name_prefix="sync") as pool:
                futures = {
                    kind: pool.submit(self._sync_kind, kind, cancel_event)
                    for kind in ENTITY_KINDS
                }
            for kind, future in futures.items():
                try:
                    summary[kind] = future.result()
                except Exception as e:
                    logger.error(f"Sync of {kind} failed: {e}")
                    errors[kind] = str(e)
        finally:
            self._close_run(cancel_event)
            with self._state_lock:
                self.last_errors = errors
                self.last_error = next(iter(errors.values()), None)
                self.is_syncing = False

        logger.info(f"Sync finished: merged={summary} failed={sorted(errors)}")
        return summary

    def sync(self, kind: str) -> int:
        """Sync a single entity kind; returns the number of merged records.

        May run alongside ``sync_all()``: merges are idempotent by id.
        Unauthorized, forbidden, decoding and network failures propagate.
        """
        if kind not in SYNC_TARGETS:
            raise ValueError(f"Unknown entity kind: {kind}")
        cancel_event = self._open_run()
        try:
            return self._sync_kind(kind, cancel_event)
        finally:
            self._close_run(cancel_event)

    def cancel(self):
        """Ask every running sync to stop at its next suspension point."""
        with self._state_lock:
            for event in self._cancel_events:
                event.set()

    def get_sync_status(self) -> dict:
        """Current sync status information."""
        last_synced = {kind: None for kind in ENTITY_KINDS}
        for metadata in self.repo.get_all_sync_metadata():
            if metadata.key in last_synced:
                last_synced[metadata.key] = metadata.last_successful_sync
        return {
            "is_syncing": self.is_syncing,
            "last_error": self.last_error,
            "errors": dict(self.last_errors),
            "last_synced": last_synced,
        }

    # ── Run bookkeeping ─────────────────────────────────────────

    def _open_run(self) -> threading.Event:
        event = threading.Event()
        with self._state_lock:
            self._cancel_events.add(event)
        return event

    def _close_run(self, event: threading.Event):
        with self._state_lock:
            self._cancel_events.discard(event)

    def _wait(self, delay: float, cancel_event: threading.Event):
        if self._sleep is not None:
            self._sleep(delay)
        else:
            cancel_event.wait(delay)
        self._check_cancelled(cancel_event)

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event):
        if cancel_event.is_set():
            raise SyncCancelled("Sync cancelled")

    # ── Per-kind loop ───────────────────────────────────────────

    def _page_endpoint(self, target: SyncTarget, page: int,
                       since: Optional[datetime], cursor: Optional[str],
                       etag: Optional[str]) -> Endpoint:
        query = {"limit": str(self.page_limit), "page": str(page)}
        if since is not None:
            query["updated_since"] = to_query_iso(since)
        if cursor:
            query["cursor"] = cursor
        headers = {}
        # Never conditional on a first-ever sync
        if page == 1 and since is not None and etag:
            headers["If-None-Match"] = etag
        return Endpoint(target.path, query=query, headers=headers,
                        decode=target.decode)

    def _sync_kind(self, kind: str, cancel_event: threading.Event) -> int:
        target = SYNC_TARGETS[kind]
        backoff = self._backoffs[kind]
        metadata = self.metadata_store.metadata(kind)
        since = metadata.last_successful_sync
        etag = metadata.etag

        page = 1
        cursor: Optional[str] = None
        newest_seen = since
        merged = 0
        logger.debug(f"Sync {kind} starting since={since}")

        while True:
            self._check_cancelled(cancel_event)
            endpoint = self._page_endpoint(target, page, since, cursor, etag)
            try:
                response = self.client.send(endpoint)
            except RateLimitedError as e:
                delay = (e.retry_after if e.retry_after is not None
                         else backoff.next_delay())
                logger.warning(f"Sync {kind} rate limited; retrying page "
                               f"{page} in {delay:.1f}s")
                self._wait(delay, cancel_event)
                continue
            except ServerError as e:
                if e.status < 500:
                    raise
                delay = backoff.next_delay()
                logger.warning(f"Sync {kind} got HTTP {e.status}; retrying "
                               f"page {page} in {delay:.1f}s")
                self._wait(delay, cancel_event)
                continue

            if response.not_modified:
                logger.debug(f"Sync {kind}: not modified")
                if response.etag and response.etag != etag:
                    with self.repo.transaction(TOPIC_SYNC_METADATA) as conn:
                        self.metadata_store.update(conn, kind, since,
                                                   response.etag)
                break

            result = response.value
            items = result.items if result is not None else []
            self._check_cancelled(cancel_event)
            with self.repo.transaction(*target.topics,
                                       TOPIC_SYNC_METADATA) as conn:
                for dto in items:
                    entity = self.mapper.upsert(kind, conn, dto)
                    newest_seen = later_of(newest_seen, entity.updated_at)
                etag = response.etag or etag
                self.metadata_store.update(conn, kind, newest_seen, etag)
            merged += len(items)
            logger.debug(f"Sync {kind} page {page}: merged {len(items)}")

            cursor = result.next_cursor if result is not None else None
            page += 1
            if not items or cursor is None:
                break

        if newest_seen is not None and (since is None or newest_seen > since):
            backoff.reset()
        self.last_sync_dates[kind] = newest_seen
        logger.info(f"Sync {kind} complete: {merged} merged")
        return merged
