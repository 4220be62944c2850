"""Repository layer: the Local Store's queries and explicit mutations.

Sync merges go through ``sync.mapper`` inside ``Repository.transaction()``;
everything the user can do directly (deletes, pending breadcrumbs) lives
here. Every committed write publishes the touched entity kinds on the
repository's ``ChangeNotifier``.
"""

import uuid
from contextlib import contextmanager
from typing import Optional

from vip_dashboard.utils.constants import (
    ENTITY_CLIENTS,
    ENTITY_HARDWARE,
    ENTITY_INVENTORY_EVENTS,
    ENTITY_TICKETS,
    TOPIC_ATTACHMENTS,
    TOPIC_PENDING_ADJUSTMENTS,
)
from vip_dashboard.utils.formatters import to_iso, utcnow

from .connection import DatabaseConnection
from .models import (
    Attachment,
    Client,
    Hardware,
    InventoryEvent,
    PendingInventoryAdjustment,
    SyncMetadata,
    Ticket,
)
from .notifier import ChangeNotifier


class Repository:
    """Provides all Local Store operations for the application."""

    def __init__(self, db: DatabaseConnection,
                 notifier: Optional[ChangeNotifier] = None):
        self.db = db
        self.notifier = notifier or ChangeNotifier()

    @contextmanager
    def transaction(self, *topics: str):
        """Yield a write connection; publish *topics* once it commits."""
        with self.db.write_transaction() as conn:
            yield conn
        if topics:
            self.notifier.publish(*topics)

    # ── Clients ─────────────────────────────────────────────────

    def get_all_clients(self) -> list[Client]:
        rows = self.db.execute(
            "SELECT * FROM clients ORDER BY name COLLATE NOCASE, id"
        )
        return [Client.from_row(r) for r in rows]

    def get_client(self, client_id: str) -> Optional[Client]:
        rows = self.db.execute(
            "SELECT * FROM clients WHERE id = ?", (client_id,)
        )
        return Client.from_row(rows[0]) if rows else None

    def search_clients(self, query: str) -> list[Client]:
        """Search clients by name, email or phone."""
        if not query.strip():
            return self.get_all_clients()
        pattern = f"%{query.strip()}%"
        rows = self.db.execute("""
            SELECT * FROM clients
            WHERE name LIKE ? OR email LIKE ? OR phone LIKE ? OR id LIKE ?
            ORDER BY name COLLATE NOCASE, id
        """, (pattern,) * 4)
        return [Client.from_row(r) for r in rows]

    def delete_client(self, client_id: str):
        """Delete a client. Its tickets stay, unassigned."""
        with self.transaction(ENTITY_CLIENTS, ENTITY_TICKETS) as conn:
            conn.execute("DELETE FROM clients WHERE id = ?", (client_id,))

    # ── Tickets ─────────────────────────────────────────────────

    _TICKETS_SELECT = "SELECT t.* FROM tickets t"

    def _hydrate_ticket(self, conn, row) -> Ticket:
        ticket = Ticket.from_row(row)
        if row["client_ref"] is not None:
            client_row = conn.execute(
                "SELECT * FROM clients WHERE id = ?", (row["client_ref"],)
            ).fetchone()
            ticket.client = Client.from_row(client_row) if client_row else None
        attachment_rows = conn.execute(
            "SELECT * FROM attachments WHERE ticket_id = ? "
            "ORDER BY position, id",
            (ticket.id,),
        ).fetchall()
        ticket.attachments = [Attachment.from_row(a) for a in attachment_rows]
        return ticket

    def _query_tickets(self, where: str = "", params: tuple = ()) -> list[Ticket]:
        sql = self._TICKETS_SELECT
        if where:
            sql += f" WHERE {where}"
        sql += " ORDER BY t.updated_at DESC, t.id"
        with self.db.get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._hydrate_ticket(conn, r) for r in rows]

    def get_all_tickets(self, status: Optional[str] = None) -> list[Ticket]:
        if status:
            return self._query_tickets("t.status = ?", (status,))
        return self._query_tickets()

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        tickets = self._query_tickets("t.id = ?", (ticket_id,))
        return tickets[0] if tickets else None

    def get_active_tickets(self) -> list[Ticket]:
        return self._query_tickets("t.status IN ('open', 'pending')")

    def get_tickets_for_client(self, client_id: str) -> list[Ticket]:
        """The derived ticket collection of a client."""
        return self._query_tickets("t.client_ref = ?", (client_id,))

    def get_unassigned_tickets(self) -> list[Ticket]:
        """Tickets whose client is missing locally."""
        return self._query_tickets("t.client_ref IS NULL")

    def get_attachments(self, ticket_id: str) -> list[Attachment]:
        rows = self.db.execute(
            "SELECT * FROM attachments WHERE ticket_id = ? "
            "ORDER BY position, id",
            (ticket_id,),
        )
        return [Attachment.from_row(r) for r in rows]

    def delete_ticket(self, ticket_id: str):
        """Delete a ticket together with its attachments."""
        with self.transaction(ENTITY_TICKETS, TOPIC_ATTACHMENTS) as conn:
            conn.execute("DELETE FROM tickets WHERE id = ?", (ticket_id,))

    def delete_attachment(self, attachment_id: str):
        with self.transaction(TOPIC_ATTACHMENTS) as conn:
            conn.execute(
                "DELETE FROM attachments WHERE id = ?", (attachment_id,)
            )

    # ── Hardware ────────────────────────────────────────────────

    def get_all_hardware(self) -> list[Hardware]:
        rows = self.db.execute(
            "SELECT * FROM hardware ORDER BY name COLLATE NOCASE, id"
        )
        return [Hardware.from_row(r) for r in rows]

    def get_hardware(self, hardware_id: str) -> Optional[Hardware]:
        rows = self.db.execute(
            "SELECT * FROM hardware WHERE id = ?", (hardware_id,)
        )
        return Hardware.from_row(rows[0]) if rows else None

    def get_hardware_by_barcode(self, barcode: str) -> Optional[Hardware]:
        """Look up hardware by barcode (most recently updated wins)."""
        rows = self.db.execute(
            "SELECT * FROM hardware WHERE barcode = ? "
            "ORDER BY updated_at DESC LIMIT 1",
            (barcode,),
        )
        return Hardware.from_row(rows[0]) if rows else None

    def delete_hardware(self, hardware_id: str):
        """Delete hardware together with its inventory events."""
        with self.transaction(ENTITY_HARDWARE, ENTITY_INVENTORY_EVENTS) as conn:
            conn.execute("DELETE FROM hardware WHERE id = ?", (hardware_id,))

    # ── Inventory events ────────────────────────────────────────

    def get_inventory_event(self, event_id: str) -> Optional[InventoryEvent]:
        rows = self.db.execute(
            "SELECT * FROM inventory_events WHERE id = ?", (event_id,)
        )
        return InventoryEvent.from_row(rows[0]) if rows else None

    def get_events_for_hardware(self, hardware_id: str) -> list[InventoryEvent]:
        rows = self.db.execute(
            "SELECT * FROM inventory_events WHERE hardware_id = ? "
            "ORDER BY created_at, id",
            (hardware_id,),
        )
        return [InventoryEvent.from_row(r) for r in rows]

    def get_unconfirmed_events(self) -> list[InventoryEvent]:
        rows = self.db.execute(
            "SELECT * FROM inventory_events WHERE pending_retry = 1 "
            "ORDER BY created_at, id"
        )
        return [InventoryEvent.from_row(r) for r in rows]

    # ── Sync metadata (read side) ───────────────────────────────

    def get_sync_metadata(self, key: str) -> Optional[SyncMetadata]:
        rows = self.db.execute(
            "SELECT * FROM sync_metadata WHERE key = ?", (key,)
        )
        return SyncMetadata.from_row(rows[0]) if rows else None

    def get_all_sync_metadata(self) -> list[SyncMetadata]:
        rows = self.db.execute("SELECT * FROM sync_metadata ORDER BY key")
        return [SyncMetadata.from_row(r) for r in rows]

    # ── Pending inventory adjustments ───────────────────────────

    def add_pending_adjustment(self, hardware_id: str, quantity: int,
                               note: Optional[str] = None,
                               last_error: Optional[str] = None) -> str:
        """Record a failed remote adjustment as a retry breadcrumb."""
        adjustment_id = str(uuid.uuid4())
        with self.transaction(TOPIC_PENDING_ADJUSTMENTS) as conn:
            conn.execute(
                "INSERT INTO pending_inventory_adjustments "
                "(id, hardware_id, quantity, note, created_at, last_error) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (adjustment_id, hardware_id, quantity, note,
                 to_iso(utcnow()), last_error),
            )
        return adjustment_id

    def get_pending_adjustments(self) -> list[PendingInventoryAdjustment]:
        rows = self.db.execute(
            "SELECT * FROM pending_inventory_adjustments "
            "ORDER BY created_at, id"
        )
        return [PendingInventoryAdjustment.from_row(r) for r in rows]

    def delete_pending_adjustment(self, adjustment_id: str):
        with self.transaction(TOPIC_PENDING_ADJUSTMENTS) as conn:
            conn.execute(
                "DELETE FROM pending_inventory_adjustments WHERE id = ?",
                (adjustment_id,),
            )

    # ── Counts ──────────────────────────────────────────────────

    def count(self, table: str) -> int:
        """Row count for one of the entity tables."""
        if table not in ("clients", "tickets", "attachments", "hardware",
                         "inventory_events", "sync_metadata",
                         "pending_inventory_adjustments"):
            raise ValueError(f"Unknown table: {table}")
        rows = self.db.execute(f"SELECT COUNT(*) AS cnt FROM {table}")  # noqa: S608
        return rows[0]["cnt"] if rows else 0
