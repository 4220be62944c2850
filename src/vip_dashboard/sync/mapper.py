"""Merges wire DTOs into the Local Store.

Every upsert is keyed on the stable external id: an existing row is
updated in place (never replaced, so cascades and references held by the
UI survive), a missing one is inserted. All methods run inside the
caller's write transaction and return the merged entity.
"""

import json
from typing import Optional

from vip_dashboard.api.dto import (
    AttachmentDTO,
    ClientDTO,
    ClientRecord,
    HardwareDTO,
    InventoryEventDTO,
    TicketDTO,
)
from vip_dashboard.database.models import Client, Hardware, InventoryEvent, Ticket
from vip_dashboard.database.repository import Repository
from vip_dashboard.utils.constants import (
    ENTITY_CLIENTS,
    ENTITY_HARDWARE,
    ENTITY_INVENTORY_EVENTS,
    ENTITY_TICKETS,
)
from vip_dashboard.utils.formatters import later_of, parse_iso, to_iso, utcnow


def _exists(conn, table: str, row_id: str) -> bool:
    return conn.execute(
        f"SELECT 1 FROM {table} WHERE id = ?", (row_id,)  # noqa: S608
    ).fetchone() is not None


class EntityMapper:
    """Upserts for every synced entity kind."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def upsert(self, kind: str, conn, dto):
        """Dispatch on entity kind."""
        if kind == ENTITY_TICKETS:
            return self.upsert_ticket(conn, dto)
        if kind == ENTITY_CLIENTS:
            return self.upsert_client(conn, dto)
        if kind == ENTITY_HARDWARE:
            return self.upsert_hardware(conn, dto)
        if kind == ENTITY_INVENTORY_EVENTS:
            return self.upsert_event(conn, dto)
        raise ValueError(f"Unknown entity kind: {kind}")

    # ── Clients ─────────────────────────────────────────────────

    def upsert_client(self, conn, dto: ClientDTO) -> Client:
        values = (
            dto.name, dto.email, dto.phone, to_iso(dto.updated_at),
            json.dumps(dto.custom_attributes, sort_keys=True),
        )
        if _exists(conn, "clients", dto.id):
            conn.execute(
                "UPDATE clients SET name = ?, email = ?, phone = ?, "
                "updated_at = ?, custom_attributes = ? WHERE id = ?",
                values + (dto.id,),
            )
        else:
            conn.execute(
                "INSERT INTO clients (name, email, phone, updated_at, "
                "custom_attributes, id) VALUES (?, ?, ?, ?, ?, ?)",
                values + (dto.id,),
            )
        self._attach_tickets(conn, dto.id)
        row = conn.execute(
            "SELECT * FROM clients WHERE id = ?", (dto.id,)
        ).fetchone()
        return Client.from_row(row)

    def upsert_client_record(self, conn, record: ClientRecord) -> Client:
        """Merge a client from the key/attribute routes.

        The client key becomes the local id; ``email`` and ``phone``
        attributes fill the dedicated columns. Those routes carry no
        timestamp, so the merge time is used.
        """
        attributes = dict(record.attributes)
        email = attributes.pop("email", None)
        phone = attributes.pop("phone", None)
        return self.upsert_client(conn, ClientDTO(
            id=record.client_key,
            name=record.name,
            updated_at=utcnow(),
            email=email,
            phone=phone,
            custom_attributes=attributes,
        ))

    def _attach_tickets(self, conn, client_id: str):
        conn.execute(
            "UPDATE tickets SET client_ref = ? "
            "WHERE client_id = ? AND client_ref IS NULL",
            (client_id, client_id),
        )

    # ── Tickets ─────────────────────────────────────────────────

    def upsert_ticket(self, conn, dto: TicketDTO) -> Ticket:
        client_ref = (dto.client_id if dto.client_id
                      and _exists(conn, "clients", dto.client_id) else None)
        if _exists(conn, "tickets", dto.id):
            conn.execute(
                "UPDATE tickets SET number = ?, title = ?, status = ?, "
                "client_id = ?, client_ref = ?, assignee = ?, details = ?, "
                "updated_at = ? WHERE id = ?",
                (dto.number, dto.title, dto.status, dto.client_id, client_ref,
                 dto.assignee, dto.description, to_iso(dto.updated_at),
                 dto.id),
            )
        else:
            conn.execute(
                "INSERT INTO tickets (id, number, title, status, client_id, "
                "client_ref, assignee, details, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (dto.id, dto.number, dto.title, dto.status, dto.client_id,
                 client_ref, dto.assignee, dto.description,
                 to_iso(dto.created_at), to_iso(dto.updated_at)),
            )
        for position, attachment in enumerate(dto.attachments):
            self._upsert_attachment(conn, dto.id, position, attachment)

        row = conn.execute(
            "SELECT * FROM tickets WHERE id = ?", (dto.id,)
        ).fetchone()
        return self.repo._hydrate_ticket(conn, row)

    def _upsert_attachment(self, conn, ticket_id: str, position: int,
                           dto: AttachmentDTO):
        values = (ticket_id, position, dto.file_name, dto.content_type,
                  dto.size, dto.download_url, dto.thumbnail_url)
        if _exists(conn, "attachments", dto.id):
            conn.execute(
                "UPDATE attachments SET ticket_id = ?, position = ?, "
                "file_name = ?, content_type = ?, size = ?, "
                "download_url = ?, thumbnail_url = ? WHERE id = ?",
                values + (dto.id,),
            )
        else:
            conn.execute(
                "INSERT INTO attachments (ticket_id, position, file_name, "
                "content_type, size, download_url, thumbnail_url, id) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                values + (dto.id,),
            )

    # ── Hardware ────────────────────────────────────────────────

    def upsert_hardware(self, conn, dto: HardwareDTO) -> Hardware:
        row = conn.execute(
            "SELECT last_inventory_event_at FROM hardware WHERE id = ?",
            (dto.id,),
        ).fetchone()
        if row is not None:
            last_event = later_of(parse_iso(row["last_inventory_event_at"]),
                                  dto.last_inventory_event_at)
            conn.execute(
                "UPDATE hardware SET name = ?, barcode = ?, "
                "quantity_on_hand = ?, updated_at = ?, "
                "last_inventory_event_at = ? WHERE id = ?",
                (dto.name, dto.barcode, dto.quantity_on_hand,
                 to_iso(dto.updated_at), to_iso(last_event), dto.id),
            )
        else:
            conn.execute(
                "INSERT INTO hardware (id, name, barcode, quantity_on_hand, "
                "updated_at, last_inventory_event_at) VALUES (?, ?, ?, ?, ?, ?)",
                (dto.id, dto.name, dto.barcode, dto.quantity_on_hand,
                 to_iso(dto.updated_at), to_iso(dto.last_inventory_event_at)),
            )
        self._attach_events(conn, dto.id)
        return self._load_hardware(conn, dto.id)

    def _attach_events(self, conn, hardware_id: str):
        orphans = conn.execute(
            "SELECT updated_at FROM inventory_events "
            "WHERE hardware_id = ? AND hardware_ref IS NULL",
            (hardware_id,),
        ).fetchall()
        if not orphans:
            return
        conn.execute(
            "UPDATE inventory_events SET hardware_ref = ? "
            "WHERE hardware_id = ? AND hardware_ref IS NULL",
            (hardware_id, hardware_id),
        )
        newest = max(parse_iso(r["updated_at"]) for r in orphans)
        self._bump_last_event(conn, hardware_id, newest)

    def _bump_last_event(self, conn, hardware_id: str, when):
        row = conn.execute(
            "SELECT last_inventory_event_at FROM hardware WHERE id = ?",
            (hardware_id,),
        ).fetchone()
        if row is None:
            return
        current = parse_iso(row["last_inventory_event_at"])
        newest = later_of(current, when)
        if newest != current:
            conn.execute(
                "UPDATE hardware SET last_inventory_event_at = ? WHERE id = ?",
                (to_iso(newest), hardware_id),
            )

    @staticmethod
    def _load_hardware(conn, hardware_id: str) -> Optional[Hardware]:
        row = conn.execute(
            "SELECT * FROM hardware WHERE id = ?", (hardware_id,)
        ).fetchone()
        return Hardware.from_row(row) if row else None

    # ── Inventory events ────────────────────────────────────────

    def upsert_event(self, conn, dto: InventoryEventDTO) -> InventoryEvent:
        hardware_ref = (dto.hardware_id
                        if _exists(conn, "hardware", dto.hardware_id) else None)
        values = (dto.hardware_id, hardware_ref, dto.delta, dto.balance,
                  dto.note, to_iso(dto.created_at), to_iso(dto.updated_at),
                  1 if dto.pending_retry else 0)
        if _exists(conn, "inventory_events", dto.id):
            conn.execute(
                "UPDATE inventory_events SET hardware_id = ?, hardware_ref = ?, "
                "delta = ?, balance = ?, note = ?, created_at = ?, "
                "updated_at = ?, pending_retry = ? WHERE id = ?",
                values + (dto.id,),
            )
        else:
            conn.execute(
                "INSERT INTO inventory_events (hardware_id, hardware_ref, "
                "delta, balance, note, created_at, updated_at, pending_retry, "
                "id) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                values + (dto.id,),
            )
        if hardware_ref is not None:
            self._bump_last_event(conn, hardware_ref, dto.updated_at)

        row = conn.execute(
            "SELECT * FROM inventory_events WHERE id = ?", (dto.id,)
        ).fetchone()
        return InventoryEvent.from_row(row)
