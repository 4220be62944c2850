"""Write-through record mutations.

Each change is sent to the server first; the server's answer is merged
into the Local Store through the same mapper the sync engine uses.
"""

from typing import Any, Optional

from vip_dashboard.api.resources import DashboardAPI
from vip_dashboard.database.models import Client, Hardware, Ticket
from vip_dashboard.database.repository import Repository
from vip_dashboard.utils.constants import (
    ENTITY_CLIENTS,
    ENTITY_HARDWARE,
    ENTITY_INVENTORY_EVENTS,
    ENTITY_TICKETS,
    TOPIC_ATTACHMENTS,
)

from .mapper import EntityMapper


class RecordWriter:
    """Ticket, client and hardware mutations against the tracker."""

    def __init__(self, api: DashboardAPI, repo: Repository,
                 mapper: Optional[EntityMapper] = None):
        self.api = api
        self.repo = repo
        self.mapper = mapper or EntityMapper(repo)

    # ── Tickets ─────────────────────────────────────────────────

    def create_ticket(self, payload: dict[str, Any]) -> Ticket:
        dto = self.api.create_ticket(payload)
        with self.repo.transaction(ENTITY_TICKETS, TOPIC_ATTACHMENTS) as conn:
            return self.mapper.upsert_ticket(conn, dto)

    def update_ticket(self, ticket_id: str, patch: dict[str, Any]) -> Ticket:
        dto = self.api.update_ticket(ticket_id, patch)
        with self.repo.transaction(ENTITY_TICKETS, TOPIC_ATTACHMENTS) as conn:
            return self.mapper.upsert_ticket(conn, dto)

    def delete_ticket(self, ticket_id: str):
        """Delete remotely, then locally together with its attachments."""
        self.api.delete_ticket(ticket_id)
        self.repo.delete_ticket(ticket_id)

    def refresh_active_tickets(self, client_key: Optional[str] = None) -> list[Ticket]:
        dtos = self.api.list_active_tickets(client_key)
        with self.repo.transaction(ENTITY_TICKETS, TOPIC_ATTACHMENTS) as conn:
            return [self.mapper.upsert_ticket(conn, dto) for dto in dtos]

    # ── Clients ─────────────────────────────────────────────────

    def refresh_clients(self) -> list[Client]:
        """Merge the full clients listing."""
        listing = self.api.list_clients()
        with self.repo.transaction(ENTITY_CLIENTS, ENTITY_TICKETS) as conn:
            return [self.mapper.upsert_client_record(conn, record)
                    for record in listing.clients]

    def refresh_client(self, client_key: str) -> Client:
        record = self.api.get_client(client_key)
        with self.repo.transaction(ENTITY_CLIENTS, ENTITY_TICKETS) as conn:
            return self.mapper.upsert_client_record(conn, record)

    def create_client(self, client_key: str, name: str,
                      attributes: Optional[dict[str, str]] = None) -> Client:
        record = self.api.create_client(client_key, name, attributes)
        with self.repo.transaction(ENTITY_CLIENTS, ENTITY_TICKETS) as conn:
            return self.mapper.upsert_client_record(conn, record)

    def update_client(self, client_key: str, patch: dict[str, Any]) -> Client:
        record = self.api.update_client(client_key, patch)
        with self.repo.transaction(ENTITY_CLIENTS, ENTITY_TICKETS) as conn:
            return self.mapper.upsert_client_record(conn, record)

    # ── Hardware ────────────────────────────────────────────────

    def refresh_hardware(self, limit: int = 100, offset: int = 0) -> list[Hardware]:
        page = self.api.list_hardware(limit=limit, offset=offset)
        with self.repo.transaction(ENTITY_HARDWARE, ENTITY_INVENTORY_EVENTS) as conn:
            return [self.mapper.upsert_hardware(conn, dto) for dto in page.items]

    def create_hardware(self, payload: dict[str, Any]) -> Hardware:
        dto = self.api.create_hardware(payload)
        with self.repo.transaction(ENTITY_HARDWARE, ENTITY_INVENTORY_EVENTS) as conn:
            return self.mapper.upsert_hardware(conn, dto)

    def update_hardware(self, hardware_id: str, patch: dict[str, Any]) -> Hardware:
        dto = self.api.update_hardware(hardware_id, patch)
        with self.repo.transaction(ENTITY_HARDWARE, ENTITY_INVENTORY_EVENTS) as conn:
            return self.mapper.upsert_hardware(conn, dto)
