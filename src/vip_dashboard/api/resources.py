"""REST operations outside the paginated sync collections."""

import logging
from typing import Any, Optional

from vip_dashboard.utils.constants import (
    PATH_ACTIVE_TICKETS,
    PATH_CLIENTS,
    PATH_HARDWARE,
    PATH_INVENTORY_ADJUST,
    PATH_INVENTORY_RECEIVE,
    PATH_TICKETS,
)

from .client import APIClient
from .dto import (
    ClientRecord,
    ClientsListing,
    HardwareDTO,
    HardwarePage,
    InventoryEventDTO,
    InventoryReceipt,
    TicketDTO,
    list_of,
    normalize_client_response,
    optional_event,
)
from .endpoints import Endpoint, item_path

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    """Trimmed text, or None when blank."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class DashboardAPI:
    """Typed wrappers for the tracker's ticket, client, hardware and
    inventory routes."""

    def __init__(self, client: APIClient):
        self.client = client

    # ── Tickets ─────────────────────────────────────────────────

    def list_active_tickets(self, client_key: Optional[str] = None) -> list[TicketDTO]:
        query = {"client_key": client_key} if client_key else {}
        return self.client.send(Endpoint(
            PATH_ACTIVE_TICKETS, query=query,
            decode=list_of(TicketDTO.from_json),
        )).value or []

    def create_ticket(self, payload: dict[str, Any]) -> TicketDTO:
        return self.client.send(Endpoint(
            PATH_TICKETS, method="POST", json_body=payload,
            decode=TicketDTO.from_json,
        )).value

    def update_ticket(self, ticket_id: str, patch: dict[str, Any]) -> TicketDTO:
        return self.client.send(Endpoint(
            item_path(PATH_TICKETS, ticket_id), method="PATCH",
            json_body=patch, decode=TicketDTO.from_json,
        )).value

    def delete_ticket(self, ticket_id: str):
        self.client.send(Endpoint(
            item_path(PATH_TICKETS, ticket_id), method="DELETE",
        ))

    # ── Clients ─────────────────────────────────────────────────

    def list_clients(self) -> ClientsListing:
        """GET /clients in its map-of-blobs listing shape."""
        listing = self.client.send(Endpoint(
            PATH_CLIENTS, decode=ClientsListing.from_json,
        )).value
        logger.debug(f"Decoded clients count={len(listing.clients)}")
        return listing

    def get_client(self, client_key: str) -> ClientRecord:
        return self.client.send(Endpoint(
            item_path(PATH_CLIENTS, client_key),
            decode=lambda p: normalize_client_response(p, client_key),
        )).value

    def create_client(self, client_key: str, name: str,
                      attributes: Optional[dict[str, str]] = None) -> ClientRecord:
        body: dict[str, Any] = {"client_key": client_key, "name": name}
        body.update(attributes or {})
        return self.client.send(Endpoint(
            PATH_CLIENTS, method="POST", json_body=body,
            decode=lambda p: normalize_client_response(p, client_key),
        )).value

    def update_client(self, client_key: str,
                      patch: dict[str, Any]) -> ClientRecord:
        """PATCH a client; a None value clears that field."""
        return self.client.send(Endpoint(
            item_path(PATH_CLIENTS, client_key), method="PATCH",
            json_body=patch,
            decode=lambda p: normalize_client_response(p, client_key),
        )).value

    # ── Hardware ────────────────────────────────────────────────

    def list_hardware(self, limit: int = 100, offset: int = 0) -> HardwarePage:
        return self.client.send(Endpoint(
            PATH_HARDWARE,
            query={"limit": str(limit), "offset": str(offset)},
            decode=HardwarePage.from_json,
        )).value

    def create_hardware(self, payload: dict[str, Any]) -> HardwareDTO:
        return self.client.send(Endpoint(
            PATH_HARDWARE, method="POST", json_body=payload,
            decode=HardwareDTO.from_json,
        )).value

    def update_hardware(self, hardware_id: str,
                        patch: dict[str, Any]) -> HardwareDTO:
        return self.client.send(Endpoint(
            item_path(PATH_HARDWARE, hardware_id), method="PATCH",
            json_body=patch, decode=HardwareDTO.from_json,
        )).value

    # ── Inventory ───────────────────────────────────────────────

    def receive_inventory(self, barcode: str, quantity: int,
                          acquisition_cost: Optional[str] = None,
                          vendor: Optional[str] = None,
                          note: Optional[str] = None) -> InventoryReceipt:
        body = {
            "barcode": barcode,
            "quantity": quantity,
            "acquisition_cost": _clean(acquisition_cost),
            "vendor": _clean(vendor),
            "note": _clean(note),
        }
        receipt = self.client.send(Endpoint(
            PATH_INVENTORY_RECEIVE, method="POST", json_body=body,
            decode=InventoryReceipt.from_json,
        )).value
        return receipt or InventoryReceipt()

    def adjust_inventory(self, hardware_id: str, quantity: int,
                         barcode: str,
                         note: Optional[str] = None) -> Optional[InventoryEventDTO]:
        body = {
            "hardwareId": hardware_id,
            "quantity": quantity,
            "note": _clean(note),
            "barcode": barcode,
        }
        return self.client.send(Endpoint(
            PATH_INVENTORY_ADJUST, method="POST", json_body=body,
            decode=optional_event,
        )).value
