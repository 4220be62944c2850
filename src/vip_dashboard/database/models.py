"""Data models for the database layer."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from vip_dashboard.utils.constants import TICKET_STATUS_LABELS
from vip_dashboard.utils.formatters import parse_iso


def _load_attributes(raw) -> dict[str, str]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}


@dataclass
class Client:
    id: str = ""
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    updated_at: Optional[datetime] = None
    custom_attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row) -> "Client":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            updated_at=parse_iso(row["updated_at"]),
            custom_attributes=_load_attributes(row["custom_attributes"]),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass
class Attachment:
    id: str = ""
    ticket_id: str = ""
    file_name: str = ""
    content_type: str = ""
    size: int = 0
    download_url: str = ""
    thumbnail_url: Optional[str] = None
    position: int = 0

    @classmethod
    def from_row(cls, row) -> "Attachment":
        return cls(
            id=row["id"],
            ticket_id=row["ticket_id"],
            file_name=row["file_name"],
            content_type=row["content_type"],
            size=row["size"],
            download_url=row["download_url"],
            thumbnail_url=row["thumbnail_url"],
            position=row["position"],
        )


@dataclass
class Ticket:
    id: str = ""
    number: str = ""
    title: str = ""
    status: str = "open"
    client_id: Optional[str] = None
    assignee: Optional[str] = None
    details: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Resolved relationships (not stored directly)
    client: Optional[Client] = field(default=None, repr=False)
    attachments: list[Attachment] = field(default_factory=list, repr=False)

    @classmethod
    def from_row(cls, row) -> "Ticket":
        return cls(
            id=row["id"],
            number=row["number"],
            title=row["title"],
            status=row["status"],
            client_id=row["client_id"],
            assignee=row["assignee"],
            details=row["details"],
            created_at=parse_iso(row["created_at"]),
            updated_at=parse_iso(row["updated_at"]),
        )

    @property
    def status_label(self) -> str:
        return TICKET_STATUS_LABELS.get(self.status, self.status.title())

    @property
    def is_active(self) -> bool:
        return self.status in ("open", "pending")


@dataclass
class Hardware:
    id: str = ""
    name: str = ""
    barcode: str = ""
    quantity_on_hand: int = 0
    updated_at: Optional[datetime] = None
    last_inventory_event_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "Hardware":
        return cls(
            id=row["id"],
            name=row["name"],
            barcode=row["barcode"],
            quantity_on_hand=row["quantity_on_hand"],
            updated_at=parse_iso(row["updated_at"]),
            last_inventory_event_at=parse_iso(row["last_inventory_event_at"]),
        )


@dataclass
class InventoryEvent:
    id: str = ""
    hardware_id: str = ""
    delta: int = 0
    balance: int = 0
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pending_retry: bool = False
    # True once the referenced hardware exists locally
    is_attached: bool = field(default=False, repr=False)

    @classmethod
    def from_row(cls, row) -> "InventoryEvent":
        return cls(
            id=row["id"],
            hardware_id=row["hardware_id"],
            delta=row["delta"],
            balance=row["balance"],
            note=row["note"],
            created_at=parse_iso(row["created_at"]),
            updated_at=parse_iso(row["updated_at"]),
            pending_retry=bool(row["pending_retry"]),
            is_attached=row["hardware_ref"] is not None,
        )

    @property
    def is_unconfirmed(self) -> bool:
        """An optimistic local write the server has not acknowledged."""
        return self.pending_retry


@dataclass
class SyncMetadata:
    key: str = ""
    last_successful_sync: Optional[datetime] = None
    etag: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "SyncMetadata":
        return cls(
            key=row["key"],
            last_successful_sync=parse_iso(row["last_successful_sync"]),
            etag=row["etag"],
            updated_at=parse_iso(row["updated_at"]),
        )


@dataclass
class PendingInventoryAdjustment:
    id: str = ""
    hardware_id: str = ""
    quantity: int = 0
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "PendingInventoryAdjustment":
        return cls(
            id=row["id"],
            hardware_id=row["hardware_id"],
            quantity=row["quantity"],
            note=row["note"],
            created_at=parse_iso(row["created_at"]),
            last_error=row["last_error"],
        )
