"""Wire-format records (DTOs) and their decoders.

Decoders take the parsed JSON value and raise ``KeyError``/``TypeError``/
``ValueError`` when the shape is wrong; ``APIClient`` reports those as
``DecodingError``. Wire keys are camelCase.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from vip_dashboard.utils.constants import EMPTY_ATTRIBUTE_VALUE, TICKET_STATUSES
from vip_dashboard.utils.formatters import parse_iso, utcnow

from .errors import DecodingError


# ── Field helpers ──────────────────────────────────────────────


def _obj(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise TypeError(f"expected an object, got {type(payload).__name__}")
    return payload


def _id(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValueError(f"invalid identifier: {value!r}")
    return str(value)


def _int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError(f"expected an integer, got {value!r}")
    return int(value)


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _timestamp(value: Any) -> datetime:
    parsed = parse_iso(value)
    if parsed is None:
        raise ValueError("missing timestamp")
    return parsed


def _lenient_int(value: Any) -> Optional[int]:
    """Integer from an int or numeric string; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _lenient_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _pick(data: dict, *keys: str):
    """First present, non-null value among alternative spellings."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


# ── Sync DTOs ──────────────────────────────────────────────────


@dataclass
class AttachmentDTO:
    id: str
    file_name: str
    content_type: str
    size: int
    download_url: str
    thumbnail_url: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Any) -> "AttachmentDTO":
        data = _obj(payload)
        return cls(
            id=_id(data["id"]),
            file_name=str(data["fileName"]),
            content_type=str(data["contentType"]),
            size=_int(data["size"]),
            download_url=str(data["downloadURL"]),
            thumbnail_url=_opt_str(data.get("thumbnailURL")),
        )


@dataclass
class TicketDTO:
    id: str
    number: str
    title: str
    status: str
    client_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    assignee: Optional[str] = None
    description: Optional[str] = None
    attachments: list[AttachmentDTO] = field(default_factory=list)

    @classmethod
    def from_json(cls, payload: Any) -> "TicketDTO":
        data = _obj(payload)
        status = str(data["status"])
        if status not in TICKET_STATUSES:
            raise ValueError(f"unknown ticket status: {status}")
        client_id = data.get("clientId")
        return cls(
            id=_id(data["id"]),
            number=str(data["number"]),
            title=str(data["title"]),
            status=status,
            client_id=None if client_id is None else _id(client_id),
            created_at=_timestamp(data["createdAt"]),
            updated_at=_timestamp(data["updatedAt"]),
            assignee=_opt_str(data.get("assignee")),
            description=_opt_str(data.get("description")),
            attachments=[
                AttachmentDTO.from_json(a) for a in data.get("attachments") or []
            ],
        )


@dataclass
class ClientDTO:
    id: str
    name: str
    updated_at: datetime
    email: Optional[str] = None
    phone: Optional[str] = None
    custom_attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, payload: Any) -> "ClientDTO":
        data = _obj(payload)
        attributes = data.get("customAttributes") or {}
        return cls(
            id=_id(data["id"]),
            name=str(data["name"]),
            updated_at=_timestamp(data["updatedAt"]),
            email=_opt_str(data.get("email")),
            phone=_opt_str(data.get("phone")),
            custom_attributes={
                str(k): str(v) for k, v in _obj(attributes).items()
            },
        )


@dataclass
class HardwareDTO:
    id: str
    name: str
    barcode: str
    quantity_on_hand: int
    updated_at: datetime
    last_inventory_event_at: Optional[datetime] = None

    @classmethod
    def from_json(cls, payload: Any) -> "HardwareDTO":
        data = _obj(payload)
        return cls(
            id=_id(data["id"]),
            name=str(data["name"]),
            barcode=str(data["barcode"]),
            quantity_on_hand=_int(data["quantityOnHand"]),
            updated_at=_timestamp(data["updatedAt"]),
            last_inventory_event_at=parse_iso(data.get("lastInventoryEventAt")),
        )


@dataclass
class InventoryEventDTO:
    id: str
    hardware_id: str
    delta: int
    balance: int
    created_at: datetime
    updated_at: datetime
    note: Optional[str] = None
    pending_retry: bool = False

    @classmethod
    def from_json(cls, payload: Any) -> "InventoryEventDTO":
        data = _obj(payload)
        return cls(
            id=_id(data["id"]),
            hardware_id=_id(data["hardwareId"]),
            delta=_int(data["delta"]),
            balance=_int(data["balance"]),
            created_at=_timestamp(data["createdAt"]),
            updated_at=_timestamp(data["updatedAt"]),
            note=_opt_str(data.get("note")),
            pending_retry=bool(data.get("pendingRetry", False)),
        )


@dataclass
class PagedResponse:
    items: list
    next_cursor: Optional[str] = None


def paged(item_decoder: Callable[[Any], Any]) -> Callable[[Any], PagedResponse]:
    """Build a decoder for ``{"items": [...], "nextCursor": ...}`` bodies."""

    def decode(payload: Any) -> PagedResponse:
        data = _obj(payload)
        items = data["items"]
        if not isinstance(items, list):
            raise TypeError("items must be a list")
        cursor = data.get("nextCursor")
        return PagedResponse(
            items=[item_decoder(item) for item in items],
            next_cursor=None if cursor in (None, "") else str(cursor),
        )

    return decode


def list_of(item_decoder: Callable[[Any], Any]) -> Callable[[Any], list]:
    """Build a decoder for a bare JSON array (or a paged body's items)."""

    def decode(payload: Any) -> list:
        if isinstance(payload, dict) and isinstance(payload.get("items"), list):
            payload = payload["items"]
        if not isinstance(payload, list):
            raise TypeError("expected a list")
        return [item_decoder(item) for item in payload]

    return decode


@dataclass
class HardwarePage:
    items: list[HardwareDTO]
    total: Optional[int] = None

    @classmethod
    def from_json(cls, payload: Any) -> "HardwarePage":
        if isinstance(payload, list):
            return cls(items=[HardwareDTO.from_json(h) for h in payload],
                       total=len(payload))
        data = _obj(payload)
        items = _pick(data, "items", "hardware")
        if not isinstance(items, list):
            raise TypeError("hardware list missing")
        return cls(
            items=[HardwareDTO.from_json(h) for h in items],
            total=_lenient_int(data.get("total")),
        )


# ── Auth ───────────────────────────────────────────────────────


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str
    expires_in: float

    @classmethod
    def from_json(cls, payload: Any) -> "TokenResponse":
        data = _obj(payload)
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=str(data["refresh_token"]),
            expires_in=float(data["expires_in"]),
        )

    @property
    def access_token_expiry(self) -> datetime:
        return utcnow() + timedelta(seconds=self.expires_in)


# ── Client records ─────────────────────────────────────────────
#
# The clients routes answer in three shapes with no discriminating field:
#   flat object      {"name": "...", "<attr>": "..."}
#   single envelope  {"client_key": "...", "client": {...}}
#   map of blobs     {"<key>": {"name": ..., ...}} (optionally under "clients")
# They are tried in exactly that order.


@dataclass
class ClientRecord:
    client_key: str
    name: str
    attributes: dict[str, str] = field(default_factory=dict)


def _scalar_text(value: Any) -> Optional[str]:
    """Attribute text for a JSON scalar; None for nested values."""
    if value is None:
        return EMPTY_ATTRIBUTE_VALUE
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def _blob_to_record(client_key: str, blob: dict) -> ClientRecord:
    name = blob.get("name")
    attributes = {}
    for key, value in blob.items():
        if key in ("name", "client_key"):
            continue
        text = _scalar_text(value)
        if text is not None:
            attributes[key] = text
    return ClientRecord(
        client_key=client_key,
        name=name if isinstance(name, str) else "",
        attributes=attributes,
    )


def _is_envelope(payload: dict) -> bool:
    return isinstance(payload.get("client_key"), str) and "client" in payload


def _is_flat(payload: dict) -> bool:
    # {"client_key": ..., "client": null} is an envelope, not a flat client
    if _is_envelope(payload):
        return False
    return all(not isinstance(v, (dict, list)) for v in payload.values())


def normalize_client_response(payload: Any, client_key: str) -> ClientRecord:
    """Normalise a single-client response to a ``ClientRecord``.

    ``client_key`` is the key the request was made for; it fills in when
    the response does not carry one.
    """
    if not isinstance(payload, dict) or not payload:
        raise DecodingError(ValueError("Unrecognized client response"))

    # 1) flat object
    if _is_flat(payload):
        key = payload.get("client_key")
        record = _blob_to_record(str(key) if key else client_key, payload)
        if not record.name:
            record.name = record.client_key
        return record

    # 2) single envelope
    if isinstance(payload.get("client_key"), str) and isinstance(
            payload.get("client"), (dict, type(None))):
        inner = payload.get("client") or {}
        record = _blob_to_record(payload["client_key"], inner)
        top_name = payload.get("name")
        if isinstance(top_name, str) and top_name:
            record.name = top_name
        if not record.name:
            record.name = record.client_key
        return record

    # 3) map of blobs
    blobs = payload.get("clients") if isinstance(payload.get("clients"), dict) else payload
    if blobs and all(isinstance(v, dict) for v in blobs.values()):
        if client_key in blobs:
            return _blob_to_record(client_key, blobs[client_key])
        if len(blobs) == 1:
            (key, blob), = blobs.items()
            return _blob_to_record(str(key), blob)

    raise DecodingError(ValueError("Unrecognized client response"))


@dataclass
class ClientsListing:
    clients: list[ClientRecord]
    attribute_keys: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, payload: Any) -> "ClientsListing":
        data = _obj(payload)
        blobs = _obj(data["clients"])
        records = [_blob_to_record(str(k), _obj(v)) for k, v in blobs.items()]
        records.sort(key=lambda r: (r.name.casefold(), r.client_key))
        keys = data.get("attribute_keys") or []
        return cls(
            clients=records,
            attribute_keys=[
                k if isinstance(k, str) else str(_obj(k).get("key", ""))
                for k in keys
            ],
        )


# ── Inventory receive / adjust responses ───────────────────────


@dataclass
class InventoryAdjustment:
    id: Optional[int] = None
    barcode: Optional[str] = None
    quantity: Optional[int] = None
    quantity_change: Optional[int] = None
    previous_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    note: Optional[str] = None
    description: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Any) -> Optional["InventoryAdjustment"]:
        if not isinstance(payload, dict):
            return None
        return cls(
            id=_lenient_int(payload.get("id")),
            barcode=_lenient_str(payload.get("barcode")),
            quantity=_lenient_int(payload.get("quantity")),
            quantity_change=_lenient_int(
                _pick(payload, "quantity_change", "quantityChange")),
            previous_quantity=_lenient_int(
                _pick(payload, "previous_quantity", "previousQuantity")),
            new_quantity=_lenient_int(
                _pick(payload, "new_quantity", "newQuantity")),
            note=_lenient_str(payload.get("note")),
            description=_lenient_str(payload.get("description")),
            message=_lenient_str(payload.get("message")),
        )


def _ticket_reference(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        return _lenient_int(value.get("id"))
    return _lenient_int(value)


@dataclass
class InventoryReceipt:
    """Response of the inventory receive route; every field is optional."""

    ticket_id: Optional[int] = None
    adjustment: Optional[InventoryAdjustment] = None
    message: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Any) -> "InventoryReceipt":
        if not isinstance(payload, dict):
            return cls()
        ticket_id = _ticket_reference(payload.get("ticket"))
        if ticket_id is None:
            ticket_id = _lenient_int(_pick(payload, "ticket_id", "ticketId"))
        return cls(
            ticket_id=ticket_id,
            adjustment=InventoryAdjustment.from_json(payload.get("adjustment")),
            message=_lenient_str(payload.get("message")),
        )

    def confirmation(self) -> tuple[str, str]:
        """Title and message for the user-facing confirmation."""
        if self.ticket_id is not None:
            return "Ticket Created", f"Ticket #{self.ticket_id} created."

        adj = self.adjustment
        if adj is not None:
            if adj.description:
                return "Inventory Adjusted", adj.description
            if adj.message:
                return "Inventory Adjusted", adj.message
            if adj.note:
                return "Inventory Adjusted", adj.note
            if adj.quantity_change is not None and adj.new_quantity is not None:
                return ("Inventory Adjusted",
                        f"Adjusted by {adj.quantity_change} to {adj.new_quantity}.")
            if adj.previous_quantity is not None and adj.new_quantity is not None:
                return ("Inventory Adjusted",
                        f"Quantity changed from {adj.previous_quantity} "
                        f"to {adj.new_quantity}.")
            if adj.quantity is not None:
                unit = "item" if adj.quantity == 1 else "items"
                if adj.barcode:
                    return ("Inventory Adjusted",
                            f"Received {adj.quantity} {unit} for {adj.barcode}.")
                return "Inventory Adjusted", f"Received {adj.quantity} {unit}."

        if self.message:
            return "Inventory Received", self.message
        return "Inventory Received", "Inventory received successfully."


def optional_event(payload: Any) -> Optional[InventoryEventDTO]:
    """Decode an adjust response, which may be empty."""
    if payload is None or payload == {}:
        return None
    return InventoryEventDTO.from_json(payload)
