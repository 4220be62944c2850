"""Inventory adjustments with optimistic local writes.

An adjustment is applied to the Local Store before the server sees it,
marked ``pending_retry`` until the server's event replaces it. A failed
write leaves the optimistic event in place and records a
``PendingInventoryAdjustment`` breadcrumb; it is never replayed
automatically.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from vip_dashboard.api.dto import InventoryEventDTO, InventoryReceipt
from vip_dashboard.api.errors import APIError, RateLimitedError
from vip_dashboard.api.resources import DashboardAPI
from vip_dashboard.config import Config
from vip_dashboard.database.models import Hardware, InventoryEvent
from vip_dashboard.database.repository import Repository
from vip_dashboard.utils.constants import (
    ENTITY_HARDWARE,
    ENTITY_INVENTORY_EVENTS,
)
from vip_dashboard.utils.formatters import utcnow

from .engine import SyncEngine, SyncError
from .mapper import EntityMapper

logger = logging.getLogger(__name__)


class HardwareNotFound(LookupError):
    """No local hardware matches the scanned code or id."""


@dataclass
class AdjustmentResult:
    event: InventoryEvent
    confirmed: bool
    error: Optional[APIError] = None


class InventoryAdjuster:
    """Barcode lookup, inventory receive and optimistic adjustments."""

    def __init__(self, api: DashboardAPI, repo: Repository,
                 engine: Optional[SyncEngine] = None,
                 mapper: Optional[EntityMapper] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        self.api = api
        self.repo = repo
        self.engine = engine
        self.mapper = mapper or EntityMapper(repo)
        self._sleep = sleep or time.sleep

    def handle_scan(self, code: str) -> Hardware:
        """Resolve a decoded barcode to local hardware."""
        code = code.strip()
        hardware = self.repo.get_hardware_by_barcode(code)
        if hardware is None:
            raise HardwareNotFound(f"No hardware found for barcode {code}")
        return hardware

    def receive_inventory(self, barcode: str, quantity: int,
                          acquisition_cost: Optional[str] = None,
                          vendor: Optional[str] = None,
                          note: Optional[str] = None) -> InventoryReceipt:
        """Report received stock; the local copy catches up on next sync."""
        receipt = self.api.receive_inventory(
            barcode, quantity, acquisition_cost=acquisition_cost,
            vendor=vendor, note=note,
        )
        self._resync(ENTITY_HARDWARE)
        return receipt

    def adjust(self, hardware_id: str, delta: int,
               note: Optional[str] = None) -> AdjustmentResult:
        """Apply *delta* locally, then confirm it with the server.

        Returns the reconciled event on success. API failures are returned
        in the result, with the optimistic event still unconfirmed.
        """
        hardware = self.repo.get_hardware(hardware_id)
        if hardware is None:
            raise HardwareNotFound(f"No hardware with id {hardware_id}")

        local_event = self._apply_locally(hardware, delta, note)

        try:
            dto = self.api.adjust_inventory(
                hardware_id, delta, hardware.barcode, note=note
            )
        except APIError as e:
            return self._record_failure(local_event, delta, note, e)

        if dto is None:
            # Accepted without an event body; the next events sync has it
            with self.repo.transaction(ENTITY_INVENTORY_EVENTS) as conn:
                conn.execute(
                    "UPDATE inventory_events SET pending_retry = 0 WHERE id = ?",
                    (local_event.id,),
                )
            self._resync(ENTITY_INVENTORY_EVENTS)
            return AdjustmentResult(
                event=self.repo.get_inventory_event(local_event.id),
                confirmed=True,
            )

        event = self._reconcile(local_event, dto)
        self._resync(ENTITY_INVENTORY_EVENTS)
        return AdjustmentResult(event=event, confirmed=True)

    def _apply_locally(self, hardware: Hardware, delta: int,
                       note: Optional[str]) -> InventoryEvent:
        now = utcnow()
        with self.repo.transaction(ENTITY_INVENTORY_EVENTS,
                                   ENTITY_HARDWARE) as conn:
            row = conn.execute(
                "SELECT quantity_on_hand FROM hardware WHERE id = ?",
                (hardware.id,),
            ).fetchone()
            balance = row["quantity_on_hand"] + delta
            event = self.mapper.upsert_event(conn, InventoryEventDTO(
                id=str(uuid.uuid4()),
                hardware_id=hardware.id,
                delta=delta,
                balance=balance,
                created_at=now,
                updated_at=now,
                note=note,
                pending_retry=True,
            ))
            conn.execute(
                "UPDATE hardware SET quantity_on_hand = ? WHERE id = ?",
                (balance, hardware.id),
            )
        logger.debug(f"Optimistic adjustment {event.id}: {hardware.id} "
                     f"{delta:+d} -> {balance}")
        return event

    def _reconcile(self, local_event: InventoryEvent,
                   dto: InventoryEventDTO) -> InventoryEvent:
        dto.pending_retry = False
        with self.repo.transaction(ENTITY_INVENTORY_EVENTS,
                                   ENTITY_HARDWARE) as conn:
            if dto.id != local_event.id:
                conn.execute(
                    "DELETE FROM inventory_events WHERE id = ?",
                    (local_event.id,),
                )
            event = self.mapper.upsert_event(conn, dto)
            conn.execute(
                "UPDATE hardware SET quantity_on_hand = ? WHERE id = ?",
                (dto.balance, dto.hardware_id),
            )
        return event

    def _record_failure(self, local_event: InventoryEvent, delta: int,
                        note: Optional[str], error: APIError) -> AdjustmentResult:
        logger.warning(f"Inventory adjustment for {local_event.hardware_id} "
                       f"failed: {error}")
        self.repo.add_pending_adjustment(
            local_event.hardware_id, delta, note, last_error=str(error)
        )
        if isinstance(error, RateLimitedError):
            delay = max(error.retry_after or 0.0, Config.RATE_LIMIT_MIN_DELAY)
            logger.info(f"Re-syncing inventory events in {delay:.1f}s")
            self._sleep(delay)
            self._resync(ENTITY_INVENTORY_EVENTS)
        return AdjustmentResult(
            event=self.repo.get_inventory_event(local_event.id),
            confirmed=False,
            error=error,
        )

    def _resync(self, kind: str):
        """Best-effort scoped sync; failures are logged only."""
        if self.engine is None:
            return
        try:
            self.engine.sync(kind)
        except (APIError, SyncError) as e:
            logger.warning(f"Follow-up sync of {kind} failed: {e}")
