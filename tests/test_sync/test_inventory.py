"""Tests for optimistic inventory adjustments and barcode lookup."""

import json
from unittest.mock import patch

import httpx
import pytest
from conftest import ts

from vip_dashboard.api.dto import HardwareDTO
from vip_dashboard.api.errors import NetworkError, RateLimitedError
from vip_dashboard.api.resources import DashboardAPI
from vip_dashboard.config import Config
from vip_dashboard.sync.inventory import HardwareNotFound, InventoryAdjuster
from vip_dashboard.utils.constants import (
    ENTITY_HARDWARE,
    ENTITY_INVENTORY_EVENTS,
)

ADJUST = "/api/v1/inventory/adjust"
RECEIVE = "/api/v1/inventory/receive"


class FakeEngine:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def sync(self, kind):
        self.calls.append(kind)
        if self.error is not None:
            raise self.error
        return 0


@pytest.fixture
def hardware(repo, mapper, hardware_json):
    with repo.transaction() as conn:
        return mapper.upsert_hardware(
            conn, HardwareDTO.from_json(hardware_json(qoh=10)))


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def adjuster(api_client, repo, fake_engine, sleeps):
    return InventoryAdjuster(DashboardAPI(api_client), repo,
                             engine=fake_engine, sleep=sleeps.append)


class TestOptimisticWrite:
    def test_local_event_visible_before_server_answers(
            self, adjuster, server, repo, hardware, event_json):
        observed = {}

        def respond(request):
            events = repo.get_events_for_hardware("h1")
            observed["events"] = events
            observed["qoh"] = repo.get_hardware("h1").quantity_on_hand
            observed["body"] = json.loads(request.content)
            return httpx.Response(200, json=event_json(
                id="srv-1", delta=-3, balance=7, updated=ts(30)))

        server.queue(ADJUST, respond)
        adjuster.adjust("h1", -3, note="damaged")

        (local,) = observed["events"]
        assert local.balance == 7
        assert local.delta == -3
        assert local.pending_retry is True
        assert local.is_unconfirmed
        assert observed["qoh"] == 7
        assert observed["body"] == {"hardwareId": "h1", "quantity": -3,
                                    "note": "damaged", "barcode": "BC-h1"}

    def test_server_event_replaces_placeholder(self, adjuster, server, repo,
                                               hardware, event_json,
                                               fake_engine):
        server.queue(ADJUST, httpx.Response(200, json=event_json(
            id="srv-1", delta=-3, balance=7, updated=ts(30))))
        result = adjuster.adjust("h1", -3)

        assert result.confirmed
        assert result.error is None
        assert result.event.id == "srv-1"
        assert result.event.pending_retry is False
        events = repo.get_events_for_hardware("h1")
        assert [e.id for e in events] == ["srv-1"]
        assert repo.get_hardware("h1").quantity_on_hand == 7
        assert repo.get_unconfirmed_events() == []
        assert fake_engine.calls == [ENTITY_INVENTORY_EVENTS]

    def test_server_balance_wins(self, adjuster, server, repo, hardware,
                                 event_json):
        server.queue(ADJUST, httpx.Response(200, json=event_json(
            id="srv-1", delta=-3, balance=6, updated=ts(30))))
        adjuster.adjust("h1", -3)
        assert repo.get_hardware("h1").quantity_on_hand == 6
        assert repo.get_inventory_event("srv-1").balance == 6

    def test_empty_response_confirms_and_resyncs(self, adjuster, server,
                                                 repo, hardware, fake_engine):
        server.queue(ADJUST, httpx.Response(200, json={}))
        result = adjuster.adjust("h1", 2)
        assert result.confirmed
        assert result.event.pending_retry is False
        assert result.event.balance == 12
        assert fake_engine.calls == [ENTITY_INVENTORY_EVENTS]

    def test_unknown_hardware(self, adjuster):
        with pytest.raises(HardwareNotFound):
            adjuster.adjust("missing", 1)


class TestFailedWrite:
    def test_rate_limit_keeps_pending_and_resyncs(self, adjuster, server,
                                                  repo, hardware, sleeps,
                                                  fake_engine):
        server.queue(ADJUST, httpx.Response(429, headers={"Retry-After": "2"}))
        with patch.object(Config, "RATE_LIMIT_MIN_DELAY", 5.0):
            result = adjuster.adjust("h1", -3)

        assert not result.confirmed
        assert isinstance(result.error, RateLimitedError)
        assert result.event.pending_retry is True
        assert result.event.balance == 7
        assert repo.get_hardware("h1").quantity_on_hand == 7
        (pending,) = repo.get_pending_adjustments()
        assert pending.hardware_id == "h1"
        assert pending.quantity == -3
        assert pending.last_error == "Too many requests. Try again in 2 seconds."
        assert sleeps == [5.0]
        assert fake_engine.calls == [ENTITY_INVENTORY_EVENTS]

    def test_longer_retry_after_respected(self, adjuster, server, hardware,
                                          sleeps):
        server.queue(ADJUST, httpx.Response(429, headers={"Retry-After": "12"}))
        with patch.object(Config, "RATE_LIMIT_MIN_DELAY", 5.0):
            adjuster.adjust("h1", -1)
        assert sleeps == [12.0]

    def test_server_error_records_breadcrumb_only(self, adjuster, server,
                                                  repo, hardware, sleeps,
                                                  fake_engine):
        server.queue(ADJUST, httpx.Response(500))
        result = adjuster.adjust("h1", 4)
        assert not result.confirmed
        assert len(repo.get_pending_adjustments()) == 1
        assert len(repo.get_unconfirmed_events()) == 1
        assert sleeps == []
        assert fake_engine.calls == []

    def test_breadcrumbs_are_not_replayed(self, adjuster, server, repo,
                                          hardware, event_json):
        server.queue(ADJUST, httpx.Response(500))
        adjuster.adjust("h1", 4)
        server.queue(ADJUST, httpx.Response(200, json=event_json(
            id="srv-2", delta=1, balance=15)))
        adjuster.adjust("h1", 1)
        bodies = [json.loads(r.content) for r in server.requests_for(ADJUST)]
        assert [b["quantity"] for b in bodies] == [4, 1]
        assert len(repo.get_pending_adjustments()) == 1

    def test_follow_up_sync_failure_is_not_raised(self, api_client, repo,
                                                  server, hardware, sleeps):
        engine = FakeEngine(error=NetworkError(OSError("offline")))
        adjuster = InventoryAdjuster(DashboardAPI(api_client), repo,
                                     engine=engine, sleep=sleeps.append)
        server.queue(ADJUST, httpx.Response(429))
        result = adjuster.adjust("h1", -1)
        assert not result.confirmed
        assert engine.calls == [ENTITY_INVENTORY_EVENTS]

    def test_follow_up_sync_failure_after_confirm(self, api_client, repo,
                                                  server, hardware, sleeps,
                                                  event_json):
        engine = FakeEngine(error=NetworkError(OSError("offline")))
        adjuster = InventoryAdjuster(DashboardAPI(api_client), repo,
                                     engine=engine, sleep=sleeps.append)
        server.queue(ADJUST, httpx.Response(200, json=event_json(
            id="srv-1", delta=-1, balance=9)))
        result = adjuster.adjust("h1", -1)
        assert result.confirmed
        assert result.event.id == "srv-1"
        assert engine.calls == [ENTITY_INVENTORY_EVENTS]


class TestScanAndReceive:
    def test_scan_finds_hardware(self, adjuster, hardware):
        assert adjuster.handle_scan(" BC-h1\n").id == "h1"

    def test_scan_miss(self, adjuster, hardware):
        with pytest.raises(HardwareNotFound, match="No hardware found for barcode XYZ"):
            adjuster.handle_scan("XYZ")

    def test_receive_returns_confirmation(self, adjuster, server, fake_engine):
        server.queue(RECEIVE, httpx.Response(200, json={
            "adjustment": {"quantity": 3, "barcode": "BC-h1"}}))
        receipt = adjuster.receive_inventory("BC-h1", 3, vendor="Acme")
        assert receipt.confirmation() == (
            "Inventory Adjusted", "Received 3 items for BC-h1.")
        assert fake_engine.calls == [ENTITY_HARDWARE]
