"""Tests for write-through record mutations."""

import json

import httpx
import pytest
from conftest import ts

from vip_dashboard.api.dto import TicketDTO
from vip_dashboard.api.errors import ServerError
from vip_dashboard.api.resources import DashboardAPI
from vip_dashboard.sync.writes import RecordWriter

TICKETS = "/api/v1/tickets"
CLIENTS = "/api/v1/clients"
HARDWARE = "/api/v1/hardware"


@pytest.fixture
def writer(api_client, repo):
    return RecordWriter(DashboardAPI(api_client), repo)


class TestTicketWrites:
    def test_create_merges_server_copy(self, writer, server, repo, ticket_json):
        server.queue(TICKETS, httpx.Response(201, json=ticket_json(id="t9")))
        ticket = writer.create_ticket({"title": "Ticket t9"})
        assert ticket.id == "t9"
        assert repo.get_ticket("t9").title == "Ticket t9"
        (request,) = server.requests_for(TICKETS)
        assert request.method == "POST"
        assert json.loads(request.content) == {"title": "Ticket t9"}

    def test_update_uses_item_path(self, writer, server, repo, ticket_json):
        server.queue(f"{TICKETS}/t1", httpx.Response(200, json=ticket_json(
            title="Fixed", status="closed", updated=ts(9))))
        ticket = writer.update_ticket("t1", {"status": "closed"})
        assert ticket.title == "Fixed"
        assert repo.get_ticket("t1").status == "closed"

    def test_delete_removes_local_copy(self, writer, server, repo, mapper,
                                       ticket_json):
        with repo.transaction() as conn:
            mapper.upsert_ticket(conn, TicketDTO.from_json(ticket_json(
                attachments=[{"id": "a1", "fileName": "x.png",
                              "contentType": "image/png", "size": 1,
                              "downloadURL": "https://files.test/a1"}])))
        server.queue(f"{TICKETS}/t1", httpx.Response(204))
        writer.delete_ticket("t1")
        assert repo.get_ticket("t1") is None
        assert repo.count("attachments") == 0

    def test_failed_delete_keeps_local_copy(self, writer, server, repo, mapper,
                                            ticket_json):
        with repo.transaction() as conn:
            mapper.upsert_ticket(conn, TicketDTO.from_json(ticket_json()))
        server.queue(f"{TICKETS}/t1", httpx.Response(500))
        with pytest.raises(ServerError):
            writer.delete_ticket("t1")
        assert repo.get_ticket("t1") is not None

    def test_refresh_active_tickets(self, writer, server, repo, ticket_json):
        server.queue(f"{TICKETS}/active", httpx.Response(200, json=[
            ticket_json(id="t1"), ticket_json(id="t2")]))
        tickets = writer.refresh_active_tickets("acme")
        assert [t.id for t in tickets] == ["t1", "t2"]
        assert repo.count("tickets") == 2
        (request,) = server.requests_for(f"{TICKETS}/active")
        assert request.url.params["client_key"] == "acme"


class TestClientWrites:
    def test_refresh_clients_listing(self, writer, server, repo):
        server.queue(CLIENTS, httpx.Response(200, json={"clients": {
            "zeta": {"name": "Zeta", "email": "z@zeta.test"},
            "acme": {"name": "Acme", "tier": "gold"},
        }}))
        clients = writer.refresh_clients()
        assert [c.id for c in clients] == ["acme", "zeta"]
        assert repo.get_client("zeta").email == "z@zeta.test"
        assert repo.get_client("acme").custom_attributes == {"tier": "gold"}

    def test_create_client_attaches_waiting_tickets(self, writer, server, repo,
                                                    mapper, ticket_json):
        with repo.transaction() as conn:
            mapper.upsert_ticket(conn, TicketDTO.from_json(
                ticket_json(client_id="acme")))
        assert repo.get_ticket("t1").client is None

        server.queue(CLIENTS, httpx.Response(201, json={
            "client_key": "acme", "name": "Acme"}))
        client = writer.create_client("acme", "Acme")
        assert client.name == "Acme"
        assert repo.get_ticket("t1").client.id == "acme"

    def test_update_client_envelope(self, writer, server, repo):
        server.queue(f"{CLIENTS}/acme", httpx.Response(200, json={
            "client_key": "acme", "client": {"name": "Acme Ltd", "phone": "555"}}))
        client = writer.update_client("acme", {"name": "Acme Ltd"})
        assert client.name == "Acme Ltd"
        assert repo.get_client("acme").phone == "555"


class TestHardwareWrites:
    def test_refresh_hardware_page(self, writer, server, repo, hardware_json):
        server.queue(HARDWARE, httpx.Response(200, json={
            "items": [hardware_json(id="h1"), hardware_json(id="h2")],
            "total": 2}))
        hardware = writer.refresh_hardware(limit=50)
        assert [h.id for h in hardware] == ["h1", "h2"]
        (request,) = server.requests_for(HARDWARE)
        assert request.url.params["limit"] == "50"
        assert request.url.params["offset"] == "0"

    def test_update_hardware(self, writer, server, repo, hardware_json):
        server.queue(f"{HARDWARE}/h1", httpx.Response(200, json=hardware_json(
            qoh=3, updated=ts(4))))
        hardware = writer.update_hardware("h1", {"quantityOnHand": 3})
        assert hardware.quantity_on_hand == 3
        assert repo.get_hardware("h1").quantity_on_hand == 3
