"""Shared test fixtures."""

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import httpx
import pytest

from vip_dashboard.api.client import APIClient
from vip_dashboard.database.connection import DatabaseConnection
from vip_dashboard.database.repository import Repository
from vip_dashboard.database.schema import initialize_database
from vip_dashboard.sync.mapper import EntityMapper

BASE_URL = "https://tracker.test"


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


@pytest.fixture
def mapper(repo):
    return EntityMapper(repo)


# ── Wire payloads ──────────────────────────────────────────────


def ts(minute: int, hour: int = 10) -> str:
    return f"2024-05-01T{hour:02d}:{minute:02d}:00Z"


@pytest.fixture
def ticket_json():
    def make(id="t1", updated=ts(0), client_id="c1", status="open",
             attachments=None, **extra):
        data = {
            "id": id,
            "number": f"T-{id}",
            "title": f"Ticket {id}",
            "status": status,
            "clientId": client_id,
            "createdAt": ts(0, hour=9),
            "updatedAt": updated,
            "attachments": attachments or [],
        }
        data.update(extra)
        return data
    return make


@pytest.fixture
def client_json():
    def make(id="c1", updated=ts(0), name=None, **extra):
        data = {"id": id, "name": name or f"Client {id}", "updatedAt": updated}
        data.update(extra)
        return data
    return make


@pytest.fixture
def hardware_json():
    def make(id="h1", updated=ts(0), barcode=None, qoh=10, **extra):
        data = {
            "id": id,
            "name": f"Hardware {id}",
            "barcode": barcode or f"BC-{id}",
            "quantityOnHand": qoh,
            "updatedAt": updated,
        }
        data.update(extra)
        return data
    return make


@pytest.fixture
def event_json():
    def make(id="e1", hardware_id="h1", updated=ts(0), delta=-1, balance=9,
             **extra):
        data = {
            "id": id,
            "hardwareId": hardware_id,
            "delta": delta,
            "balance": balance,
            "createdAt": updated,
            "updatedAt": updated,
        }
        data.update(extra)
        return data
    return make


def page(items, cursor=None, etag=None, status=200):
    """A paged list response."""
    headers = {"ETag": etag} if etag else {}
    return httpx.Response(status, json={"items": items, "nextCursor": cursor},
                          headers=headers)


# ── Scripted HTTP server ───────────────────────────────────────


class ScriptedServer:
    """MockTransport handler serving queued responses per path.

    A queued exception is raised instead of answering and a queued callable
    is called with the request. Paths with nothing queued answer with an
    empty page.
    """

    def __init__(self):
        self.routes: dict[str, list] = {}
        self.requests: list[httpx.Request] = []

    def queue(self, path: str, *responses):
        self.routes.setdefault(path, []).extend(responses)

    def requests_for(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self.routes.get(request.url.path)
        if not queued:
            return page([])
        item = queued.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item


@pytest.fixture
def server():
    return ScriptedServer()


@pytest.fixture
def api_client(server):
    client = APIClient(base_url=BASE_URL, transport=httpx.MockTransport(server))
    yield client
    client.close()
