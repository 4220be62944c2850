"""Tests for dataclass model properties and computed fields."""

from vip_dashboard.database.models import (
    Client,
    InventoryEvent,
    Ticket,
    _load_attributes,
)


class TestClientProperties:
    """Test Client model computed properties."""

    def test_display_name_uses_name(self):
        assert Client(id="acme", name="Acme").display_name == "Acme"

    def test_display_name_falls_to_id(self):
        assert Client(id="acme", name="").display_name == "acme"


class TestTicketProperties:
    def test_status_label(self):
        assert Ticket(status="resolved").status_label == "Resolved"

    def test_unknown_status_label_is_titled(self):
        assert Ticket(status="on_hold").status_label == "On_Hold"

    def test_is_active(self):
        assert Ticket(status="open").is_active
        assert Ticket(status="pending").is_active
        assert not Ticket(status="closed").is_active


class TestInventoryEventProperties:
    def test_pending_is_unconfirmed(self):
        assert InventoryEvent(pending_retry=True).is_unconfirmed
        assert not InventoryEvent().is_unconfirmed


class TestCustomAttributes:
    def test_empty(self):
        assert _load_attributes(None) == {}
        assert _load_attributes("") == {}

    def test_corrupt_json_is_ignored(self):
        assert _load_attributes("{not json") == {}

    def test_values_become_text(self):
        assert _load_attributes('{"floor": 3}') == {"floor": "3"}

    def test_non_object_is_ignored(self):
        assert _load_attributes("[1, 2]") == {}
