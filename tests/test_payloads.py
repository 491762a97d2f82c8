from __future__ import annotations

import pytest

from hospient.integrations.errors import ValidationError
from hospient.integrations.payloads import (
    GuestCheck,
    Notification,
    parse_payload,
    transform_guest,
    transform_menu_item,
    transform_reservation,
    transform_room,
)
from hospient.integrations.providers import get_provider_spec, load_provider_catalog


def test_menu_item_defaults_and_title_fallback():
    record = transform_menu_item({"id": 42, "title": "Club Sandwich", "image": "https://img/1.png"})

    assert record.entity == "menu_item"
    assert record.external_id == "42"
    assert record.values["name"] == "Club Sandwich"
    assert record.values["price"] == 0
    assert record.values["category"] == "main"
    assert record.values["image_url"] == "https://img/1.png"
    assert record.values["allergens"] == []
    assert record.values["is_available"] is True


def test_menu_item_unavailable_flag_is_kept():
    record = transform_menu_item({"id": "m1", "name": "Soup", "is_available": False})
    assert record.values["is_available"] is False


def test_menu_item_without_id_or_name_fails():
    with pytest.raises(ValidationError):
        transform_menu_item({"name": "No id"})
    with pytest.raises(ValidationError):
        transform_menu_item({"id": "m1"})
    with pytest.raises(ValidationError):
        transform_menu_item(["not", "an", "object"])


def test_reservation_maps_guest_and_room():
    record = transform_reservation(
        {
            "id": "r1",
            "guest_id": "g1",
            "guest": {"first_name": "Ana", "date_of_birth": "1990-05-01", "unknown": "ignored"},
            "room_number": "204",
            "status": "occupied",
        }
    )

    assert (record.entity, record.external_id) == ("guest", "g1")
    assert record.values["first_name"] == "Ana"
    assert str(record.values["date_of_birth"]) == "1990-05-01"
    [room] = record.related
    assert (room.entity, room.external_id, room.create) == ("room", "204", False)
    assert room.values["is_occupied"] is True


def test_reservation_without_room_has_no_related_rows():
    record = transform_reservation({"guest_id": "g1", "guest": {"first_name": "Ana"}})
    assert record.related == []


def test_guest_defaults():
    record = transform_guest({"id": "g1", "email": "a@example.com"})
    assert record.values["status"] == "active"
    assert record.values["loyalty_points"] == 0
    assert "special_requests" not in record.values


def test_room_requires_number():
    with pytest.raises(ValidationError):
        transform_room({"id": "x"})
    assert transform_room({"number": 7}).external_id == "7"


def test_guest_check_accepts_camel_and_snake_case():
    camel = parse_payload(GuestCheck, {"items": [{"menuId": "m1", "quantity": 1, "unitPrice": 3}]})
    snake = parse_payload(GuestCheck, {"items": [{"menu_id": "m1", "quantity": 1, "unit_price": 3}]})

    assert camel.items[0].menu_id == snake.items[0].menu_id == "m1"


def test_guest_check_rejects_zero_quantity():
    with pytest.raises(ValidationError) as exc:
        parse_payload(GuestCheck, {"items": [{"menuId": "m1", "quantity": 0, "unitPrice": 3}]})
    assert exc.value.field == "items.0.quantity"


def test_notification_to_remote_drops_none():
    body = parse_payload(Notification, {"title": "Spa", "message": "Open"}).to_remote()

    assert body["source"] == "hospient_app"
    assert "scheduled_at" not in body
    assert body["metadata"] == {}


def test_provider_catalog():
    catalog = load_provider_catalog()

    assert set(catalog) == {"pos", "pms", "guest_management"}
    opera = get_provider_spec("opera_cloud")
    assert opera.integration_type == "pms"
    assert "appKey" in opera.required_credentials
    assert "accessToken" not in opera.required_credentials
    assert get_provider_spec("unknown") is None
