"""
Typed payloads at the adapter boundary.

Inbound models (Remote*) describe records fetched from third-party platforms and map
them to SyncRecords with safe defaults. Outbound models validate what the hotel
platform sends before any HTTP call is made; they accept camelCase or snake_case
keys and serialize to the snake_case wire format.

Reservation occupancy only touches rooms already synced from the same provider,
matched by (hotel, room number, external source). Rooms entered by hand or synced
from another provider are left alone, and no current-guest link is written.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from hospient.core.store import SyncRecord
from hospient.integrations.errors import ValidationError

SOURCE_APP = "hospient_app"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_payload(model: type[ModelT], data: Any) -> ModelT:
    """Validate data against model, raising the integration ValidationError on failure."""
    if isinstance(data, model):
        return data
    if not isinstance(data, dict):
        raise ValidationError(f"{model.__name__} payload must be an object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Invalid {model.__name__}: {field}: {first.get('msg')}", field=field or None) from e


# Inbound


class _Remote(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class RemoteMenuItem(_Remote):
    id: str
    name: str | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None
    price: float | None = None
    currency: str | None = None
    is_available: bool | None = None
    image_url: str | None = None
    image: str | None = None
    allergens: list | None = None
    nutritional_info: dict | None = None
    preparation_time: int | None = None
    tags: list | None = None

    def to_record(self) -> SyncRecord:
        name = self.name or self.title
        if not name:
            raise ValidationError(f"Menu item {self.id} has no name", field="name")
        return SyncRecord(
            entity="menu_item",
            external_id=self.id,
            values={
                "name": name,
                "description": self.description,
                "category": self.category or "main",
                "price": self.price or 0,
                "currency": self.currency or "USD",
                "is_available": self.is_available is not False,
                "image_url": self.image_url or self.image,
                "allergens": self.allergens or [],
                "nutritional_info": self.nutritional_info or {},
                "preparation_time": self.preparation_time or None,
                "tags": self.tags or [],
            },
        )


class RemoteGuestProfile(_Remote):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    passport_number: str | None = None
    date_of_birth: date | None = None
    special_requests: str | None = None

    def guest_values(self) -> dict:
        return self.model_dump(
            include={
                "first_name",
                "last_name",
                "email",
                "phone",
                "address",
                "city",
                "country",
                "passport_number",
                "date_of_birth",
                "special_requests",
            }
        )


class RemoteReservation(_Remote):
    id: str | None = None
    guest_id: str
    guest: RemoteGuestProfile
    room_number: str | None = None
    room_type: str | None = None
    check_in_date: date | None = None
    check_out_date: date | None = None
    status: str | None = None

    def to_record(self) -> SyncRecord:
        record = SyncRecord(entity="guest", external_id=self.guest_id, values=self.guest.guest_values())
        if self.room_number:
            room_values: dict[str, Any] = {
                "room_number": self.room_number,
                "is_occupied": self.status == "occupied",
            }
            if self.room_type:
                room_values["room_type"] = self.room_type
            record.related.append(
                SyncRecord(entity="room", external_id=self.room_number, values=room_values, create=False)
            )
        return record


class RemoteGuest(RemoteGuestProfile):
    id: str
    preferences: dict | None = None
    loyalty_points: int | None = None
    status: str | None = None

    def to_record(self) -> SyncRecord:
        values = self.guest_values()
        values.pop("special_requests")
        values.update(
            preferences=self.preferences or {},
            loyalty_points=self.loyalty_points or 0,
            status=self.status or "active",
        )
        return SyncRecord(entity="guest", external_id=self.id, values=values)


class RemoteRoom(_Remote):
    id: str | None = None
    room_number: str | None = None
    number: str | None = None
    room_type: str | None = None
    floor: int | None = None
    status: str | None = None
    is_occupied: bool | None = None

    def to_record(self) -> SyncRecord:
        room_number = self.room_number or self.number
        if not room_number:
            raise ValidationError(f"Room {self.id} has no room number", field="room_number")
        status = self.status or "available"
        values: dict[str, Any] = {
            "room_number": room_number,
            "status": status,
            "is_occupied": self.is_occupied if self.is_occupied is not None else status == "occupied",
        }
        if self.room_type:
            values["room_type"] = self.room_type
        if self.floor is not None:
            values["floor"] = self.floor
        return SyncRecord(entity="room", external_id=room_number, values=values)


def transform_menu_item(raw: Any) -> SyncRecord:
    return parse_payload(RemoteMenuItem, raw).to_record()


def transform_reservation(raw: Any) -> SyncRecord:
    return parse_payload(RemoteReservation, raw).to_record()


def transform_guest(raw: Any) -> SyncRecord:
    return parse_payload(RemoteGuest, raw).to_record()


def transform_room(raw: Any) -> SyncRecord:
    return parse_payload(RemoteRoom, raw).to_record()


# Outbound


class _Outbound(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def to_remote(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class GuestCheckItem(_Outbound):
    menu_id: str
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)
    total_price: float | None = None
    special_instructions: str = ""


class GuestCheck(_Outbound):
    guest_id: str | None = None
    room_number: str | None = None
    items: list[GuestCheckItem] = Field(min_length=1)
    subtotal: float | None = None
    tax: float | None = None
    total: float | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    timestamp: datetime = Field(default_factory=_now)


class CheckIn(_Outbound):
    reservation_id: str
    guest_id: str | None = None
    room_number: str
    check_in_time: datetime = Field(default_factory=_now)
    check_in_by: str | None = None
    special_requests: str | None = None
    payment_method: str | None = None
    deposit_amount: float | None = None
    notes: str | None = None


class CheckOut(_Outbound):
    reservation_id: str
    guest_id: str | None = None
    room_number: str
    check_out_time: datetime = Field(default_factory=_now)
    check_out_by: str | None = None
    final_bill_amount: float | None = None
    payment_status: str | None = None
    feedback_rating: int | None = Field(default=None, ge=1, le=5)
    feedback_comments: str | None = None
    notes: str | None = None


class ServiceRequest(_Outbound):
    guest_id: str | None = None
    room_number: str | None = None
    request_type: str
    category: str | None = None
    title: str
    description: str | None = None
    priority: Literal["low", "normal", "high", "urgent"] = "normal"
    requested_time: datetime = Field(default_factory=_now)
    status: str = "pending"


class Feedback(_Outbound):
    guest_id: str | None = None
    hotel_id: str | None = None
    room_number: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    category: str | None = None
    title: str | None = None
    message: str
    is_anonymous: bool = False
    tags: list[str] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)
    submitted_at: datetime = Field(default_factory=_now)
    source: str = SOURCE_APP


class ChatMessage(_Outbound):
    guest_id: str | None = None
    hotel_id: str | None = None
    room_number: str | None = None
    message: str
    message_type: str = "text"
    sender_type: str = "guest"
    sender_id: str | None = None
    sender_name: str | None = None
    timestamp: datetime = Field(default_factory=_now)
    metadata: dict = Field(default_factory=dict)
    source: str = SOURCE_APP


class Notification(_Outbound):
    guest_id: str | None = None
    hotel_id: str | None = None
    room_number: str | None = None
    title: str
    message: str
    category: str | None = None
    priority: str = "normal"
    notification_type: str = "push"
    scheduled_at: datetime | None = None
    expires_at: datetime | None = None
    metadata: dict = Field(default_factory=dict)
    source: str = SOURCE_APP


class ListFilters(_Outbound):
    """Query filters for feedback, chat and notification listings."""

    guest_id: str | None = None
    hotel_id: str | None = None
    room_number: str | None = None
    rating: int | None = None
    category: str | None = None
    priority: str | None = None
    sender_type: str | None = None
    notification_type: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    limit: int | None = Field(default=None, gt=0)
    offset: int | None = Field(default=None, ge=0)
