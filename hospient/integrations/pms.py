"""
PMS Integration Adapter: property management systems.

Reservations are reconciled into guests (keyed by the PMS guest id) and carry the
occupancy of rooms that already exist locally. Rooms can also be synchronized on
their own, keyed by room number.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from hospient.integrations.base import IntegrationAdapter, entity_id, register_adapter
from hospient.integrations.errors import ValidationError
from hospient.integrations.orchestrator import SyncPlan
from hospient.integrations.payloads import (
    CheckIn,
    CheckOut,
    ServiceRequest,
    parse_payload,
    transform_reservation,
    transform_room,
)
from hospient.integrations.resolver import ConnectionProfile

logger = logging.getLogger(__name__)


@register_adapter("pms")
class PMSAdapter(IntegrationAdapter):
    actions = (
        "sync_reservations",
        "sync_rooms",
        "post_check_in",
        "post_check_out",
        "send_request",
        "get_room_status",
        "get_guest_info",
        "update_guest_info",
        "test_integration",
    )

    async def sync_reservations(
        self,
        integration_id: UUID,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict:
        params = {"start_date": start_date, "end_date": end_date}

        async def _fetch(profile: ConnectionProfile) -> Any:
            return await self._fetch_list(profile, "reservations", params=params)

        plan = SyncPlan(
            operation_name="sync_reservations",
            fetch=_fetch,
            transform=transform_reservation,
            request_data={"endpoint": "reservations", "params": params},
        )
        return await self._sync(integration_id, plan)

    async def sync_rooms(self, integration_id: UUID) -> dict:
        plan = SyncPlan(
            operation_name="sync_rooms",
            fetch=self._fetch_rooms,
            transform=transform_room,
            request_data={"endpoint": "rooms"},
        )
        return await self._sync(integration_id, plan)

    async def _fetch_reservations(self, profile: ConnectionProfile) -> Any:
        return await self._fetch_list(profile, "reservations")

    async def _fetch_rooms(self, profile: ConnectionProfile) -> Any:
        return await self._fetch_list(profile, "rooms")

    async def post_check_in(self, integration_id: UUID, check_in: dict) -> dict:
        return await self._call(
            integration_id,
            "post_check_in",
            "POST",
            lambda p: p.endpoint("checkins"),
            build_body=lambda: parse_payload(CheckIn, check_in).to_remote(),
            shape=lambda data: {"success": True, "pms_check_in_id": entity_id(data), "response": data},
        )

    async def post_check_out(self, integration_id: UUID, check_out: dict) -> dict:
        return await self._call(
            integration_id,
            "post_check_out",
            "POST",
            lambda p: p.endpoint("checkouts"),
            build_body=lambda: parse_payload(CheckOut, check_out).to_remote(),
            shape=lambda data: {"success": True, "pms_check_out_id": entity_id(data), "response": data},
        )

    async def send_request(self, integration_id: UUID, request: dict) -> dict:
        return await self._call(
            integration_id,
            "send_request",
            "POST",
            lambda p: p.endpoint("requests"),
            build_body=lambda: parse_payload(ServiceRequest, request).to_remote(),
            shape=lambda data: {"success": True, "pms_request_id": entity_id(data), "response": data},
        )

    async def get_room_status(self, integration_id: UUID, room_number: str | None = None) -> dict:
        def _path(p: ConnectionProfile) -> str:
            return f"{p.endpoint('rooms')}/{room_number}" if room_number else p.endpoint("rooms")

        return await self._call(
            integration_id,
            "get_room_status",
            "GET",
            _path,
            shape=lambda data: {"success": True, ("room" if room_number else "rooms"): data},
        )

    async def get_guest_info(self, integration_id: UUID, guest_id: str) -> dict:
        return await self._call(
            integration_id,
            "get_guest_info",
            "GET",
            lambda p: f"{p.endpoint('guests')}/{guest_id}",
            shape=lambda data: {"success": True, "guest": data},
        )

    async def update_guest_info(self, integration_id: UUID, guest_id: str, guest: dict) -> dict:
        def _body() -> dict:
            if not isinstance(guest, dict) or not guest:
                raise ValidationError("Guest update must be a non-empty object", field="guest")
            return guest

        return await self._call(
            integration_id,
            "update_guest_info",
            "PUT",
            lambda p: f"{p.endpoint('guests')}/{guest_id}",
            build_body=_body,
        )

    def test_steps(self):
        return [
            ("reservation_sync", "reservation_count", self._fetch_reservations),
            ("room_status", "room_count", self._fetch_rooms),
        ]
