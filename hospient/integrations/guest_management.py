"""
Guest Management Integration Adapter: guest apps, feedback and messaging platforms.

Feedback, chat messages and notifications are pushed and read through the
integration; guest profiles are reconciled into the local guests table.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from hospient.integrations.base import IntegrationAdapter, entity_id, register_adapter
from hospient.integrations.errors import ValidationError
from hospient.integrations.orchestrator import SyncPlan
from hospient.integrations.payloads import (
    ChatMessage,
    Feedback,
    ListFilters,
    Notification,
    parse_payload,
    transform_guest,
)
from hospient.integrations.resolver import ConnectionProfile

logger = logging.getLogger(__name__)

_FEEDBACK_FILTERS = {"guest_id", "hotel_id", "rating", "category", "start_date", "end_date", "limit", "offset"}
_CHAT_FILTERS = {"guest_id", "hotel_id", "room_number", "sender_type", "start_date", "end_date", "limit", "offset"}
_NOTIFICATION_FILTERS = {
    "guest_id",
    "hotel_id",
    "category",
    "priority",
    "notification_type",
    "start_date",
    "end_date",
    "limit",
    "offset",
}


def _filter_params(filters: dict | None, allowed: set[str]) -> dict:
    params = parse_payload(ListFilters, filters or {}).to_remote()
    return {k: v for k, v in params.items() if k in allowed}


def _listing(key: str):
    def shape(data: Any) -> dict:
        if not isinstance(data, list):
            raise ValidationError(f"Invalid response format for {key}: expected a list")
        return {"success": True, key: data, "total": len(data)}

    return shape


@register_adapter("guest_management")
class GuestManagementAdapter(IntegrationAdapter):
    actions = (
        "sync_guest_data",
        "post_feedback",
        "get_feedback",
        "post_chat_message",
        "get_chat_messages",
        "post_notification",
        "get_notifications",
        "update_notification_status",
        "get_guest_preferences",
        "update_guest_preferences",
        "test_integration",
    )

    async def sync_guest_data(self, integration_id: UUID, guest_id: str | None = None) -> dict:
        async def _fetch(profile: ConnectionProfile) -> Any:
            if guest_id is None:
                return await self._fetch_list(profile, "guests")
            result = await self.executor.execute("GET", f"{profile.endpoint('guests')}/{guest_id}", profile)
            # A single guest lookup returns one object.
            return [result.data] if isinstance(result.data, dict) else result.data

        plan = SyncPlan(
            operation_name="sync_guest_data",
            fetch=_fetch,
            transform=transform_guest,
            request_data={"endpoint": "guests", "guest_id": guest_id},
        )
        return await self._sync(integration_id, plan)

    async def post_feedback(self, integration_id: UUID, feedback: dict) -> dict:
        return await self._call(
            integration_id,
            "post_feedback",
            "POST",
            lambda p: p.endpoint("feedback"),
            build_body=lambda: parse_payload(Feedback, feedback).to_remote(),
            shape=lambda data: {"success": True, "external_feedback_id": entity_id(data), "response": data},
        )

    async def get_feedback(self, integration_id: UUID, filters: dict | None = None) -> dict:
        return await self._list(integration_id, "get_feedback", "feedback", filters, _FEEDBACK_FILTERS, "feedback")

    async def post_chat_message(self, integration_id: UUID, message: dict) -> dict:
        return await self._call(
            integration_id,
            "post_chat_message",
            "POST",
            lambda p: p.endpoint("chat"),
            build_body=lambda: parse_payload(ChatMessage, message).to_remote(),
            shape=lambda data: {"success": True, "external_chat_id": entity_id(data), "response": data},
        )

    async def get_chat_messages(self, integration_id: UUID, filters: dict | None = None) -> dict:
        return await self._list(integration_id, "get_chat_messages", "chat", filters, _CHAT_FILTERS, "messages")

    async def post_notification(self, integration_id: UUID, notification: dict) -> dict:
        return await self._call(
            integration_id,
            "post_notification",
            "POST",
            lambda p: p.endpoint("notifications"),
            build_body=lambda: parse_payload(Notification, notification).to_remote(),
            shape=lambda data: {"success": True, "external_notification_id": entity_id(data), "response": data},
        )

    async def get_notifications(self, integration_id: UUID, filters: dict | None = None) -> dict:
        return await self._list(
            integration_id, "get_notifications", "notifications", filters, _NOTIFICATION_FILTERS, "notifications"
        )

    async def update_notification_status(self, integration_id: UUID, notification_id: str, status: str) -> dict:
        def _body() -> dict:
            if not status:
                raise ValidationError("Notification status is required", field="status")
            return {"status": status}

        return await self._call(
            integration_id,
            "update_notification_status",
            "PUT",
            lambda p: f"{p.endpoint('notifications')}/{notification_id}/status",
            build_body=_body,
        )

    async def get_guest_preferences(self, integration_id: UUID, guest_id: str) -> dict:
        return await self._call(
            integration_id,
            "get_guest_preferences",
            "GET",
            lambda p: f"{p.endpoint('guests')}/{guest_id}/preferences",
            shape=lambda data: {"success": True, "preferences": data},
        )

    async def update_guest_preferences(self, integration_id: UUID, guest_id: str, preferences: dict) -> dict:
        def _body() -> dict:
            if not isinstance(preferences, dict):
                raise ValidationError("Preferences must be an object", field="preferences")
            return preferences

        return await self._call(
            integration_id,
            "update_guest_preferences",
            "PUT",
            lambda p: f"{p.endpoint('guests')}/{guest_id}/preferences",
            build_body=_body,
        )

    async def _list(
        self,
        integration_id: UUID,
        operation_name: str,
        endpoint: str,
        filters: dict | None,
        allowed: set[str],
        key: str,
    ) -> dict:
        return await self._call(
            integration_id,
            operation_name,
            "GET",
            lambda p: p.endpoint(endpoint),
            build_params=lambda: _filter_params(filters, allowed),
            shape=_listing(key),
        )

    def test_steps(self):
        async def _feedback(profile: ConnectionProfile) -> Any:
            return await self._fetch_list(profile, "feedback", params={"limit": 1})

        async def _chat(profile: ConnectionProfile) -> Any:
            return await self._fetch_list(profile, "chat", params={"limit": 1})

        async def _notifications(profile: ConnectionProfile) -> Any:
            return await self._fetch_list(profile, "notifications", params={"limit": 1})

        return [
            ("feedback", "feedback_count", _feedback),
            ("chat", "chat_count", _chat),
            ("notifications", "notification_count", _notifications),
        ]
