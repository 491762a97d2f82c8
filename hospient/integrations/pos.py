"""
POS Integration Adapter: restaurant point-of-sale platforms.

Operations:
    sync_menus          pull the POS menu and upsert menu_items
    post_guest_check    push a guest check (order) to the POS
    get_check_status    read one check back
    void_check          void a check
    get_menu_categories list POS menu categories
    test_integration    connectivity check + menu read
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from hospient.integrations.base import IntegrationAdapter, entity_id, register_adapter
from hospient.integrations.orchestrator import SyncPlan
from hospient.integrations.payloads import GuestCheck, parse_payload, transform_menu_item
from hospient.integrations.resolver import ConnectionProfile

logger = logging.getLogger(__name__)


@register_adapter("pos")
class POSAdapter(IntegrationAdapter):
    actions = (
        "sync_menus",
        "post_guest_check",
        "get_check_status",
        "void_check",
        "get_menu_categories",
        "test_integration",
    )

    async def sync_menus(self, integration_id: UUID) -> dict:
        plan = SyncPlan(
            operation_name="sync_menus",
            fetch=self._fetch_menus,
            transform=transform_menu_item,
            request_data={"endpoint": "menus"},
        )
        return await self._sync(integration_id, plan)

    async def _fetch_menus(self, profile: ConnectionProfile) -> Any:
        return await self._fetch_list(profile, "menus")

    async def post_guest_check(self, integration_id: UUID, check: dict) -> dict:
        return await self._call(
            integration_id,
            "post_guest_check",
            "POST",
            lambda p: p.endpoint("checks"),
            build_body=lambda: parse_payload(GuestCheck, check).to_remote(),
            shape=lambda data: {"success": True, "pos_check_id": entity_id(data), "response": data},
        )

    async def get_check_status(self, integration_id: UUID, check_id: str) -> dict:
        return await self._call(
            integration_id,
            "get_check_status",
            "GET",
            lambda p: f"{p.endpoint('checks')}/{check_id}",
            shape=lambda data: {
                "success": True,
                "status": data.get("status") if isinstance(data, dict) else None,
                "data": data,
            },
        )

    async def void_check(self, integration_id: UUID, check_id: str, reason: str = "Guest request") -> dict:
        return await self._call(
            integration_id,
            "void_check",
            "POST",
            lambda p: f"{p.endpoint('checks')}/{check_id}/void",
            build_body=lambda: {"reason": reason},
        )

    async def get_menu_categories(self, integration_id: UUID) -> dict:
        return await self._call(
            integration_id,
            "get_menu_categories",
            "GET",
            lambda p: p.endpoint("categories"),
            shape=lambda data: {"success": True, "categories": data},
        )

    def test_steps(self):
        return [("menu_sync", "menu_count", self._fetch_menus)]
