"""
Guest account collector: tenant user/guest counts plus every guest account
with its sign-in activity.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from .base import BaseCollector, CollectorResult

logger = logging.getLogger("guest_mau_engine.collectors.guests")

CATEGORY = "guests"


class GuestCollector(BaseCollector):
    name = "guests"
    description = "Guest accounts, sign-in activity, tenant user counts"

    async def _count(self, result: CollectorResult, key: str, label: str, query: Callable[[], Awaitable[int]]):
        # Counts only feed the header figures; a failure leaves them unknown.
        try:
            result.add_data(key, await query())
        except Exception as e:
            result.add_issue("retrieval", CATEGORY, f"{label} count failed: {e}")
        result.record_query()

    async def collect(self, result: CollectorResult):
        await self._count(result, "total_users", "Total user", self.surface.count_users)
        await self._count(result, "guest_count", "Guest", self.surface.count_guests)

        try:
            accounts = await self.surface.list_guest_accounts()
        except Exception as e:
            result.add_issue("retrieval", CATEGORY, f"Guest enumeration failed: {e}")
            accounts = []
        result.record_query()

        # Preview directories have been seen returning members despite the $filter.
        guests = [a for a in accounts if a.get("userType", "Guest") == "Guest"]
        result.add_data("guests", guests)
        logger.info(f"[guests] {len(guests)} guest accounts enumerated")
