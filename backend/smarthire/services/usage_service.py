"""Usage Counter Service - meters billable screenings.

record_usage() is called exactly once per successfully completed analysis,
after it succeeds. A failed or abandoned analysis never reaches it, so it never
consumes quota.
"""
import logging

from smarthire.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)


class UsageService:
    def __init__(self, store: EntitlementStore):
        self.store = store

    async def record_usage(self, tenant_id: str) -> int:
        """Count one completed billable operation. Returns the tenant's new total."""
        count = await self.store.increment_usage(tenant_id)
        logger.info(f"[USAGE] tenant={tenant_id} usage_count={count}")
        return count
