"""Entitlement Record Store - per-tenant subscription + usage state.

Key Principles:
1. Atomic writes only: every mutation is a single find_one_and_update / update_one
   with update operators. Never read-then-write.
2. Lazy creation: the first read upserts the default record
   {is_subscribed: False, usage_count: 0}.
3. Merge semantics: set_subscription only touches the fields it is given, so
   billing_customer_ref survives cancellations.
4. Reverse index: billing_customer_ref -> tenant_id pairs are kept in their
   own collection so cancellations never scan entitlements. Re-linking a tenant
   to a new customer drops its older rows, and a downgrade only applies while
   the record still carries the cancelled customer.
5. Push: every committed write publishes the new record to subscribers.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from smarthire.config import ENTITLEMENT_TRACKER
from smarthire.database import ENTITLEMENTS, BILLING_CUSTOMER_INDEX
from smarthire.models import EntitlementRecord
from smarthire.services.event_broker import EventBroker, entitlement_topic

logger = logging.getLogger(__name__)


class EntitlementStore:
    """Durable entitlement state keyed by (tenant_id, tracker)."""

    def __init__(self, db, broker: EventBroker, tracker: str = ENTITLEMENT_TRACKER):
        self.db = db
        self.broker = broker
        self.tracker = tracker

    @property
    def _entitlements(self):
        return self.db[ENTITLEMENTS]

    @property
    def _customer_index(self):
        return self.db[BILLING_CUSTOMER_INDEX]

    def _key(self, tenant_id: str) -> Dict[str, str]:
        return {"tenant_id": tenant_id, "tracker": self.tracker}

    async def _upsert(self, tenant_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
        """
        Atomic upsert returning the post-write document.

        Two first-time upserts racing on the unique (tenant_id, tracker) index can
        make the loser fail with a duplicate key; the document exists by then, so
        one retry applies the update to it.
        """
        for attempt in range(2):
            try:
                return await self._entitlements.find_one_and_update(
                    self._key(tenant_id),
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                    projection={"_id": 0},
                )
            except DuplicateKeyError:
                if attempt:
                    raise
                logger.info(f"Concurrent entitlement upsert for {tenant_id} - retrying")

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, tenant_id: str) -> EntitlementRecord:
        """Return the tenant's record, creating the default one on first access."""
        now = datetime.now(timezone.utc)
        doc = await self._upsert(
            tenant_id,
            {
                "$setOnInsert": {
                    "is_subscribed": False,
                    "usage_count": 0,
                    "created_at": now,
                    "updated_at": now,
                }
            },
        )
        return EntitlementRecord.from_document(doc)

    async def find(self, tenant_id: str) -> Optional[EntitlementRecord]:
        """Read without creating. None when the tenant has no record yet."""
        doc = await self._entitlements.find_one(self._key(tenant_id), {"_id": 0})
        return EntitlementRecord.from_document(doc) if doc else None

    async def find_tenants_by_billing_customer(self, billing_customer_ref: str) -> List[str]:
        """Tenants linked to a Stripe customer (reference reuse gives several)."""
        cursor = self._customer_index.find(
            {"billing_customer_ref": billing_customer_ref},
            {"_id": 0, "tenant_id": 1},
        )
        docs = await cursor.to_list(length=1000)
        tenant_ids: List[str] = []
        for doc in docs:
            tenant_id = doc.get("tenant_id")
            if tenant_id and tenant_id not in tenant_ids:
                tenant_ids.append(tenant_id)
        return tenant_ids

    # =========================================================================
    # Writes
    # =========================================================================

    async def set_subscription(
        self,
        tenant_id: str,
        is_subscribed: bool,
        billing_customer_ref: Optional[str] = None,
    ) -> None:
        """
        Idempotent upsert of the subscription fields.

        Args:
            tenant_id: Tenant whose record changes
            is_subscribed: New subscription flag
            billing_customer_ref: Stripe customer id; omitted = keep the stored one
        """
        now = datetime.now(timezone.utc)

        if billing_customer_ref:
            # Index first: a dangling index row is harmless, a missing one would
            # hide the tenant from a later cancellation.
            await self._customer_index.update_one(
                {"billing_customer_ref": billing_customer_ref, "tenant_id": tenant_id},
                {"$set": {"updated_at": now}, "$setOnInsert": {"created_at": now}},
                upsert=True,
            )

        fields: Dict[str, Any] = {"is_subscribed": is_subscribed, "updated_at": now}
        if billing_customer_ref:
            fields["billing_customer_ref"] = billing_customer_ref

        doc = await self._upsert(
            tenant_id,
            {"$set": fields, "$setOnInsert": {"usage_count": 0, "created_at": now}},
        )
        self._publish(doc)

        if billing_customer_ref:
            # The tenant now belongs to this customer only
            await self._customer_index.delete_many(
                {"tenant_id": tenant_id, "billing_customer_ref": {"$ne": billing_customer_ref}}
            )

    async def cancel_subscription(self, tenant_id: str, billing_customer_ref: str) -> bool:
        """
        Downgrade tenant_id only while its record is still linked to billing_customer_ref.

        Returns:
            False when the record is missing or belongs to another customer now.
        """
        now = datetime.now(timezone.utc)
        doc = await self._entitlements.find_one_and_update(
            {**self._key(tenant_id), "billing_customer_ref": billing_customer_ref},
            {"$set": {"is_subscribed": False, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
            projection={"_id": 0},
        )
        if doc is None:
            return False
        self._publish(doc)
        return True

    async def increment_usage(self, tenant_id: str) -> int:
        """Atomically add one to usage_count. Returns the new count."""
        now = datetime.now(timezone.utc)
        doc = await self._upsert(
            tenant_id,
            {
                "$inc": {"usage_count": 1},
                "$set": {"updated_at": now},
                "$setOnInsert": {"is_subscribed": False, "created_at": now},
            },
        )
        self._publish(doc)
        return int(doc.get("usage_count", 0))

    # =========================================================================
    # Push updates
    # =========================================================================

    async def subscribe(self, tenant_id: str) -> asyncio.Queue:
        """Start receiving snapshots for tenant_id. The current record is queued first."""
        q = self.broker.subscribe(entitlement_topic(tenant_id))
        try:
            record = await self.get(tenant_id)
        except Exception:
            self.unsubscribe(tenant_id, q)
            raise
        if q.empty():
            q.put_nowait(record)
        return q

    def unsubscribe(self, tenant_id: str, q: asyncio.Queue) -> None:
        self.broker.unsubscribe(entitlement_topic(tenant_id), q)

    def _publish(self, doc: Optional[Dict[str, Any]]) -> None:
        if not doc:
            return
        record = EntitlementRecord.from_document(doc)
        self.broker.publish(entitlement_topic(record.tenant_id), record)
