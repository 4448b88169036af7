"""Stripe Webhook Service - subscription state machine with idempotency.

Per-tenant states:

    FREE --SUBSCRIPTION_ACTIVATED--> ACTIVE --SUBSCRIPTION_CANCELLED--> FREE

Redelivery of either event leaves the state unchanged (both writes are plain
overwrites), so at-least-once delivery from Stripe is safe.

Key Principles:
1. Signature verification runs on the raw request bytes, before any parsing
   and before any store access.
2. Idempotency: every event id is recorded; PROCESSED ids are skipped.
3. Activation needs the tenant id threaded through Checkout as
   client_reference_id; Stripe echoes it back on checkout.session.completed.
4. Cancellation only carries the Stripe customer, so tenants are resolved
   through the billing customer index and downgraded one by one. One tenant
   failing never blocks the others; successful downgrades are never undone.
5. Unknown event types are accepted and ignored.

Events Handled:
- checkout.session.completed       -> SUBSCRIPTION_ACTIVATED
- customer.subscription.deleted    -> SUBSCRIPTION_CANCELLED
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import stripe
from pymongo.errors import DuplicateKeyError, PyMongoError

from smarthire.database import BILLING_EVENTS
from smarthire.errors import InvalidSignature, TransientStoreFailure
from smarthire.models import (
    BillingEvent,
    BillingEventType,
    EventStatus,
    STRIPE_EVENT_TYPES,
    WebhookResult,
)
from smarthire.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300
MAX_WRITE_ATTEMPTS = 3
INITIAL_WRITE_BACKOFF_SECONDS = 0.5


def _customer_id(value: Any) -> Optional[str]:
    """Stripe sends either the id string or an expanded customer object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def parse_billing_event(data: Dict[str, Any]) -> BillingEvent:
    """Reduce a verified Stripe event envelope to a BillingEvent."""
    provider_type = str(data.get("type") or "")
    obj = (data.get("data") or {}).get("object") or {}
    event_type = STRIPE_EVENT_TYPES.get(provider_type, BillingEventType.IGNORED)

    tenant_id = None
    if event_type == BillingEventType.SUBSCRIPTION_ACTIVATED:
        tenant_id = obj.get("client_reference_id") or None

    return BillingEvent(
        event_id=str(data.get("id") or ""),
        type=event_type,
        provider_type=provider_type,
        tenant_id=tenant_id,
        billing_customer_ref=_customer_id(obj.get("customer")),
        livemode=bool(data.get("livemode", False)),
    )


class StripeWebhookService:
    """Verifies, deduplicates and applies Stripe lifecycle events."""

    def __init__(
        self,
        db,
        store: EntitlementStore,
        webhook_secret: str,
        tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
        max_write_attempts: int = MAX_WRITE_ATTEMPTS,
        initial_backoff: float = INITIAL_WRITE_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.store = store
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.max_write_attempts = max_write_attempts
        self.initial_backoff = initial_backoff
        self._sleep = sleep

    @property
    def _events(self):
        return self.db[BILLING_EVENTS]

    # =========================================================================
    # Verification
    # =========================================================================

    def verify(self, payload: bytes, signature: Optional[str]) -> BillingEvent:
        """
        Check the Stripe-Signature header against the raw body.

        Raises:
            InvalidSignature: secret/header missing, signature mismatch,
                timestamp outside tolerance, or body not JSON
        """
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured - rejecting webhook")
            raise InvalidSignature("Webhook secret not configured")
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidSignature("Invalid payload")

        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.error("Webhook signature verification failed: %s", e)
            raise InvalidSignature(str(e))

        try:
            data = json.loads(body)
        except ValueError as e:
            logger.error(f"Webhook parse error: {e}")
            raise InvalidSignature("Invalid payload")
        if not isinstance(data, dict):
            raise InvalidSignature("Invalid payload")

        return parse_billing_event(data)

    # =========================================================================
    # Event Processing Entry Point
    # =========================================================================

    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Main webhook entry point.

        Returns:
            WebhookResult; result.ok is False when some tenant write failed and
            the delivery should be retried by Stripe.

        Raises:
            InvalidSignature: nothing was read or written
        """
        event = self.verify(payload, signature)
        logger.info(
            "WEBHOOK_RECEIVED event_id=%s event_type=%s livemode=%s tenant_id=%s customer=%s",
            event.event_id, event.provider_type, event.livemode, event.tenant_id, event.billing_customer_ref,
        )

        if event.type == BillingEventType.IGNORED:
            logger.info(f"Ignoring unhandled event type: {event.provider_type}")
            return WebhookResult(event_id=event.event_id, event_type=event.provider_type, status="IGNORED")

        if not await self._claim(event):
            logger.info(f"Event {event.event_id} already processed - skipping")
            return WebhookResult(event_id=event.event_id, event_type=event.provider_type, status="DUPLICATE")

        try:
            tenant_ids, failed = await self._handle_event(event)
        except Exception as e:
            logger.error(
                "WEBHOOK_PROCESSING_FAILED event_id=%s event_type=%s error=%s",
                event.event_id, event.provider_type, str(e),
            )
            await self._finish(event, EventStatus.FAILED, error=str(e))
            raise

        if failed:
            logger.error(
                "WEBHOOK_PARTIAL_FAILURE event_id=%s downgraded=%s failed=%s",
                event.event_id, tenant_ids, failed,
            )
            await self._finish(event, EventStatus.FAILED, tenant_ids=tenant_ids, error=f"failed tenants: {failed}")
            return WebhookResult(
                event_id=event.event_id,
                event_type=event.provider_type,
                status=EventStatus.FAILED.value,
                tenant_ids=tenant_ids,
                failed_tenant_ids=failed,
            )

        await self._finish(event, EventStatus.PROCESSED, tenant_ids=tenant_ids)
        logger.info(
            "WEBHOOK_PROCESSED_OK event_id=%s event_type=%s tenants=%s",
            event.event_id, event.provider_type, tenant_ids,
        )
        return WebhookResult(
            event_id=event.event_id,
            event_type=event.provider_type,
            status=EventStatus.PROCESSED.value,
            tenant_ids=tenant_ids,
        )

    async def _claim(self, event: BillingEvent) -> bool:
        """Record the event as PROCESSING. False when it was already PROCESSED."""
        if not event.event_id:
            # Nothing to dedupe on; state machine writes are idempotent anyway
            return True

        existing = await self._events.find_one({"event_id": event.event_id}, {"_id": 0})
        if existing and existing.get("status") == EventStatus.PROCESSED.value:
            return False

        record = {
            "event_id": event.event_id,
            "type": event.provider_type,
            "status": EventStatus.PROCESSING.value,
            "received_at": datetime.now(timezone.utc),
            "processed_at": None,
            "error": None,
            "billing_customer_ref": event.billing_customer_ref,
            "tenant_ids": [],
        }
        if existing:
            await self._events.update_one({"event_id": event.event_id}, {"$set": record})
            return True
        try:
            await self._events.insert_one(record)
        except DuplicateKeyError:
            logger.info(f"Event {event.event_id} duplicate insert (race) - skipping")
            return False
        return True

    async def _finish(
        self,
        event: BillingEvent,
        status: EventStatus,
        tenant_ids: Optional[List[str]] = None,
        error: Optional[str] = None,
    ) -> None:
        if not event.event_id:
            return
        try:
            await self._events.update_one(
                {"event_id": event.event_id},
                {
                    "$set": {
                        "status": status.value,
                        "processed_at": datetime.now(timezone.utc),
                        "tenant_ids": tenant_ids or [],
                        "error": error,
                    }
                },
            )
        except PyMongoError as e:
            # Entitlement writes already landed; a stale PROCESSING row only means
            # a redelivery is applied again, which is idempotent.
            logger.warning(f"Could not record outcome for event {event.event_id}: {e}")

    # =========================================================================
    # Event Handlers
    # =========================================================================

    async def _handle_event(self, event: BillingEvent) -> Tuple[List[str], List[str]]:
        """Route event to its handler. Returns (applied tenant ids, failed tenant ids)."""
        if event.type == BillingEventType.SUBSCRIPTION_ACTIVATED:
            return await self.on_activated(event), []
        if event.type == BillingEventType.SUBSCRIPTION_CANCELLED:
            return await self.on_cancelled(event)
        return [], []

    async def on_activated(self, event: BillingEvent) -> List[str]:
        """Unlock the tenant named by client_reference_id and link its Stripe customer."""
        tenant_id = event.tenant_id
        if not tenant_id:
            logger.warning(
                f"checkout.session.completed without client_reference_id (event {event.event_id}) - ignored"
            )
            return []
        if not event.billing_customer_ref:
            logger.warning(f"Activation for tenant {tenant_id} carries no Stripe customer")

        await self._write_with_retry(
            tenant_id,
            lambda: self.store.set_subscription(tenant_id, True, event.billing_customer_ref),
        )
        logger.info(f"SmartHire unlocked: {tenant_id} -> {event.billing_customer_ref}")
        return [tenant_id]

    async def on_cancelled(self, event: BillingEvent) -> Tuple[List[str], List[str]]:
        """Downgrade every tenant linked to the cancelled Stripe customer."""
        customer = event.billing_customer_ref
        if not customer:
            logger.warning(f"customer.subscription.deleted without customer (event {event.event_id}) - ignored")
            return [], []

        tenant_ids = await self.store.find_tenants_by_billing_customer(customer)
        if not tenant_ids:
            logger.warning(f"Cancellation for unknown customer {customer} - no entitlement records matched")
            return [], []

        downgraded: List[str] = []
        failed: List[str] = []
        for tenant_id in tenant_ids:
            try:
                matched = await self._write_with_retry(
                    tenant_id,
                    lambda tid=tenant_id: self.store.cancel_subscription(tid, customer),
                )
            except TransientStoreFailure as e:
                failed.append(tenant_id)
                logger.error(f"Downgrade failed for tenant {tenant_id} (customer {customer}): {e}")
                continue
            if not matched:
                logger.info(f"Tenant {tenant_id} is no longer linked to customer {customer} - left unchanged")
                continue
            downgraded.append(tenant_id)
            logger.info(f"Subscription cancelled: {tenant_id} (customer {customer}) downgraded to free")
        return downgraded, failed

    async def _write_with_retry(self, tenant_id: str, write: Callable[[], Awaitable[Any]]) -> Any:
        """Run one single-document write with exponential backoff on store errors. Returns its result."""
        for attempt in range(self.max_write_attempts):
            try:
                return await write()
            except PyMongoError as e:
                if attempt >= self.max_write_attempts - 1:
                    raise TransientStoreFailure(
                        f"Entitlement write failed after {self.max_write_attempts} attempts: {e}",
                        tenant_ids=[tenant_id],
                    ) from e
                backoff = self.initial_backoff * (2 ** attempt)
                logger.warning(
                    f"Entitlement write for {tenant_id} failed (attempt {attempt + 1}): {e} - retry in {backoff}s"
                )
                await self._sleep(backoff)
