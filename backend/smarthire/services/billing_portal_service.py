"""Billing Portal Service - Stripe self-service portal sessions.

Subscribers manage or cancel their plan in Stripe's hosted portal. Cancelling
there eventually arrives back as customer.subscription.deleted.
"""
import logging

import stripe

from smarthire.config import Settings
from smarthire.errors import BillingProviderError, EntitlementNotFound
from smarthire.services.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)


class BillingPortalService:
    def __init__(self, store: EntitlementStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def create_portal_session(self, tenant_id: str) -> str:
        """
        Create a portal session for the tenant's linked Stripe customer.

        Returns:
            Portal URL

        Raises:
            EntitlementNotFound: tenant was never linked to a Stripe customer
            BillingProviderError: Stripe not configured or the API call failed
        """
        record = await self.store.find(tenant_id)
        if not record or not record.billing_customer_ref:
            logger.info(f"Portal requested for tenant {tenant_id} with no linked customer")
            raise EntitlementNotFound()

        if not self.settings.stripe_secret_key:
            logger.error("STRIPE_SECRET_KEY not configured - cannot create portal session")
            raise BillingProviderError("Stripe is not configured")

        try:
            session = stripe.billing_portal.Session.create(
                api_key=self.settings.stripe_secret_key,
                customer=record.billing_customer_ref,
                return_url=self.settings.stripe_portal_return_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create billing portal for tenant {tenant_id}: {e}")
            raise BillingProviderError(getattr(e, "user_message", None) or str(e))

        logger.info(f"Billing portal session created for tenant {tenant_id}")
        return session.url
