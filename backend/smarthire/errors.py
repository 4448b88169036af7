"""Error taxonomy for the entitlement core.

Routes translate these into HTTP responses; services raise them and never
build responses themselves.
"""
from typing import List, Optional


class SmartHireError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 500
    user_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class InvalidSignature(SmartHireError):
    """Webhook payload failed Stripe signature verification."""

    status_code = 400
    user_message = "Invalid signature"


class QuotaExceeded(SmartHireError):
    """Free-tier quota used up. Not a fault: the client shows an upgrade prompt."""

    status_code = 402
    user_message = "Free screening limit reached. Upgrade to continue."

    def __init__(self, usage_count: int, free_limit: int):
        super().__init__()
        self.usage_count = usage_count
        self.free_limit = free_limit


class EntitlementNotFound(SmartHireError):
    """No Stripe customer is linked to the tenant."""

    status_code = 404
    user_message = "No subscription found for this user."


class BillingProviderError(SmartHireError):
    """Stripe rejected or failed an API call made on the tenant's behalf."""

    status_code = 500
    user_message = "Billing provider request failed."


class TransientStoreFailure(SmartHireError):
    """A store write still failed after its retries."""

    status_code = 500
    user_message = "Temporary storage failure. Please retry."

    def __init__(self, message: Optional[str] = None, tenant_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.tenant_ids = tenant_ids or []


class UpstreamAnalysisFailure(SmartHireError):
    """The AI analysis call failed after all attempts. Quota is not consumed."""

    status_code = 502
    user_message = "Analysis failed. Please try again."


class RateLimitExceeded(SmartHireError):
    """Too many billable requests from one client address."""

    status_code = 429
    user_message = "Too many requests, please try again later."

    def __init__(self, retry_after_seconds: int = 0):
        super().__init__()
        self.retry_after_seconds = retry_after_seconds
