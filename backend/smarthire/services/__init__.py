"""SmartHire Services"""

from .access_gate import can_proceed
from .analysis_client import AnalysisClient, extract_report_text
from .analytics_service import AnalyticsService, aggregate_reports, build_registry, registry_csv, top_n
from .billing_portal_service import BillingPortalService
from .entitlement_store import EntitlementStore
from .event_broker import EventBroker
from .report_service import ReportService
from .stripe_webhook_service import StripeWebhookService
from .usage_service import UsageService

__all__ = [
    "can_proceed",
    "AnalysisClient",
    "extract_report_text",
    "AnalyticsService",
    "aggregate_reports",
    "build_registry",
    "registry_csv",
    "top_n",
    "BillingPortalService",
    "EntitlementStore",
    "EventBroker",
    "ReportService",
    "StripeWebhookService",
    "UsageService",
]
