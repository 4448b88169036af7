"""Application context.

Every component is constructed once at process start (FastAPI lifespan) and
handed around explicitly; routes reach it through the get_context dependency.
"""
import logging
from typing import Optional

from fastapi import Request

from smarthire.config import Settings
from smarthire.services.analysis_client import AnalysisClient
from smarthire.services.analytics_service import AnalyticsService
from smarthire.services.billing_portal_service import BillingPortalService
from smarthire.services.entitlement_store import EntitlementStore
from smarthire.services.event_broker import EventBroker
from smarthire.services.report_service import ReportService
from smarthire.services.stripe_webhook_service import StripeWebhookService
from smarthire.services.usage_service import UsageService
from smarthire.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class AppContext:
    def __init__(
        self,
        settings: Settings,
        db,
        analysis_client: Optional[AnalysisClient] = None,
        broker: Optional[EventBroker] = None,
    ):
        self.settings = settings
        self.db = db
        self.broker = broker or EventBroker()

        self.store = EntitlementStore(db, self.broker)
        self.usage = UsageService(self.store)
        self.webhooks = StripeWebhookService(db, self.store, settings.stripe_webhook_secret)
        self.portal = BillingPortalService(self.store, settings)
        self.reports = ReportService(db, self.broker)
        self.analytics = AnalyticsService(db, self.reports)
        self.analysis = analysis_client or AnalysisClient(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            timeout=settings.analysis_timeout_seconds,
        )
        self.rate_limiter = RateLimiter(
            max_attempts=settings.rate_limit_max_requests,
            window_minutes=settings.rate_limit_window_minutes,
        )


def build_context(settings: Settings, db) -> AppContext:
    ctx = AppContext(settings, db)
    logger.info(
        "SmartHire context ready: free_limit=%s stripe_mode=%s gate_on_analyze=%s",
        settings.free_limit, settings.stripe_mode(), settings.enforce_gate_on_analyze,
    )
    return ctx


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx
