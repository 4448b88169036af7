"""SmartHire Routes"""

from .analyze import router as analyze_router
from .analytics import router as analytics_router
from .billing import router as billing_router
from .reports import router as reports_router
from .webhooks import router as webhooks_router

__all__ = [
    "analyze_router",
    "analytics_router",
    "billing_router",
    "reports_router",
    "webhooks_router",
]
