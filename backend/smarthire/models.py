from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from smarthire.config import ENTITLEMENT_TRACKER
from smarthire.errors import QuotaExceeded

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class UserRole(str, Enum):
    RECRUITER = "RECRUITER"
    ADMIN = "ADMIN"

class BillingEventType(str, Enum):
    SUBSCRIPTION_ACTIVATED = "SUBSCRIPTION_ACTIVATED"
    SUBSCRIPTION_CANCELLED = "SUBSCRIPTION_CANCELLED"
    IGNORED = "IGNORED"

class EventStatus(str, Enum):
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"

class GateReason(str, Enum):
    OPERATOR = "OPERATOR"
    SUBSCRIBED = "SUBSCRIBED"
    FREE_TIER = "FREE_TIER"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

class FitLevel(str, Enum):
    EXCELLENT_FIT = "EXCELLENT FIT"
    GOOD_FIT = "GOOD FIT"
    AVERAGE = "AVERAGE"
    POOR_FIT = "POOR FIT"

# Stripe event type -> lifecycle transition
STRIPE_EVENT_TYPES = {
    "checkout.session.completed": BillingEventType.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.deleted": BillingEventType.SUBSCRIPTION_CANCELLED,
}

# ============================================================================
# ENTITLEMENT
# ============================================================================

class EntitlementRecord(BaseModel):
    """Per-tenant subscription flag, Stripe linkage and usage counter."""
    model_config = ConfigDict(extra="ignore")

    tenant_id: str
    tracker: str = ENTITLEMENT_TRACKER
    is_subscribed: bool = False
    billing_customer_ref: Optional[str] = None
    usage_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "EntitlementRecord":
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["is_subscribed"] = bool(data.get("is_subscribed", False))
        data["usage_count"] = max(0, int(data.get("usage_count") or 0))
        return cls(**data)


class BillingEvent(BaseModel):
    """Verified Stripe event reduced to what the state machine needs."""
    event_id: str
    type: BillingEventType
    provider_type: str
    tenant_id: Optional[str] = None
    billing_customer_ref: Optional[str] = None
    livemode: bool = False


class WebhookResult(BaseModel):
    event_id: str
    event_type: str
    status: str
    tenant_ids: List[str] = []
    failed_tenant_ids: List[str] = []

    @property
    def ok(self) -> bool:
        return not self.failed_tenant_ids and self.status != EventStatus.FAILED.value

# ============================================================================
# ACCESS GATE
# ============================================================================

class Principal(BaseModel):
    """Authenticated caller (decoded from the bearer token)."""
    tenant_id: str
    role: UserRole = UserRole.RECRUITER
    email: Optional[str] = None

    @property
    def is_operator(self) -> bool:
        return self.role == UserRole.ADMIN


class GateDecision(BaseModel):
    allowed: bool
    reason: GateReason
    usage_count: int = 0
    free_limit: int = 0
    remaining: Optional[int] = None  # None = unmetered

    @property
    def unmetered(self) -> bool:
        return self.allowed and self.remaining is None

    def raise_for_denial(self) -> None:
        if not self.allowed:
            raise QuotaExceeded(self.usage_count, self.free_limit)

# ============================================================================
# ANALYTICS
# ============================================================================

class ReportStats(BaseModel):
    total_reports: int = 0
    avg_score: float = 0.0
    avg_experience: float = 0.0
    role_counts: Dict[str, int] = {}
    fit_counts: Dict[str, int] = Field(default_factory=lambda: {level.value: 0 for level in FitLevel})
    skill_gap_counts: Dict[str, int] = {}
    location_counts: Dict[str, int] = {}
    salary_data_count: int = 0


class RegistryEntry(BaseModel):
    user_id: str
    name: str = ""
    designation: str = ""
    company: str = ""
    email: str = ""
    phone: Optional[str] = None
    role: str = UserRole.RECRUITER.value
    registered_via: Optional[str] = None
    created_at: Optional[datetime] = None

# ============================================================================
# REQUEST BODIES
# ============================================================================

class PortalSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(alias="tenantId")


class AnalyzeRequest(BaseModel):
    """Opaque Gemini request; forwarded as-is."""
    model_config = ConfigDict(extra="allow")

    contents: List[Dict[str, Any]]
    systemInstruction: Optional[Dict[str, Any]] = None
    generationConfig: Optional[Dict[str, Any]] = None


class SaveReportRequest(BaseModel):
    report: Dict[str, Any]
    role: Optional[str] = None
