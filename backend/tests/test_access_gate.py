"""
Access gate: operator bypass, subscription bypass, free-tier boundary.
"""
import pytest

from smarthire.errors import QuotaExceeded
from smarthire.models import EntitlementRecord, GateReason, Principal, UserRole
from smarthire.services.access_gate import can_proceed

FREE_LIMIT = 50


def _record(usage: int, subscribed: bool = False) -> EntitlementRecord:
    return EntitlementRecord(tenant_id="t1", usage_count=usage, is_subscribed=subscribed)


@pytest.fixture
def recruiter():
    return Principal(tenant_id="t1", role=UserRole.RECRUITER)


@pytest.fixture
def operator():
    return Principal(tenant_id="admin-1", role=UserRole.ADMIN)


class TestFreeTierBoundary:
    def test_last_free_screening_allowed(self, recruiter):
        decision = can_proceed(recruiter, _record(FREE_LIMIT - 1), FREE_LIMIT)
        assert decision.allowed is True
        assert decision.reason == GateReason.FREE_TIER
        assert decision.remaining == 1

    def test_limit_reached_denied(self, recruiter):
        decision = can_proceed(recruiter, _record(FREE_LIMIT), FREE_LIMIT)
        assert decision.allowed is False
        assert decision.reason == GateReason.QUOTA_EXCEEDED
        assert decision.remaining == 0

    def test_over_limit_denied(self, recruiter):
        decision = can_proceed(recruiter, _record(FREE_LIMIT + 7), FREE_LIMIT)
        assert decision.allowed is False

    def test_fresh_tenant_has_full_quota(self, recruiter):
        decision = can_proceed(recruiter, _record(0), FREE_LIMIT)
        assert decision.allowed is True
        assert decision.remaining == FREE_LIMIT


class TestBypass:
    def test_subscribed_over_limit_allowed_unmetered(self, recruiter):
        decision = can_proceed(recruiter, _record(FREE_LIMIT + 100, subscribed=True), FREE_LIMIT)
        assert decision.allowed is True
        assert decision.reason == GateReason.SUBSCRIBED
        assert decision.unmetered is True

    def test_operator_always_allowed(self, operator):
        decision = can_proceed(operator, _record(10_000), FREE_LIMIT)
        assert decision.allowed is True
        assert decision.reason == GateReason.OPERATOR
        assert decision.unmetered is True

    def test_operator_checked_before_subscription(self, operator):
        decision = can_proceed(operator, _record(0, subscribed=True), FREE_LIMIT)
        assert decision.reason == GateReason.OPERATOR


class TestRaiseForDenial:
    def test_denial_raises_quota_exceeded(self, recruiter):
        decision = can_proceed(recruiter, _record(FREE_LIMIT), FREE_LIMIT)
        with pytest.raises(QuotaExceeded) as exc_info:
            decision.raise_for_denial()
        assert exc_info.value.status_code == 402
        assert exc_info.value.usage_count == FREE_LIMIT
        assert exc_info.value.free_limit == FREE_LIMIT

    def test_allow_does_not_raise(self, recruiter):
        can_proceed(recruiter, _record(3), FREE_LIMIT).raise_for_denial()
