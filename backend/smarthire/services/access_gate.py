"""Access Gate - decides whether a billable screening may run.

Decision order:
1. Operator (ADMIN) accounts: always allowed, unmetered
2. Subscribed tenants: allowed, unmetered
3. Free tier with usage_count < free_limit: allowed
4. Otherwise: denied with QUOTA_EXCEEDED (client shows the upgrade prompt)

Pure: callers read a fresh EntitlementRecord and pass it in on every request.
No decision is cached across requests.
"""
from smarthire.models import EntitlementRecord, GateDecision, GateReason, Principal


def can_proceed(principal: Principal, record: EntitlementRecord, free_limit: int) -> GateDecision:
    """
    Evaluate the gate for one billable request.

    Args:
        principal: Authenticated caller
        record: Freshly read entitlement record for principal.tenant_id
        free_limit: Free-tier quota

    Returns:
        GateDecision (allowed or denied with the reason)
    """
    usage = record.usage_count

    if principal.is_operator:
        return GateDecision(allowed=True, reason=GateReason.OPERATOR, usage_count=usage, free_limit=free_limit)

    if record.is_subscribed:
        return GateDecision(allowed=True, reason=GateReason.SUBSCRIBED, usage_count=usage, free_limit=free_limit)

    if usage < free_limit:
        return GateDecision(
            allowed=True,
            reason=GateReason.FREE_TIER,
            usage_count=usage,
            free_limit=free_limit,
            remaining=free_limit - usage,
        )

    return GateDecision(
        allowed=False,
        reason=GateReason.QUOTA_EXCEEDED,
        usage_count=usage,
        free_limit=free_limit,
        remaining=0,
    )
