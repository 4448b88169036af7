"""Billing Routes - entitlement state and Stripe self-service.

Endpoints:
- POST /api/create-portal-session - Stripe billing portal for a tenant
- GET  /api/entitlement          - Caller's entitlement record + gate decision
- GET  /api/entitlement/stream   - Live entitlement snapshots (SSE)
- POST /api/usage/increment      - Client-metered usage (gate-off deployments)
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
import json
import logging

from smarthire.context import AppContext, get_context
from smarthire.middleware import require_auth
from smarthire.models import EntitlementRecord, PortalSessionRequest, Principal
from smarthire.services.access_gate import can_proceed
from smarthire.utils.sse import stream_queue

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["billing"])


@router.post("/create-portal-session")
async def create_portal_session(body: PortalSessionRequest, ctx: AppContext = Depends(get_context)):
    """Create Stripe billing portal session for subscription management."""
    url = await ctx.portal.create_portal_session(body.tenant_id)
    return {"url": url}


@router.get("/entitlement")
async def get_entitlement(
    user: Principal = Depends(require_auth),
    ctx: AppContext = Depends(get_context),
):
    record = await ctx.store.get(user.tenant_id)
    decision = can_proceed(user, record, ctx.settings.free_limit)
    return {
        "entitlement": record.model_dump(mode="json"),
        "gate": decision.model_dump(mode="json"),
    }


@router.get("/entitlement/stream")
async def stream_entitlement(
    request: Request,
    user: Principal = Depends(require_auth),
    ctx: AppContext = Depends(get_context),
):
    """Push the caller's entitlement record on every change (first frame = current state)."""
    q = await ctx.store.subscribe(user.tenant_id)
    free_limit = ctx.settings.free_limit

    def encode(record: EntitlementRecord) -> str:
        decision = can_proceed(user, record, free_limit)
        return json.dumps({
            "entitlement": record.model_dump(mode="json"),
            "gate": decision.model_dump(mode="json"),
        })

    return StreamingResponse(
        stream_queue(request, q, "entitlement", encode, lambda: ctx.store.unsubscribe(user.tenant_id, q)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.post("/usage/increment")
async def increment_usage(
    user: Principal = Depends(require_auth),
    ctx: AppContext = Depends(get_context),
):
    """Record one completed screening for the caller."""
    usage_count = await ctx.usage.record_usage(user.tenant_id)
    return {"usage_count": usage_count}
