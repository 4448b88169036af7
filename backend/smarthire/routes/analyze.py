"""Analysis Routes - the billable AI screening call.

POST /api/analyze - rate limited per client address

With ENFORCE_GATE_ON_ANALYZE (default) the route authenticates the caller,
consults the access gate on a fresh entitlement read, runs the analysis and
then records one unit of usage. Failed analyses never consume quota.

With the flag off it forwards the request unchanged and the client meters
usage itself through POST /api/usage/increment.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from smarthire.context import AppContext, get_context
from smarthire.errors import RateLimitExceeded
from smarthire.middleware import get_current_user, require_auth
from smarthire.models import AnalyzeRequest, Principal
from smarthire.services.access_gate import can_proceed
from smarthire.services.analysis_client import extract_report_text

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["analysis"])


def client_address(request: Request) -> str:
    # Socket peer only; behind a proxy uvicorn rewrites it from trusted hosts (FORWARDED_ALLOW_IPS)
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request, ctx: AppContext = Depends(get_context)) -> None:
    allowed, retry_after = await ctx.rate_limiter.check_rate_limit(f"analyze:{client_address(request)}")
    if not allowed:
        raise RateLimitExceeded(retry_after)


@router.post("/analyze", dependencies=[Depends(enforce_rate_limit)])
async def analyze(
    body: AnalyzeRequest,
    request: Request,
    ctx: AppContext = Depends(get_context),
    user: Optional[Principal] = Depends(get_current_user),
):
    payload = body.model_dump(exclude_none=True)

    if not ctx.settings.enforce_gate_on_analyze:
        return await ctx.analysis.generate(payload)

    principal = await require_auth(user)

    record = await ctx.store.get(principal.tenant_id)
    decision = can_proceed(principal, record, ctx.settings.free_limit)
    if not decision.allowed:
        logger.info(
            f"[GATE] tenant={principal.tenant_id} denied usage={decision.usage_count}/{decision.free_limit}"
        )
    decision.raise_for_denial()

    response = await ctx.analysis.generate(payload)
    extract_report_text(response)

    usage_count = await ctx.usage.record_usage(principal.tenant_id)
    return JSONResponse(content=response, headers={"X-Usage-Count": str(usage_count)})
