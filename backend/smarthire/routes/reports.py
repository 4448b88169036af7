"""Report Routes - saved candidate screenings.

Recruiters see and manage their own reports; admins may list every tenant's
latest reports (scope=all) and delete on behalf of an owner.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from typing import Optional
import json
import logging

from smarthire.context import AppContext, get_context
from smarthire.middleware import require_auth
from smarthire.models import Principal, SaveReportRequest
from smarthire.services.event_broker import ALL_REPORTS_TOPIC, reports_topic
from smarthire.utils.sse import stream_queue

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def save_report(
    body: SaveReportRequest,
    user: Principal = Depends(require_auth),
    ctx: AppContext = Depends(get_context),
):
    return await ctx.reports.save_report(user.tenant_id, body.report, body.role)


@router.get("")
async def list_reports(
    scope: str = Query("mine", pattern="^(mine|all)$"),
    user: Principal = Depends(require_auth),
    ctx: AppContext = Depends(get_context),
):
    if scope == "all":
        if not user.is_operator:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
        reports = await ctx.reports.list_all_reports()
    else:
        reports = await ctx.reports.list_reports(user.tenant_id)
    return {"reports": reports, "total": len(reports)}


@router.delete("/{report_id}")
async def delete_report(
    report_id: str,
    owner_id: Optional[str] = None,
    user: Principal = Depends(require_auth),
    ctx: AppContext = Depends(get_context),
):
    owner = owner_id if (owner_id and user.is_operator) else user.tenant_id
    deleted = await ctx.reports.delete_report(owner, report_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return {"deleted": report_id}


@router.get("/stream")
async def stream_reports(
    request: Request,
    user: Principal = Depends(require_auth),
    ctx: AppContext = Depends(get_context),
):
    """Report list change notifications; admins follow every tenant."""
    topic = ALL_REPORTS_TOPIC if user.is_operator else reports_topic(user.tenant_id)
    q = ctx.broker.subscribe(topic)

    return StreamingResponse(
        stream_queue(request, q, "reports", json.dumps, lambda: ctx.broker.unsubscribe(topic, q)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
