"""
Analytics Dashboard API Routes

Cross-tenant data for the SmartHire admin dashboard:
- Screening statistics (scores, experience, fit levels, roles, skill gaps, locations)
- Recent screenings with the recruiter's company
- Recruiter registry and CSV export
"""
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from datetime import datetime, timezone
import logging

from smarthire.context import AppContext, get_context
from smarthire.middleware import admin_route_guard

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/analytics",
    tags=["admin-analytics"],
    dependencies=[Depends(admin_route_guard)],
)


@router.get("/summary")
async def get_analytics_summary(ctx: AppContext = Depends(get_context)):
    """Dashboard statistics over the latest screenings across all tenants."""
    return await ctx.analytics.summary()


@router.get("/registry")
async def get_registry(ctx: AppContext = Depends(get_context)):
    """Registered recruiters, newest first."""
    entries = await ctx.analytics.registry()
    return {
        "users": [entry.model_dump(mode="json") for entry in entries],
        "total": len(entries),
    }


@router.get("/registry/export")
async def export_registry(ctx: AppContext = Depends(get_context)):
    content = await ctx.analytics.registry_export()
    filename = f"smarthire_registry_{datetime.now(timezone.utc).strftime('%Y%m%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
