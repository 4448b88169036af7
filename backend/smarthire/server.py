from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from smarthire import __version__
from smarthire.config import Settings
from smarthire.context import AppContext, build_context
from smarthire.database import Database
from smarthire.errors import QuotaExceeded, RateLimitExceeded, SmartHireError
from smarthire.routes import (
    analytics_router,
    analyze_router,
    billing_router,
    reports_router,
    webhooks_router,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, ctx: Optional[AppContext] = None) -> FastAPI:
    """
    Build the API.

    Args:
        settings: Process settings (default: read from the environment)
        ctx: Prebuilt context; when given, no database connection is opened
    """
    settings = settings or (ctx.settings if ctx else Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Starting SmartHire API")
        database = None
        if getattr(app.state, "ctx", None) is None:
            database = Database(settings)
            await database.connect()
            app.state.ctx = build_context(settings, database.get_db())

        if not settings.stripe_secret_key:
            logger.error("STRIPE_SECRET_KEY is not set. Billing portal sessions will fail.")
        else:
            logger.info("STRIPE_MODE = %s (from Stripe key prefix)", settings.stripe_mode())
        if not settings.stripe_webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set. All webhooks will be rejected.")
        if not settings.google_api_key:
            logger.error("GOOGLE_API_KEY is not set. Analysis requests will fail.")

        yield

        # Shutdown
        logger.info("Shutting down SmartHire API")
        if database:
            await database.close()

    app = FastAPI(
        title="SmartHire API",
        description="AI candidate screening - entitlement and usage metering",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.ctx = ctx

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(analyze_router)
    app.include_router(billing_router)
    app.include_router(webhooks_router)
    app.include_router(reports_router)
    app.include_router(analytics_router)

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "environment": settings.environment,
            "version": __version__,
        }

    @app.exception_handler(QuotaExceeded)
    async def quota_exceeded_handler(request: Request, exc: QuotaExceeded):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.message,
                "code": "QUOTA_EXCEEDED",
                "usage_count": exc.usage_count,
                "free_limit": exc.free_limit,
                "upgrade_required": True,
            },
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(SmartHireError)
    async def smarthire_error_handler(request: Request, exc: SmartHireError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    run_settings = Settings.from_env()
    uvicorn.run(
        "smarthire.server:app",
        host="0.0.0.0",
        port=8001,
        reload=run_settings.environment == "development",
        proxy_headers=True,
        forwarded_allow_ips=run_settings.forwarded_allow_ips,
    )
