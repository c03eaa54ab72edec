"""FastAPI application factory"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from blink_backend.api.errors import register_exception_handlers
from blink_backend.api.middleware import RequestIDMiddleware, MetricsMiddleware, RateLimitMiddleware
from blink_backend.api.v1 import advances, asset_reports, bank_accounts, cash_flow, plaid, users
from blink_backend.config import Settings, get_settings
from blink_backend.infrastructure.clients.mailer import EmailSender
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.session import create_session_factory
from blink_backend.infrastructure.observability.logging import setup_logging
from blink_backend.services.scheduler import start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run housekeeping jobs for the lifetime of the app"""
    tasks = []
    if app.state.settings.scheduler_enabled:
        tasks = start_scheduler(app.state.session_factory, app.state.plaid_client)
    yield
    await stop_scheduler(tasks)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or get_settings()

    # Setup structured logging
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Blink Backend",
        description="Personal finance API: bank linking, cash-flow analytics and BlinkAdvances",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = create_session_factory(settings.database_url)
    app.state.plaid_client = PlaidClient(settings)
    app.state.email_sender = EmailSender(settings)

    register_exception_handlers(app, show_error_detail=not settings.is_production)

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        exempt_paths=[plaid.WEBHOOK_PATH],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.cors_origin.split(",")],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check endpoints
    @app.get("/")
    def root():
        return {"success": True, "message": f"{settings.service_name} is running"}

    @app.get("/api/health")
    def health_check():
        return {"success": True, "data": {"status": "ok", "service": settings.service_name}}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(plaid.router, prefix="/api/plaid", tags=["plaid"])
    app.include_router(advances.router, prefix="/api/blink-advances", tags=["blink-advances"])
    app.include_router(cash_flow.router, prefix="/api/cash-flow", tags=["cash-flow"])
    app.include_router(bank_accounts.router, prefix="/api/bank-accounts", tags=["bank-accounts"])
    app.include_router(asset_reports.router, prefix="/api/asset-reports", tags=["asset-reports"])

    return app


app = create_app()
