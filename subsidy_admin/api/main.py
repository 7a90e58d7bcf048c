"""
FastAPI application: profile CRUD, the reconciled dashboard and ledger
operations under one versioned prefix.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse

import structlog

from subsidy_admin.core.config import settings
from subsidy_admin.core.database import DatabaseManager, close_database, init_database
from subsidy_admin.core.logging import setup_logging
from subsidy_admin.api.middleware import add_exception_handlers, add_middleware
from subsidy_admin.api.routes import beneficiaries, dashboard, operations
from subsidy_admin.api.schemas.common import HealthCheckResponse, SuccessResponse


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting subsidy admin API server")

    await init_database()
    await DatabaseManager.create_tables()

    yield

    logger.info("Shutting down subsidy admin API server")
    await close_database()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="""
        Admin backend for a subsidy distribution program.

        ## Features

        * **Beneficiary Profiles** - Off-chain names and contacts keyed by address
        * **Dashboard** - Ledger enrollment and claims joined with profiles
        * **Operations** - Enroll or remove beneficiaries on the ledger

        ## Sessions

        Send `X-Session-Id` to keep sort selection, in-flight operations and
        notifications per operator.

        ## Error Handling

        All endpoints return consistent error responses with:
        - Error codes for programmatic handling
        - Human-readable messages
        - Additional details when available
        """,
        version=settings.app_version,
        lifespan=lifespan,
    )

    add_middleware(app)
    add_exception_handlers(app)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check API server health and database connectivity"
    )
    async def health_check():
        database = await DatabaseManager.health_check()
        if database["healthy"]:
            return HealthCheckResponse(
                status="healthy",
                version=settings.app_version,
                services={"database": "healthy", "api": "healthy"}
            )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "services": {"database": "unhealthy", "api": "healthy"},
                "error": database.get("error"),
            }
        )

    @app.get(
        "/",
        response_model=SuccessResponse,
        tags=["System"],
        summary="API Information"
    )
    async def root():
        return SuccessResponse(
            message=f"{settings.app_name} v{settings.app_version}",
            data={
                "version": settings.app_version,
                "environment": settings.environment,
                "chain_id": settings.chain_id,
                "docs_url": "/docs",
            }
        )

    app.include_router(
        beneficiaries.router,
        prefix=f"{settings.api_v1_prefix}/beneficiaries",
        tags=["Beneficiaries"]
    )

    app.include_router(
        dashboard.router,
        prefix=f"{settings.api_v1_prefix}/dashboard",
        tags=["Dashboard"]
    )

    app.include_router(
        operations.router,
        prefix=f"{settings.api_v1_prefix}/operations",
        tags=["Operations"]
    )

    logger.info("Subsidy admin API configured", prefix=settings.api_v1_prefix, environment=settings.environment)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "subsidy_admin.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
