"""
Custom middleware and exception handlers for the FastAPI application.
Provides request logging, security headers, CORS and the mapping from
domain exceptions to JSON error responses.
"""

import time
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

import structlog

from subsidy_admin.api.schemas.common import create_error_response
from subsidy_admin.core.config import settings
from subsidy_admin.core.exceptions import SubsidyAdminException


logger = structlog.get_logger(__name__)


ERROR_STATUS_CODES: Dict[str, int] = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "LEDGER_QUERY_ERROR": status.HTTP_502_BAD_GATEWAY,
    "EXTERNAL_SERVICE_ERROR": status.HTTP_502_BAD_GATEWAY,
    "MUTATION_REJECTED": status.HTTP_502_BAD_GATEWAY,
    "PARTIAL_FAILURE": status.HTTP_502_BAD_GATEWAY,
    "CONFIGURATION_ERROR": status.HTTP_503_SERVICE_UNAVAILABLE,
    "DATABASE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_json(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = create_error_response(message, error=code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log details."""
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            method=request.method,
            url=str(request.url),
            client_ip=request.client.host if request.client else None,
            session_id=request.headers.get("x-session-id"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            logger.error(
                "Request failed",
                method=request.method,
                url=str(request.url),
                error=str(e),
                process_time=process_time,
            )
            return error_json(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_SERVER_ERROR",
                "An internal server error occurred",
            )

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(
            "Request completed",
            method=request.method,
            url=str(request.url),
            status_code=response.status_code,
            process_time=process_time,
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-API-Version"] = settings.app_version
        return response


async def domain_exception_handler(request: Request, exc: SubsidyAdminException) -> JSONResponse:
    """Render a domain exception as a JSON error body."""
    status_code = ERROR_STATUS_CODES.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request raised domain error",
        method=request.method,
        url=str(request.url),
        code=exc.code,
        error=exc.message,
    )
    return error_json(status_code, exc.code, exc.message, exc.details)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or missing request fields are a 400, like any other validation error."""
    return error_json(
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Invalid request",
        {"errors": jsonable_encoder(exc.errors())},
    )


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SubsidyAdminException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


def add_middleware(app: FastAPI) -> None:
    """CORS innermost, request logging outermost."""
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(LoggingMiddleware)
