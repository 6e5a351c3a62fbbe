"""FastAPI application factory for the sprint and dispute arbitration API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.exc import DBAPIError

from src.config import settings
from src.database.engine import engine
from src.database.errors import UNIQUE_VIOLATION, constraint_name, is_lock_timeout, sqlstate
from src.exceptions import AppException
from src.schemas.responses import error_response, get_request_id

logger = logging.getLogger(__name__)

# Rate limiter — keyed by client IP address
limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Dispose the async engine on shutdown."""
    logging.basicConfig(level=settings.log_level.upper())
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Sprint Arbitration API",
        description="Sprint phase engine, dispute arbitration and reward settlement.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Rate limiter
    application.state.limiter = limiter

    # --- Middleware (last added = outermost in Starlette) ---

    # CORS — configured via CORS_ORIGINS env var, never wildcard with credentials
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID — registered last so it runs first (outermost)
    from src.middleware.request_id import RequestIdMiddleware

    application.add_middleware(RequestIdMiddleware)

    # --- Routers ---
    from src.api.v1 import v1_router

    application.include_router(v1_router)

    # --- Exception Handlers ---

    @application.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return error_response(
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            request_id=get_request_id(request),
            details=exc.details,
            context=exc.context,
        )

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {"field": ".".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return error_response(
            status_code=400,
            code="VALIDATION_ERROR",
            message="Validation failed",
            request_id=get_request_id(request),
            details=details,
        )

    @application.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return error_response(
            status_code=429,
            code="RATE_LIMITED",
            message=str(exc.detail),
            request_id=get_request_id(request),
        )

    @application.exception_handler(DBAPIError)
    async def database_exception_handler(request: Request, exc: DBAPIError) -> JSONResponse:
        # Row locks and unique indexes serialize concurrent phase advances and filings
        if is_lock_timeout(exc):
            logger.warning("Lock wait timed out on %s %s", request.method, request.url.path)
            return error_response(
                status_code=409,
                code="CONFLICT",
                message="The resource is being modified by another request; retry shortly.",
                request_id=get_request_id(request),
            )
        if sqlstate(exc) == UNIQUE_VIOLATION:
            constraint = constraint_name(exc)
            logger.warning("Unique violation on %s (%s)", request.url.path, constraint)
            return error_response(
                status_code=409,
                code="CONFLICT",
                message="The change conflicts with a concurrent update.",
                request_id=get_request_id(request),
                details=[{"constraint": constraint}] if constraint else None,
            )
        logger.exception("Database error: %s", exc)
        return error_response(
            status_code=500,
            code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=get_request_id(request),
        )

    @application.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception("Unhandled exception: %s", exc)
        return error_response(
            status_code=500,
            code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=get_request_id(request),
        )

    # Health check
    @application.get("/health")
    async def health_check() -> dict:
        return {"status": "ok"}

    return application


app = create_app()
