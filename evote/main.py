"""FastAPI main application for the eVote backend."""

from contextlib import asynccontextmanager
import time

import asyncpg
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from evote.api.routes import elections, eligible_voters, results, voting
from evote.core import database
from evote.core.config import settings
from evote.core.database import close_db_pool, init_db_pool
from evote.core.exceptions import ElectionError
from evote.core.logging_config import get_logger, setup_logging
from evote.core.responses import error_response, error_response_dict, success_response
from evote.services.email import email_service
from evote.services.notifications import register_results_published_hook

# Setup logging
setup_logging()
logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )
        response.headers["Cache-Control"] = "no-store"

        # HSTS only in production with HTTPS
        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - runs on startup and shutdown."""
    logger.info("Starting eVote backend...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # Initialize async database pool (skip in test environment)
    if settings.ENVIRONMENT != "test":
        await init_db_pool(settings)

    if settings.NOTIFICATIONS_ENABLED:
        register_results_published_hook(email_service.send_results_published_email)
        logger.info(
            f"Results notifications enabled for "
            f"{len(settings.results_notify_emails_list)} recipient(s)"
        )

    yield

    if settings.ENVIRONMENT != "test":
        await close_db_pool()
    logger.info("Shutting down eVote backend...")


app = FastAPI(
    title="eVote Backend",
    description="""
    **eVote Backend** - exactly-once voting with commissioner-approved results

    Features:
    - Election lifecycle (draft, active, completed, cancelled) and ballots
    - Eligible voter lists per election
    - One ballot per voter per election, enforced by the database
    - Results computed from the vote ledger on every request
    - Results published only after every assigned commissioner approved

    ## Authentication

    Include the JWT issued by the auth service in the Authorization header:

    ```
    Authorization: Bearer <your_jwt_token>
    ```

    ## Roles

    - **admin**: manages elections, candidates, eligible voters and commissioners
    - **user**: votes where eligible; approves results where assigned as commissioner

    ## API Versioning

    - `/v1/*` - Version 1 (current stable)
    - `/*` - Latest version (may change)
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add security headers middleware FIRST (before CORS)
app.add_middleware(SecurityHeadersMiddleware)

if settings.ENVIRONMENT == "development":
    logger.info("CORS: Development mode - allowing all origins")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )
else:
    logger.info(f"CORS: allowed origins: {settings.cors_origins_list}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin"],
    )


# Exception handlers
@app.exception_handler(ElectionError)
async def election_exception_handler(request: Request, exc: ElectionError):
    """Turn domain errors into the error envelope with their stable code."""
    return error_response_dict(exc.to_dict(), exc.status_code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with standardized error responses."""
    # If the detail is already a dict (from our error_response), use it directly
    if isinstance(exc.detail, dict):
        return error_response_dict(exc.detail, exc.status_code)
    return error_response_dict(
        {"success": False, "message": exc.detail, "data": None, "errors": None},
        exc.status_code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    errors = {"code": "VALIDATION_ERROR"}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors[field] = error["msg"]

    return error_response_dict(
        {
            "success": False,
            "message": "Validation failed",
            "data": None,
            "errors": errors,
        },
        422,
    )


@app.exception_handler(asyncpg.exceptions.PostgresError)
async def database_exception_handler(
    request: Request, exc: asyncpg.exceptions.PostgresError
):
    """Handle database errors."""
    logger.error(f"Database error: {exc}", exc_info=True)
    return error_response_dict(
        {
            "success": False,
            "message": "Database error occurred",
            "data": None,
            "errors": None,
        },
        500,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return error_response_dict(
        {
            "success": False,
            "message": "An unexpected error occurred",
            "data": None,
            "errors": None,
        },
        500,
    )


ROUTERS = (
    elections.router,
    eligible_voters.router,
    voting.router,
    results.router,
)

# Create versioned API router
v1_router = APIRouter(prefix="/v1")
for router in ROUTERS:
    v1_router.include_router(router)
app.include_router(v1_router)

# Also include routers at root level for backward compatibility (latest version)
for router in ROUTERS:
    app.include_router(router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns 200 if the database is reachable, 503 otherwise.
    """
    health_status = {"status": "healthy", "timestamp": time.time(), "checks": {}}
    all_healthy = True

    health_status["checks"]["api"] = {"status": "healthy", "message": "API is running"}

    try:
        conn = await asyncpg.connect(dsn=settings.DATABASE_URL, timeout=5)
        try:
            await conn.fetchval("SELECT 1")
        finally:
            await conn.close()

        pool_info = {}
        pool = database.get_pool()
        if pool:
            pool_size = pool.get_size()
            pool_idle = pool.get_idle_size()
            pool_info = {
                "size": pool_size,
                "max": pool.get_max_size(),
                "idle": pool_idle,
                "active": pool_size - pool_idle,
            }

        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database is accessible",
            "pool": pool_info,
        }
    except Exception as e:
        all_healthy = False
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database check failed: {e!s}",
        }

    if not all_healthy:
        health_status["status"] = "unhealthy"
        error_response(message="Health check failed", data=health_status, status_code=503)

    return success_response(data=health_status)
