"""Bulk email verification FastAPI application."""
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bulkverify import __version__
from bulkverify.api import credits, health, lists, logs, verify
from bulkverify.config import BOUNCIFY_API_KEY
from bulkverify.core.logging import configure_logging
from bulkverify.exceptions import VerifyError
from bulkverify.provider.client import close_bouncify_client

configure_logging()
log = logging.getLogger("bulkverify")

ERROR_STATUS_CODES = {
    "not_found": 404,
    "permission_denied": 403,
    "invalid_argument": 400,
    "conflict": 409,
    "external_provider": 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    log.info("Starting bulk verification service...")
    try:
        from bulkverify.db.session import init_database
        init_database()

        if not BOUNCIFY_API_KEY:
            log.warning("BOUNCIFY_API_KEY is not set; provider calls will be rejected")

        log.info("Bulk verification service started")
    except Exception as e:
        log.error(f"Failed to initialize service: {e}")
        raise

    yield

    log.info("Shutting down bulk verification service...")
    await close_bouncify_client()
    log.info("Bulk verification service stopped")


app = FastAPI(
    title="Bulk Verify",
    version=__version__,
    description="Bulk email verification with shared lists and credit tracking",
    lifespan=lifespan,
)


@app.get("/version")
def version():
    """Return service version and build SHA."""
    return {"version": __version__, "git_sha": os.getenv("GIT_SHA", "unknown")}


# -----------------------------------------------------------------------------
# API Routers
# -----------------------------------------------------------------------------

app.include_router(health.router)
app.include_router(verify.router)
app.include_router(lists.router)
app.include_router(credits.router)
app.include_router(logs.router)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    """Log all requests with timing."""
    start = time.time()
    response = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)

    log.info(
        f"request_complete status={response.status_code} duration_ms={duration_ms}",
        extra={
            "route": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


# -----------------------------------------------------------------------------
# Error Handlers
# -----------------------------------------------------------------------------

@app.exception_handler(VerifyError)
async def verify_error_handler(request: Request, exc: VerifyError):
    """Map core errors to HTTP status codes."""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
    if status_code >= 500:
        log.warning(
            f"{exc.kind} error on {request.url.path}: {exc.message}",
            extra={"route": request.url.path},
        )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.kind, "detail": exc.message},
    )
