"""
Listing Extractor API.

Operational surface of the job-listing extraction pipeline: start
attempts, inspect their timelines, fail/retry them and read analytics.
Every error leaves the API as `{"error", "message", "details"}`.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import APIException
from app.core.logging import RequestIDMiddleware, get_logger, setup_logging
from app.core.rate_limit import limiter
from app.api.routes import api_router

logger = get_logger(__name__)


def _error_body(code: str, message: str, details=None) -> dict:
    return {"error": code, "message": message, "details": details}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("extractor_api_starting", env=settings.environment, api_prefix=settings.api_prefix)
    await init_db()
    yield
    logger.info("extractor_api_stopped")


app = FastAPI(
    title=settings.app_name,
    description="Job listing fetch, extraction and diagnostics pipeline",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Mutating admin routes are limited per client address
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(RequestIDMiddleware)
# Operators drive attempts from the dashboard origin only
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    """Domain errors (unknown attempt, not retryable...) carry their own code."""
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the failure in full; clients only see the exception text in debug."""
    logger.error(
        "unhandled_exception",
        exc_type=type(exc).__name__,
        path=request.url.path,
        exc_info=True,
    )
    message = str(exc) if settings.debug else "An unexpected error occurred"
    return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", message))


app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
