"""
main.py — agencyops API: client lifecycle & delay notifications

Mounts the delay, onboarding and churn routers, installs the request-id
middleware and structured error handlers, and runs the background
scheduler for the lifetime of the app.

Called by: uvicorn (agencyops.main:app)
Depends on: config, logging_config, startup, scheduler, routers/*
"""

import os
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException
from starlette.middleware.sessions import SessionMiddleware

from .config import settings
from .logging_config import setup_logging
from .rate_limit import limiter
from .routers import churn, delays, onboarding
from .schemas.errors import ErrorResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    from .startup import run_startup_migrations

    run_startup_migrations()

    from .scheduler import configure_scheduler, scheduler

    start_jobs = not os.environ.get("TESTING")
    if start_jobs:
        configure_scheduler()
        scheduler.start()
        logger.info("Background scheduler started")
    yield
    if start_jobs and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")


app = FastAPI(title="agencyops", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key)

app.include_router(delays.router)
app.include_router(onboarding.router)
app.include_router(churn.router)


# ── Middleware ──────────────────────────────────────────────────────────


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every request with a short id, bound into the log context."""
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    start = time.perf_counter()
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"{request.method} {request.url.path} → {response.status_code} ({elapsed_ms:.0f}ms)"
        )
    response.headers["X-Request-ID"] = request_id
    return response


# ── Error handlers ──────────────────────────────────────────────────────


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    body = ErrorResponse(
        error=str(exc.detail),
        status_code=exc.status_code,
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    body = ErrorResponse(
        error="Validation error",
        status_code=422,
        request_id=_request_id(request),
        detail=[
            {"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in exc.errors()
        ],
    )
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    body = ErrorResponse(
        error=f"Rate limit exceeded: {exc.detail}",
        status_code=429,
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=429, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    body = ErrorResponse(
        error="Internal error — please try again",
        status_code=500,
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


@app.get("/health")
async def health():
    return {"status": "ok"}
