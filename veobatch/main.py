"""FastAPI application entrypoint — lifespan, routers, middleware."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from veobatch.config import get_settings
from veobatch.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from veobatch.routes import credentials, jobs, media, queue
from veobatch.runtime import build_runtime

logger = logging.getLogger("veobatch")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Build the job store, credential state and scheduler

    Shutdown:
      1. Stop admitting jobs and cancel in-flight remote operations
    """
    settings = get_settings()
    configure_structured_logging(settings)
    logger.info(
        "veobatch starting",
        extra={
            "max_concurrent": settings.queue_max_concurrent,
            "max_per_minute": settings.queue_max_per_minute,
        },
    )

    runtime = build_runtime(settings)
    app.state.runtime = runtime

    yield

    logger.info("veobatch shutting down")
    await runtime.scheduler.shutdown()


app = FastAPI(
    title="Veo Batch API",
    description=(
        "Batch video production queue — submits prompts to Gemini Veo under a "
        "concurrency cap and a rolling per-minute rate limit, and tracks each "
        "job until its video is ready."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# ── Health check ────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Basic health check — verifies the API process is alive."""
    return {
        "status": "ok",
        "service": "veobatch",
        "version": "0.1.0",
    }


@app.get("/health/ready", tags=["system"])
async def health_ready() -> JSONResponse:
    """Ready once the queue is built and an API key is selected."""
    runtime = getattr(app.state, "runtime", None)
    checks = {
        "runtime": runtime is not None,
        "credential": runtime is not None and runtime.credentials.is_selected,
    }
    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ok" if ready else "degraded", "checks": checks},
    )


# ── Router registration ────────────────────────────────────────────────────
app.include_router(jobs.router, prefix="/api/v1")
app.include_router(queue.router, prefix="/api/v1")
app.include_router(credentials.router, prefix="/api/v1")
app.include_router(media.router, prefix="/api/v1")
