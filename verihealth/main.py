"""VeriHealth ingestion API — FastAPI application entry point.

Run locally:
    uvicorn verihealth.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from verihealth.config import get_settings
from verihealth.ingestion.store import ensure_schema
from verihealth.middleware.security import ApiSecurityHeadersMiddleware
from verihealth.routers import devices, health, ingest
from verihealth.services.supabase import close_pool, init_pool

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("verihealth")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logger.info(
        "Starting VeriHealth ingestion API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    await init_pool(settings)
    if settings.db_ensure_schema:
        await ensure_schema()
    yield
    await close_pool()
    logger.info("VeriHealth ingestion API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="VeriHealth Ingestion API",
        description=(
            "Authenticated ingestion of wearable readings — device assignment "
            "checks, audit trail, and structured vitals."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Middleware (last added runs outermost) ----------

    app.add_middleware(ApiSecurityHeadersMiddleware)

    # Devices post from native apps; browsers only hit this for tooling.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["authorization", "content-type", "x-veri-timestamp", "x-veri-signature"],
    )

    # ---------- Health check (outside the v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- Edge-function compatible ingest path ----------
    app.include_router(ingest.router)

    # ---------- API v1 routes ----------
    app.include_router(devices.router, prefix="/api/v1")

    return app


app = create_app()
