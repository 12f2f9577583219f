"""Health check endpoint, public and unauthenticated.

Reports whether the ingestion path can actually accept a batch: the pool
must answer and every ingestion table must exist.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from verihealth.config import get_settings
from verihealth.ingestion.store import missing_tables

router = APIRouter(tags=["system"])
logger = logging.getLogger("verihealth.health")


@router.get("/health")
async def health_check() -> dict:
    settings = get_settings()
    missing: list[str] | None = None
    try:
        missing = await missing_tables()
    except Exception as exc:
        logger.warning("Health check DB probe failed: %s", type(exc).__name__)

    if missing is None:
        database, schema = "unreachable", "unknown"
    else:
        database = "connected"
        schema = "ready" if not missing else "missing: " + ", ".join(missing)

    return {
        "status": "healthy" if missing == [] else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
        "schema": schema,
        "signature_required": settings.ingest_require_signature,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
