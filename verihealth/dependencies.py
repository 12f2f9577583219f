"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from verihealth.config import Settings, get_settings
from verihealth.ingestion.store import IngestStore, PostgresIngestStore


def get_ingest_store() -> IngestStore:
    """Return the storage backend for ingestion routes.

    Tests override this through ``app.dependency_overrides``.
    """
    return PostgresIngestStore()


async def require_service_key(
    request: Request, settings: Annotated[Settings, Depends(get_settings)]
) -> None:
    """Guard for service-only routes (device provisioning).

    The caller must present ``Authorization: Bearer <PROVISIONING_API_KEY>``.
    """
    expected = settings.provisioning_api_key
    header = request.headers.get("Authorization", "")
    token = header.removeprefix("Bearer ").strip() if header.startswith("Bearer ") else ""
    if not expected or not token or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Not authenticated")


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
Store = Annotated[IngestStore, Depends(get_ingest_store)]
ServiceKey = Annotated[None, Depends(require_service_key)]
