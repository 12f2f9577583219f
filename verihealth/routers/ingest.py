"""Wearable ingestion endpoint.

The path mirrors the hosted edge function the mobile app was built against,
so existing clients only need a base-URL change.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from verihealth.dependencies import AppSettings, Store
from verihealth.ingestion import IngestError, IngestionService
from verihealth.models.base import ErrorResponse
from verihealth.models.ingest import IngestResponse, InsertedCounts

router = APIRouter(prefix="/functions/v1", tags=["ingest"])
logger = logging.getLogger("verihealth.routers.ingest")


@router.post(
    "/ingest_wearable_data",
    response_model=IngestResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def ingest_wearable_data(
    request: Request, store: Store, settings: AppSettings
) -> Any:
    """Accept a signed batch of readings from a provisioned device.

    The request body is read raw (not through a Pydantic body parameter)
    because the signature covers the exact bytes sent.
    """
    body = await request.body()
    service = IngestionService(store, settings)

    try:
        result = await service.ingest(body, request.headers)
    except IngestError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(),
        )

    return IngestResponse(
        inserted=InsertedCounts(audit=result.audit, structured=result.structured)
    )
