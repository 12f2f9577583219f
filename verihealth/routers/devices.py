"""Device provisioning: issue a device id and its signing secret."""

from __future__ import annotations

import logging
import secrets
import uuid

from fastapi import APIRouter, HTTPException

from verihealth.dependencies import ServiceKey, Store
from verihealth.ingestion.store import DeviceAlreadyRegisteredError
from verihealth.models.ingest import DeviceProvisionRequest, DeviceProvisionResponse

router = APIRouter(prefix="/devices", tags=["devices"])
logger = logging.getLogger("verihealth.routers.devices")


@router.post("/provision", response_model=DeviceProvisionResponse, status_code=201)
async def provision_device(
    body: DeviceProvisionRequest, store: Store, _auth: ServiceKey
) -> DeviceProvisionResponse:
    """Register a new device and return its secret.

    The secret is returned exactly once; only its holder can sign batches.
    Patient assignment is a separate administrative step.
    """
    device_id = str(uuid.uuid4())
    device_secret = secrets.token_hex(32)

    try:
        await store.register_device(device_id, device_secret)
    except DeviceAlreadyRegisteredError:
        raise HTTPException(status_code=409, detail="Device already registered")

    logger.info(
        "Provisioned device %s (client ref=%s)", device_id, body.client_generated_id
    )
    return DeviceProvisionResponse(device_id=device_id, device_secret=device_secret)
