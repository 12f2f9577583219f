"""Device → patient authorization for ingested batches."""

from __future__ import annotations

import logging

from verihealth.ingestion.errors import DeviceNotAuthorizedError
from verihealth.ingestion.store import IngestStore

logger = logging.getLogger("verihealth.ingest.authorization")


async def resolve_patients(store: IngestStore, device_ids: list[str]) -> dict[str, str]:
    """Map each device to the patient it is currently assigned to.

    One lookup covers every distinct device in the batch.  The latest
    assignment is the only authority: if it is revoked, older unrevoked rows
    do not count.

    Args:
        store:      Assignment lookup.
        device_ids: Distinct device ids from the batch.

    Returns:
        device_id → patient_id for every device.

    Raises:
        DeviceNotAuthorizedError: For the first device without an active assignment.
    """
    assignments = await store.latest_assignments(device_ids)

    patients: dict[str, str] = {}
    for device_id in device_ids:
        assignment = assignments.get(device_id)
        if assignment is None or not assignment.is_active:
            logger.warning(
                "Rejecting batch: device %s has no active assignment", device_id
            )
            raise DeviceNotAuthorizedError(device_id)
        patients[device_id] = assignment.patient_id
    return patients
