"""Pydantic models for the wearable ingestion wire protocol."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import Field, field_validator

from verihealth.models.base import VeriBase


# ---------- Readings ----------

class WearableReadingIn(VeriBase):
    """One reading as received from a device.

    ``patient_id`` is accepted so that older clients do not fail validation,
    but the server never trusts it: the patient is always resolved from the
    device assignment.  Optional fields take any JSON value; they are kept
    as posted in the audit trail.
    """

    id: Any = None
    device_id: str = Field(alias="deviceId", min_length=1)
    type: str = Field(min_length=1)
    value: Any = None
    unit: Any = None
    timestamp: datetime
    patient_id: Any = Field(default=None, alias="patientId")
    raw: Any = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_instant(cls, v: Any) -> datetime:
        # Only ISO-8601 strings are accepted; numbers are not instants here.
        if isinstance(v, datetime):
            parsed = v
        elif isinstance(v, str) and v.strip():
            try:
                parsed = datetime.fromisoformat(v.strip())
            except ValueError as exc:
                raise ValueError(f"timestamp {v!r} is not a valid instant") from exc
        else:
            raise ValueError("timestamp must be an ISO-8601 string")
        # Naive instants are taken as UTC.
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


class IngestBatchIn(VeriBase):
    readings: list[dict[str, Any]] = Field(min_length=1)
    uploaded_at: str | None = Field(default=None, alias="uploadedAt")


# ---------- Responses ----------

class InsertedCounts(VeriBase):
    audit: int
    structured: int


class IngestResponse(VeriBase):
    success: bool = True
    inserted: InsertedCounts


# ---------- Device provisioning ----------

class DeviceProvisionRequest(VeriBase):
    client_generated_id: str | None = Field(default=None, max_length=128)


class DeviceProvisionResponse(VeriBase):
    device_id: str
    device_secret: str
