"""Server-side records produced and consumed by the ingestion endpoint."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class DeviceAssignment:
    """Custody of a physical device by a patient.

    Many rows may exist per device; only the one with the latest
    ``assigned_at`` counts, and it authorizes only while ``revoked_at`` is
    unset.

    Attributes:
        device_id:   Hardware device identifier.
        patient_id:  Patient currently (or formerly) holding the device.
        assigned_at: When the assignment started.
        revoked_at:  When the assignment ended, or None while active.
    """

    device_id: str
    patient_id: str
    assigned_at: datetime
    revoked_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None


@dataclass
class AuditRecord:
    """Append-only copy of an accepted reading.

    Attributes:
        patient_id:  Patient resolved from the device assignment.
        device_id:   Originating device.
        reading_id:  Client reading id (may be None for legacy clients).
        type:        Metric name as sent.
        recorded_at: Observation instant.
        payload:     The reading exactly as received.
        audit_id:    Server-generated primary key.
    """

    patient_id: str
    device_id: str
    reading_id: str | None
    type: str
    recorded_at: datetime
    payload: dict[str, Any]
    audit_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class StructuredVital:
    """Normalized numeric row for a known vital type."""

    patient_id: str
    device_id: str
    type: str
    value: float
    unit: str | None
    recorded_at: datetime
    audit_id: uuid.UUID
    vital_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class WriteResult:
    audit: int
    structured: int
