"""Storage collaborators of the ingestion endpoint.

``IngestStore`` is the seam the service talks to; ``PostgresIngestStore``
is the production implementation on top of the Supabase Postgres pool.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import asyncpg

from verihealth.ingestion.records import (
    AuditRecord,
    DeviceAssignment,
    StructuredVital,
    WriteResult,
)
from verihealth.services.supabase import get_connection

logger = logging.getLogger("verihealth.ingest.store")

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"

INGEST_TABLES = (
    "wearable_devices",
    "device_assignments",
    "wearable_audit_log",
    "vital_readings",
)

_EXISTING_TABLES = """
SELECT table_name FROM information_schema.tables
WHERE table_schema = current_schema() AND table_name = ANY($1::text[])
"""

# Latest assignment per device, revoked or not.  The caller decides.
_LATEST_ASSIGNMENTS = """
SELECT DISTINCT ON (device_id) device_id, patient_id, assigned_at, revoked_at
FROM device_assignments
WHERE device_id = ANY($1::text[])
ORDER BY device_id, assigned_at DESC
"""

_DEVICE_SECRETS = """
SELECT device_id, device_secret FROM wearable_devices WHERE device_id = ANY($1::text[])
"""

_INSERT_DEVICE = """
INSERT INTO wearable_devices (device_id, device_secret) VALUES ($1, $2)
"""

_INSERT_AUDIT = """
INSERT INTO wearable_audit_log
    (audit_id, patient_id, device_id, reading_id, type, recorded_at, payload)
VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb)
"""

_INSERT_VITAL = """
INSERT INTO vital_readings
    (vital_id, audit_id, patient_id, device_id, type, value, unit, recorded_at)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
"""


class DeviceAlreadyRegisteredError(Exception):
    """Raised when provisioning a device id that already exists."""


class IngestStore(ABC):
    """Persistence interface consumed by the ingestion service."""

    @abstractmethod
    async def latest_assignments(
        self, device_ids: list[str]
    ) -> dict[str, DeviceAssignment]:
        """Return the most recent assignment for each device that has one.

        Devices without any assignment row are absent from the result.
        """

    @abstractmethod
    async def device_secrets(self, device_ids: list[str]) -> dict[str, str]:
        """Return the registered secret for each known device."""

    @abstractmethod
    async def register_device(self, device_id: str, device_secret: str) -> None:
        """Store a newly provisioned device.

        Raises:
            DeviceAlreadyRegisteredError: If the id is taken.
        """

    @abstractmethod
    async def write_records(
        self, audits: list[AuditRecord], vitals: list[StructuredVital]
    ) -> WriteResult:
        """Persist audit rows first, then structured rows.

        Implementations must never leave structured rows without their
        audit rows.
        """


class PostgresIngestStore(IngestStore):
    """IngestStore backed by the asyncpg pool in ``services.supabase``."""

    async def latest_assignments(
        self, device_ids: list[str]
    ) -> dict[str, DeviceAssignment]:
        if not device_ids:
            return {}
        async with get_connection() as conn:
            rows = await conn.fetch(_LATEST_ASSIGNMENTS, device_ids)
        return {
            r["device_id"]: DeviceAssignment(
                device_id=r["device_id"],
                patient_id=r["patient_id"],
                assigned_at=r["assigned_at"],
                revoked_at=r["revoked_at"],
            )
            for r in rows
        }

    async def device_secrets(self, device_ids: list[str]) -> dict[str, str]:
        if not device_ids:
            return {}
        async with get_connection() as conn:
            rows = await conn.fetch(_DEVICE_SECRETS, device_ids)
        return {r["device_id"]: r["device_secret"] for r in rows}

    async def register_device(self, device_id: str, device_secret: str) -> None:
        try:
            async with get_connection() as conn:
                await conn.execute(_INSERT_DEVICE, device_id, device_secret)
        except asyncpg.UniqueViolationError as exc:
            raise DeviceAlreadyRegisteredError(device_id) from exc

    async def write_records(
        self, audits: list[AuditRecord], vitals: list[StructuredVital]
    ) -> WriteResult:
        # One transaction: a failed vital insert rolls the audit rows back too.
        async with get_connection() as conn:
            await conn.executemany(
                _INSERT_AUDIT,
                [
                    (
                        a.audit_id,
                        a.patient_id,
                        a.device_id,
                        a.reading_id,
                        a.type,
                        a.recorded_at,
                        json.dumps(a.payload, default=str),
                    )
                    for a in audits
                ],
            )
            if vitals:
                await conn.executemany(
                    _INSERT_VITAL,
                    [
                        (
                            v.vital_id,
                            v.audit_id,
                            v.patient_id,
                            v.device_id,
                            v.type,
                            v.value,
                            v.unit,
                            v.recorded_at,
                        )
                        for v in vitals
                    ],
                )
        return WriteResult(audit=len(audits), structured=len(vitals))


async def missing_tables() -> list[str]:
    """Ingestion tables not present in the current schema."""
    async with get_connection() as conn:
        rows = await conn.fetch(_EXISTING_TABLES, list(INGEST_TABLES))
    present = {r["table_name"] for r in rows}
    return [t for t in INGEST_TABLES if t not in present]


async def ensure_schema() -> None:
    """Create the ingestion tables if they do not exist yet."""
    sql = _SCHEMA_PATH.read_text(encoding="utf-8")
    async with get_connection() as conn:
        await conn.execute(sql)
    logger.info("Ingestion schema ensured")
