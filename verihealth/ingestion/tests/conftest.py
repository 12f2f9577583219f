"""Shared fixtures for ingestion tests: an in-memory store and request builders."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import pytest

from verihealth.config import Settings
from verihealth.ingestion.records import (
    AuditRecord,
    DeviceAssignment,
    StructuredVital,
    WriteResult,
)
from verihealth.ingestion.store import DeviceAlreadyRegisteredError, IngestStore
from verihealth.signing import SIGNATURE_HEADER, TIMESTAMP_HEADER, sign_payload_hex, utc_timestamp

DEVICE_A = "dev-band-a"
DEVICE_B = "dev-band-b"
PATIENT_1 = "patient-0001"
PATIENT_2 = "patient-0002"
SECRET_A = "a" * 64
SECRET_B = "b" * 64

ASSIGNED_AT = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class InMemoryIngestStore(IngestStore):
    """IngestStore over dicts, committing audit and structured rows together.

    ``fail_audit`` / ``fail_structured`` simulate a database error in the
    corresponding insert; either one leaves both tables untouched.
    ``fail_lookups`` makes the assignment and secret reads raise.
    """

    def __init__(self) -> None:
        self.assignments: list[DeviceAssignment] = []
        self.secrets: dict[str, str] = {}
        self.audit_rows: list[AuditRecord] = []
        self.vital_rows: list[StructuredVital] = []
        self.fail_audit = False
        self.fail_structured = False
        self.fail_lookups = False
        self.assignment_lookups = 0

    # --- setup helpers ---

    def assign(
        self,
        device_id: str,
        patient_id: str,
        assigned_at: datetime = ASSIGNED_AT,
        revoked_at: datetime | None = None,
    ) -> None:
        self.assignments.append(
            DeviceAssignment(device_id, patient_id, assigned_at, revoked_at)
        )

    # --- IngestStore ---

    async def latest_assignments(
        self, device_ids: list[str]
    ) -> dict[str, DeviceAssignment]:
        self.assignment_lookups += 1
        if self.fail_lookups:
            raise OSError("connection reset by peer")
        latest: dict[str, DeviceAssignment] = {}
        for a in self.assignments:
            if a.device_id not in device_ids:
                continue
            current = latest.get(a.device_id)
            if current is None or a.assigned_at > current.assigned_at:
                latest[a.device_id] = a
        return latest

    async def device_secrets(self, device_ids: list[str]) -> dict[str, str]:
        if self.fail_lookups:
            raise OSError("connection reset by peer")
        return {d: self.secrets[d] for d in device_ids if d in self.secrets}

    async def register_device(self, device_id: str, device_secret: str) -> None:
        if device_id in self.secrets:
            raise DeviceAlreadyRegisteredError(device_id)
        self.secrets[device_id] = device_secret

    async def write_records(
        self, audits: list[AuditRecord], vitals: list[StructuredVital]
    ) -> WriteResult:
        staged_audit = list(audits)
        if self.fail_audit:
            raise RuntimeError("insert into wearable_audit_log failed")
        staged_vitals = list(vitals)
        if self.fail_structured:
            raise RuntimeError("insert into vital_readings failed")
        self.audit_rows.extend(staged_audit)
        self.vital_rows.extend(staged_vitals)
        return WriteResult(audit=len(staged_audit), structured=len(staged_vitals))


def reading(
    type: str = "heart_rate",
    value: Any = 72,
    device_id: str = DEVICE_A,
    id: str = "r-1",
    timestamp: str = "2026-02-23T08:00:00Z",
    **extra: Any,
) -> dict[str, Any]:
    return {
        "id": id,
        "deviceId": device_id,
        "type": type,
        "value": value,
        "unit": "bpm" if type == "heart_rate" else None,
        "timestamp": timestamp,
        **extra,
    }


def batch_body(*readings: dict[str, Any]) -> bytes:
    payload = {"readings": list(readings), "uploadedAt": "2026-02-23T08:05:00.000Z"}
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def signed_headers(
    body: bytes, secret: str = SECRET_A, timestamp: str | None = None
) -> dict[str, str]:
    ts = timestamp or utc_timestamp()
    return {
        "content-type": "application/json",
        TIMESTAMP_HEADER: ts,
        SIGNATURE_HEADER: sign_payload_hex(secret, body.decode("utf-8"), ts),
    }


@pytest.fixture
def store() -> InMemoryIngestStore:
    s = InMemoryIngestStore()
    s.assign(DEVICE_A, PATIENT_1)
    s.assign(DEVICE_B, PATIENT_2)
    s.secrets[DEVICE_A] = SECRET_A
    s.secrets[DEVICE_B] = SECRET_B
    return s


@pytest.fixture
def settings() -> Settings:
    return Settings(ingest_require_signature=True, ingest_max_batch_size=50)


@pytest.fixture
def unsigned_settings() -> Settings:
    return Settings(ingest_require_signature=False, ingest_max_batch_size=50)
