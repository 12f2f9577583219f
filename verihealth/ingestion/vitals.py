"""Split-write planning: every reading goes to the audit trail, known vitals
also become structured rows.

Value quality is not judged here.  A known type with a value that does not
parse as a number is stored as 0.0; flagging it is left to downstream
consumers of the structured table.
"""

from __future__ import annotations

import math
from typing import Any

from verihealth.ingestion.records import AuditRecord, StructuredVital
from verihealth.ingestion.validation import ValidatedReading

KNOWN_VITAL_TYPES: frozenset[str] = frozenset(
    {
        "heart_rate",
        "spo2",
        "steps",
        "respiratory_rate",
        "temperature",
        "blood_pressure_systolic",
        "blood_pressure_diastolic",
        "hrv",
        "rr_interval",
        "blood_glucose",
        "weight",
    }
)


def coerce_numeric(value: Any) -> float:
    """Reduce a reading value to a float, defaulting to 0.0.

    >>> coerce_numeric(72)
    72.0
    >>> coerce_numeric(" 97.5 ")
    97.5
    >>> coerce_numeric({"bpm": 72})
    0.0
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    # NaN and inf cannot be stored as clean numerics
    if not math.isfinite(number):
        return 0.0
    return number


def plan_records(
    readings: list[ValidatedReading],
    patients: dict[str, str],
) -> tuple[list[AuditRecord], list[StructuredVital]]:
    """Build the audit and structured rows for an authorized batch.

    Args:
        readings: Validated readings.
        patients: device_id → patient_id from the assignment lookup.  Any
                  patient id carried by the reading itself is ignored.

    Returns:
        (audit_records, structured_vitals)
    """
    audits: list[AuditRecord] = []
    vitals: list[StructuredVital] = []

    for item in readings:
        r = item.reading
        patient_id = patients[r.device_id]
        audit = AuditRecord(
            patient_id=patient_id,
            device_id=r.device_id,
            reading_id=None if r.id is None else str(r.id),
            type=r.type,
            recorded_at=r.timestamp,
            payload=item.raw,
        )
        audits.append(audit)

        if r.type in KNOWN_VITAL_TYPES:
            vitals.append(
                StructuredVital(
                    patient_id=patient_id,
                    device_id=r.device_id,
                    type=r.type,
                    value=coerce_numeric(r.value),
                    unit=r.unit if isinstance(r.unit, str) else None,
                    recorded_at=r.timestamp,
                    audit_id=audit.audit_id,
                )
            )

    return audits, vitals
