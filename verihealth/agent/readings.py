"""Readings as held on the device, and the sync payload built from them."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from verihealth.signing import utc_timestamp


@dataclass
class WearableReading:
    """A single timestamped observation captured on the device.

    Attributes:
        device_id: Identifier of the hardware that produced the reading.
        type:      Metric name ('heart_rate', 'spo2', 'steps', 'device_discovered').
        value:     Number, or a structured payload for complex readings.
        timestamp: ISO-8601 instant of observation (not of upload).
        unit:      Optional unit ('bpm', '%', 'count').
        id:        Unique reading id; generated when not supplied.
        uploaded:  Local queue state, never sent over the wire.
    """

    device_id: str
    type: str
    value: Any
    timestamp: str
    unit: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    uploaded: bool = False

    def __post_init__(self) -> None:
        if not self.device_id:
            raise ValueError("device_id is required")
        if not self.id:
            self.id = str(uuid.uuid4())
        try:
            datetime.fromisoformat(self.timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"unparseable timestamp {self.timestamp!r}") from exc

    @classmethod
    def observed_now(
        cls, device_id: str, type: str, value: Any, unit: str | None = None
    ) -> "WearableReading":
        """Create a reading stamped with the current instant."""
        return cls(
            device_id=device_id,
            type=type,
            value=value,
            unit=unit,
            timestamp=utc_timestamp(),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "type": self.type,
            "value": self.value,
            "unit": self.unit,
            "timestamp": self.timestamp,
        }


def build_sync_payload(
    readings: list[WearableReading], uploaded_at: str | None = None
) -> dict[str, Any]:
    """Build the transport envelope for one upload attempt.

    ``uploadedAt`` is the send time; the envelope is never stored.
    """
    return {
        "readings": [r.to_wire() for r in readings],
        "uploadedAt": uploaded_at or utc_timestamp(),
    }
