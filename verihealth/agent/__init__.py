"""On-device side of the wearable pipeline.

Modules:
    readings     — WearableReading and the sync payload envelope
    queue        — durable local queue (SQLite, optional backend)
    credentials  — secure device credentials and plain preferences
    sync         — signed batch upload with retry/backoff and single-flight
    background   — periodic background sync loop
    discovery    — auto-connect loop for the provisioned device
    provisioning — device registration client
    runtime      — DeviceAgent wiring from settings
"""

from verihealth.agent.queue import LocalQueue, QueueError, open_local_queue
from verihealth.agent.readings import WearableReading, build_sync_payload
from verihealth.agent.sync import SyncOrchestrator, SyncResult, SyncState

__all__ = [
    "WearableReading",
    "build_sync_payload",
    "LocalQueue",
    "QueueError",
    "open_local_queue",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
]
