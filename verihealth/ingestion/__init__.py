"""Server-side wearable ingestion.

Modules:
    validation    — batch parsing and per-reading validation
    authorization — device → patient resolution from assignment records
    vitals        — audit / structured split planning
    store         — IngestStore interface and the Postgres implementation
    service       — the end-to-end pipeline used by the HTTP route
"""

from verihealth.ingestion.errors import (
    DeviceNotAuthorizedError,
    IngestError,
    IngestStorageError,
    IngestValidationError,
    SignatureError,
)
from verihealth.ingestion.service import IngestionService

__all__ = [
    "IngestionService",
    "IngestError",
    "IngestValidationError",
    "SignatureError",
    "DeviceNotAuthorizedError",
    "IngestStorageError",
]
