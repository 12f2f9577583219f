"""Exceptions raised by the ingestion core.

Each error carries the HTTP status the router answers with.  The message is
safe to return to the client; storage details are logged, never returned.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for ingestion failures."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class IngestValidationError(IngestError):
    """Malformed batch: bad content type, bad JSON, or an invalid reading."""

    status_code = 400


class SignatureError(IngestError):
    """Missing, stale, or non-matching request signature."""

    status_code = 401


class DeviceNotAuthorizedError(IngestError):
    """A device in the batch has no active patient assignment."""

    status_code = 403

    def __init__(self, device_id: str) -> None:
        super().__init__(f"device {device_id} is not assigned to a patient")
        self.device_id = device_id


class IngestStorageError(IngestError):
    """The audit or structured insert failed."""

    status_code = 500

    def __init__(self, message: str = "failed to store readings") -> None:
        super().__init__(message)
