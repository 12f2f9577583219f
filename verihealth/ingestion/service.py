"""Ingestion pipeline: validate → verify signature → authorize → split-write.

Usage::

    service = IngestionService(PostgresIngestStore(), settings)
    result = await service.ingest(body, request.headers)

Every failure is raised as an ``IngestError`` subclass carrying its HTTP
status; nothing is written unless the whole batch is accepted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping

from verihealth.config import Settings, get_settings
from verihealth.ingestion.authorization import resolve_patients
from verihealth.ingestion.errors import IngestError, IngestStorageError, SignatureError
from verihealth.ingestion.records import WriteResult
from verihealth.ingestion.store import IngestStore
from verihealth.ingestion.validation import distinct_device_ids, parse_batch
from verihealth.ingestion.vitals import plan_records
from verihealth.signing import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_signature

logger = logging.getLogger("verihealth.ingest")


class IngestionService:
    """Turn a signed device batch into audit and structured rows."""

    def __init__(self, store: IngestStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or get_settings()

    async def ingest(self, body: bytes, headers: Mapping[str, str]) -> WriteResult:
        """Run the full pipeline for one request.

        Args:
            body:    Raw request body.
            headers: Request headers (case-insensitive mapping or lowercase keys).

        Returns:
            Counts of audit and structured rows written.
        """
        readings = parse_batch(
            body,
            headers.get("content-type"),
            max_batch_size=self._settings.ingest_max_batch_size,
        )
        device_ids = distinct_device_ids(readings)

        # Unsigned callers never reach the assignment lookup.
        if self._settings.ingest_require_signature:
            await self._verify(body, headers, device_ids)

        try:
            patients = await resolve_patients(self._store, device_ids)
        except IngestError:
            raise
        except Exception as exc:
            logger.error("Assignment lookup failed: %s", exc)
            raise IngestStorageError() from exc

        audits, vitals = plan_records(readings, patients)

        try:
            result = await self._store.write_records(audits, vitals)
        except Exception as exc:
            logger.error(
                "Storage failure writing %d audit / %d structured rows: %s",
                len(audits),
                len(vitals),
                exc,
            )
            raise IngestStorageError() from exc

        logger.info(
            "Ingested batch: devices=%d audit=%d structured=%d",
            len(device_ids),
            result.audit,
            result.structured,
        )
        return result

    async def _verify(
        self, body: bytes, headers: Mapping[str, str], device_ids: list[str]
    ) -> None:
        timestamp = headers.get(TIMESTAMP_HEADER)
        signature = headers.get(SIGNATURE_HEADER)
        if not timestamp or not signature:
            raise SignatureError("missing signature headers")

        self._check_freshness(timestamp)

        try:
            secrets_by_device = await self._store.device_secrets(device_ids)
        except Exception as exc:
            logger.error("Device secret lookup failed: %s", exc)
            raise IngestStorageError() from exc
        for device_id in device_ids:
            secret = secrets_by_device.get(device_id)
            if secret is None or not verify_signature(secret, body, timestamp, signature):
                logger.warning("Signature check failed for device %s", device_id)
                raise SignatureError("invalid signature")

    def _check_freshness(self, timestamp: str) -> None:
        try:
            sent_at = datetime.fromisoformat(timestamp)
        except ValueError as exc:
            raise SignatureError("invalid signature timestamp") from exc
        if sent_at.tzinfo is None:
            sent_at = sent_at.replace(tzinfo=timezone.utc)

        skew = abs((datetime.now(timezone.utc) - sent_at).total_seconds())
        if skew > self._settings.ingest_timestamp_tolerance_seconds:
            raise SignatureError("signature timestamp outside tolerance window")
