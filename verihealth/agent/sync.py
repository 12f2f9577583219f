"""Upload queued readings to the ingestion endpoint.

One sync attempt walks ``IDLE → BATCH_SELECTED → SIGNED → UPLOADING`` and
ends in ``SUCCESS`` or ``FAILED``, passing through ``RETRY`` between tries.

The batch is signed once per attempt.  Every retry re-sends the same body
with the same ``x-veri-timestamp`` and ``x-veri-signature``, so the server
sees one logical request inside a single replay window.

Backoff between tries is ``2**n * backoff_base`` seconds where ``n`` is the
zero-based index of the try that just failed (0.5 s, 1 s, 2 s, ... with the
default base).  No delay follows the final try.  Only transport errors,
5xx, 408 and 429 are retried; any other 4xx ends the attempt at once and
leaves the batch queued.

Foreground and background syncs share one orchestrator instance; a
single-flight latch makes an overlapping call return ``sync_in_progress``
instead of selecting the same batch twice.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

import httpx

from verihealth.agent.credentials import LAST_SYNC_KEY, KeyValueStore, SecureDeviceStore
from verihealth.agent.queue import DEFAULT_BATCH_SIZE, LocalQueue
from verihealth.agent.readings import build_sync_payload
from verihealth.signing import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    canonical_json,
    sign_payload_hex,
    utc_timestamp,
)

logger = logging.getLogger("verihealth.agent.sync")

DEFAULT_RETRIES = 3

# 4xx statuses worth another try; every other 4xx is final, every 5xx retried
RETRYABLE_STATUSES = frozenset({408, 429})

# Result error codes, shown to the user as short reasons
NO_DEVICE_SECRET = "no_device_secret"
NETWORK_ERROR = "network_error"
MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
SYNC_IN_PROGRESS = "sync_in_progress"
UNEXPECTED_ERROR = "unexpected_error"


def upload_failed_status(status_code: int) -> str:
    return f"upload_failed_status_{status_code}"


class SyncState(str, Enum):
    IDLE = "idle"
    BATCH_SELECTED = "batch_selected"
    SIGNED = "signed"
    UPLOADING = "uploading"
    RETRY = "retry"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync attempt.

    Attributes:
        success:   True when the batch was accepted (or there was nothing to send).
        processed: Number of readings marked uploaded.
        error:     Short reason code when ``success`` is False.
    """

    success: bool
    processed: int = 0
    error: str | None = None


class SyncOrchestrator:
    """Move one batch of queued readings from the device to the server.

    Usage::

        orchestrator = SyncOrchestrator(queue, secure_store, prefs, settings.ingest_url)
        result = await orchestrator.run_foreground_sync(retries=3)
        if not result.success:
            show_status(result.error)
    """

    def __init__(
        self,
        queue: LocalQueue,
        credentials: SecureDeviceStore,
        prefs: KeyValueStore,
        ingest_url: str,
        http_client: httpx.AsyncClient | None = None,
        backoff_base: float = 0.5,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            queue:        Local durable queue.
            credentials:  Secure store holding the device secret.
            prefs:        Plain store for the last-sync marker.
            ingest_url:   Ingestion endpoint URL.
            http_client:  Optional pre-configured httpx client (for testing).
            backoff_base: Seconds multiplied by ``2**n`` between tries.
            timeout:      Per-request timeout when no client is injected.
            sleep:        Awaitable delay function (replaced in tests).
        """
        self._queue = queue
        self._credentials = credentials
        self._prefs = prefs
        self._ingest_url = ingest_url
        self._http_client = http_client
        self._backoff_base = backoff_base
        self._timeout = timeout
        self._sleep = sleep
        self._in_flight = False
        self._state = SyncState.IDLE

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def backoff_delay(self, failed_try: int) -> float:
        """Delay after the zero-based ``failed_try``."""
        return (2 ** failed_try) * self._backoff_base

    async def run_foreground_sync(
        self, retries: int = DEFAULT_RETRIES, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> SyncResult:
        """User-triggered sync with retry and backoff."""
        return await self._run_exclusive(retries, batch_size)

    async def run_background_sync(self, batch_size: int = DEFAULT_BATCH_SIZE) -> SyncResult:
        """Periodic sync: a single try; the next tick is the retry."""
        return await self._run_exclusive(1, batch_size)

    async def last_sync_at(self) -> str | None:
        """Last successful sync time for display, or None."""
        try:
            return await self._prefs.get_item(LAST_SYNC_KEY)
        except Exception as exc:
            logger.debug("Could not read last sync marker: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_exclusive(self, retries: int, batch_size: int) -> SyncResult:
        if self._in_flight:
            logger.info("Sync requested while another is running; skipping")
            return SyncResult(success=False, error=SYNC_IN_PROGRESS)

        self._in_flight = True
        try:
            result = await self._sync(retries, batch_size)
        except Exception as exc:
            # Only the exception type: messages may echo payload or secret.
            logger.error("Sync failed unexpectedly: %s", type(exc).__name__)
            result = SyncResult(success=False, error=UNEXPECTED_ERROR)
        finally:
            self._in_flight = False

        self._state = SyncState.SUCCESS if result.success else SyncState.FAILED
        return result

    async def _sync(self, retries: int, batch_size: int) -> SyncResult:
        self._state = SyncState.IDLE

        batch = await self._queue.dequeue_batch(batch_size)
        if not batch:
            logger.debug("Nothing to sync")
            return SyncResult(success=True, processed=0)
        self._state = SyncState.BATCH_SELECTED

        device_secret = await self._credentials.get_device_secret()
        if not device_secret:
            logger.warning("No device secret provisioned; sync aborted")
            return SyncResult(success=False, error=NO_DEVICE_SECRET)

        timestamp = utc_timestamp()
        payload = build_sync_payload(batch, uploaded_at=timestamp)
        body = canonical_json(payload).encode("utf-8")
        signature = sign_payload_hex(device_secret, payload, timestamp)
        headers = {
            "Content-Type": "application/json",
            TIMESTAMP_HEADER: timestamp,
            SIGNATURE_HEADER: signature,
        }
        self._state = SyncState.SIGNED

        error = MAX_RETRIES_EXCEEDED
        for attempt in range(retries):
            self._state = SyncState.UPLOADING
            try:
                response = await self._post(body, headers)
            except httpx.HTTPError as exc:
                logger.warning(
                    "Upload try %d/%d failed: %s", attempt + 1, retries, type(exc).__name__
                )
                error = NETWORK_ERROR
            else:
                if response.is_success:
                    return await self._complete([r.id for r in batch])
                logger.warning(
                    "Upload try %d/%d rejected with status %d",
                    attempt + 1,
                    retries,
                    response.status_code,
                )
                error = upload_failed_status(response.status_code)
                if response.status_code not in RETRYABLE_STATUSES and response.status_code < 500:
                    # rejected batch: resending the same request cannot succeed
                    return SyncResult(success=False, error=error)

            if attempt + 1 < retries:
                self._state = SyncState.RETRY
                await self._sleep(self.backoff_delay(attempt))

        return SyncResult(success=False, error=error)

    async def _post(self, body: bytes, headers: dict[str, str]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self._ingest_url, content=body, headers=headers)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._ingest_url, content=body, headers=headers)

    async def _complete(self, ids: list[str]) -> SyncResult:
        await self._queue.mark_uploaded(ids)
        try:
            await self._prefs.set_item(LAST_SYNC_KEY, utc_timestamp())
        except Exception as exc:
            logger.debug("Could not persist last sync marker: %s", exc)
        logger.info("Synced %d readings", len(ids))
        return SyncResult(success=True, processed=len(ids))
