"""Periodic background sync.

Runs ``SyncOrchestrator.run_background_sync`` on a fixed interval (five
minutes by default) until stopped.  Each tick reports whether there was
new data, nothing to send, or a failure, the way OS background-fetch
schedulers expect.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from verihealth.agent.sync import SyncOrchestrator, SyncResult

logger = logging.getLogger("verihealth.agent.background")

DEFAULT_INTERVAL_SECONDS = 300


class BackgroundFetchResult(str, Enum):
    NO_DATA = "no_data"
    NEW_DATA = "new_data"
    FAILED = "failed"


def classify(result: SyncResult) -> BackgroundFetchResult:
    if not result.success:
        return BackgroundFetchResult.FAILED
    if result.processed == 0:
        return BackgroundFetchResult.NO_DATA
    return BackgroundFetchResult.NEW_DATA


class BackgroundSyncRunner:
    """Drive background syncs on an interval.

    Usage::

        runner = BackgroundSyncRunner(orchestrator, interval_seconds=300)
        runner.start()
        ...
        await runner.stop()
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        batch_size: int = 200,
    ) -> None:
        self._orchestrator = orchestrator
        self._interval = interval_seconds
        self._batch_size = batch_size
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.last_result: BackgroundFetchResult | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> BackgroundFetchResult:
        """Run one background sync and classify the outcome."""
        result = await self._orchestrator.run_background_sync(self._batch_size)
        outcome = classify(result)
        if outcome is BackgroundFetchResult.FAILED:
            logger.warning("Background sync failed: %s", result.error)
        else:
            logger.debug("Background sync: %s (%d readings)", outcome.value, result.processed)
        self.last_result = outcome
        return outcome

    def start(self) -> None:
        """Start the loop; no-op if it is already running."""
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="verihealth-background-sync")

    async def stop(self) -> None:
        """Ask the loop to finish and wait for the current tick to complete."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
