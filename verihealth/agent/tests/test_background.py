"""Tests for the periodic background sync runner."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from verihealth.agent.background import BackgroundFetchResult, BackgroundSyncRunner, classify
from verihealth.agent.sync import SyncResult
from verihealth.agent.tests.conftest import wait_for


class TestClassify:
    def test_failure(self) -> None:
        assert classify(SyncResult(success=False, error="network_error")) is (
            BackgroundFetchResult.FAILED
        )

    def test_nothing_sent(self) -> None:
        assert classify(SyncResult(success=True, processed=0)) is BackgroundFetchResult.NO_DATA

    def test_readings_sent(self) -> None:
        assert classify(SyncResult(success=True, processed=12)) is BackgroundFetchResult.NEW_DATA


class TestRunner:
    @pytest.mark.asyncio
    async def test_tick_uses_single_try_background_sync(self) -> None:
        orchestrator = AsyncMock()
        orchestrator.run_background_sync.return_value = SyncResult(success=True, processed=4)
        runner = BackgroundSyncRunner(orchestrator, interval_seconds=300, batch_size=50)

        outcome = await runner.tick()

        assert outcome is BackgroundFetchResult.NEW_DATA
        assert runner.last_result is BackgroundFetchResult.NEW_DATA
        orchestrator.run_background_sync.assert_awaited_once_with(50)
        orchestrator.run_foreground_sync.assert_not_called()

    @pytest.mark.asyncio
    async def test_loop_ticks_on_interval_until_stopped(self) -> None:
        orchestrator = AsyncMock()
        orchestrator.run_background_sync.return_value = SyncResult(success=True)
        runner = BackgroundSyncRunner(orchestrator, interval_seconds=0.01)

        runner.start()
        await wait_for(lambda: orchestrator.run_background_sync.await_count >= 3)
        await runner.stop()

        assert runner.running is False
        calls = orchestrator.run_background_sync.await_count
        await asyncio.sleep(0.05)
        assert orchestrator.run_background_sync.await_count == calls

    @pytest.mark.asyncio
    async def test_stop_interrupts_the_wait(self) -> None:
        orchestrator = AsyncMock()
        orchestrator.run_background_sync.return_value = SyncResult(success=True)
        runner = BackgroundSyncRunner(orchestrator, interval_seconds=3600)

        runner.start()
        await wait_for(lambda: orchestrator.run_background_sync.await_count == 1)
        await asyncio.wait_for(runner.stop(), timeout=1.0)

        assert runner.running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        orchestrator = AsyncMock()
        orchestrator.run_background_sync.return_value = SyncResult(success=True)
        runner = BackgroundSyncRunner(orchestrator, interval_seconds=3600)

        runner.start()
        runner.start()
        await wait_for(lambda: orchestrator.run_background_sync.await_count >= 1)
        await asyncio.sleep(0.01)
        await runner.stop()

        assert orchestrator.run_background_sync.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_tick_keeps_loop_alive(self) -> None:
        orchestrator = AsyncMock()
        orchestrator.run_background_sync.return_value = SyncResult(
            success=False, error="network_error"
        )
        runner = BackgroundSyncRunner(orchestrator, interval_seconds=0.01)

        runner.start()
        await wait_for(lambda: orchestrator.run_background_sync.await_count >= 2)
        assert runner.running is True
        assert runner.last_result is BackgroundFetchResult.FAILED
        await runner.stop()
