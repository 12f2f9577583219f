"""Wire the on-device components together from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from verihealth.agent.background import BackgroundSyncRunner
from verihealth.agent.credentials import (
    FileSecureDeviceStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    SecureDeviceStore,
)
from verihealth.agent.discovery import AutoConnectLoop, DeviceRadio
from verihealth.agent.provisioning import DeviceProvisioningService
from verihealth.agent.queue import LocalQueue, open_local_queue
from verihealth.agent.sync import SyncOrchestrator, SyncResult
from verihealth.config import Settings, get_settings

logger = logging.getLogger("verihealth.agent")


@dataclass
class DeviceAgent:
    """Everything the mobile side needs, sharing one queue and one orchestrator."""

    settings: Settings
    queue: LocalQueue
    credentials: SecureDeviceStore
    prefs: KeyValueStore
    orchestrator: SyncOrchestrator
    background: BackgroundSyncRunner
    provisioning: DeviceProvisioningService

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "DeviceAgent":
        s = settings or get_settings()
        data_dir = Path(s.agent_data_dir)

        queue = open_local_queue(data_dir / "verihealth_sync.db")
        credentials = FileSecureDeviceStore(data_dir / "secure_device.json")
        prefs = JsonFileKeyValueStore(data_dir / "preferences.json")
        orchestrator = SyncOrchestrator(
            queue,
            credentials,
            prefs,
            s.ingest_url,
            backoff_base=s.sync_backoff_base_seconds,
            timeout=s.http_timeout_seconds,
        )
        return cls(
            settings=s,
            queue=queue,
            credentials=credentials,
            prefs=prefs,
            orchestrator=orchestrator,
            background=BackgroundSyncRunner(
                orchestrator,
                interval_seconds=s.background_sync_interval_seconds,
                batch_size=s.sync_batch_size,
            ),
            provisioning=DeviceProvisioningService(
                credentials, s.device_provision_url, timeout=s.http_timeout_seconds
            ),
        )

    def auto_connect(self, radio: DeviceRadio) -> AutoConnectLoop:
        return AutoConnectLoop(
            radio,
            self.queue,
            self.credentials,
            rescan_delay=self.settings.rescan_delay_seconds,
            max_reads=self.settings.max_characteristic_reads,
        )

    async def start(self) -> None:
        await self.queue.initialize()
        self.background.start()
        logger.info("Device agent started (queue available=%s)", self.queue.available)

    async def sync_now(self) -> SyncResult:
        return await self.orchestrator.run_foreground_sync(
            retries=self.settings.sync_retries, batch_size=self.settings.sync_batch_size
        )

    async def stop(self) -> None:
        await self.background.stop()
