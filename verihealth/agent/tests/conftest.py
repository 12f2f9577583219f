"""Shared fixtures for the on-device agent tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

import pytest

from verihealth.agent.credentials import FileSecureDeviceStore, JsonFileKeyValueStore
from verihealth.agent.discovery import CharacteristicValue, DeviceRadio, DiscoveredDevice
from verihealth.agent.queue import LocalQueue, SQLiteQueueBackend
from verihealth.agent.readings import WearableReading

TEST_DEVICE_ID = "dev-veri-0001"
TEST_DEVICE_SECRET = "0f1e2d3c4b5a69788796a5b4c3d2e1f0"


def make_reading(
    id: str,
    timestamp: str,
    type: str = "heart_rate",
    value: object = 72,
    device_id: str = TEST_DEVICE_ID,
) -> WearableReading:
    return WearableReading(
        id=id,
        device_id=device_id,
        type=type,
        value=value,
        unit="bpm" if type == "heart_rate" else None,
        timestamp=timestamp,
    )


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate`` holds; fail the test on timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def queue(tmp_path: Path) -> LocalQueue:
    q = LocalQueue(SQLiteQueueBackend(tmp_path / "queue.db"))
    await q.initialize()
    return q


@pytest.fixture
def secure_store(tmp_path: Path) -> FileSecureDeviceStore:
    return FileSecureDeviceStore(tmp_path / "secure_device.json")


@pytest.fixture
async def provisioned_store(secure_store: FileSecureDeviceStore) -> FileSecureDeviceStore:
    await secure_store.set_device_credentials(TEST_DEVICE_ID, TEST_DEVICE_SECRET)
    return secure_store


@pytest.fixture
def prefs(tmp_path: Path) -> JsonFileKeyValueStore:
    return JsonFileKeyValueStore(tmp_path / "preferences.json")


# ---------------------------------------------------------------------------
# Radio fake
# ---------------------------------------------------------------------------


class FakeRadio(DeviceRadio):
    """Scripted radio: every scan replays ``adverts``; reads return ``values``."""

    def __init__(
        self,
        adverts: list[DiscoveredDevice],
        values: list[CharacteristicValue] | None = None,
        fail_connect: bool = False,
    ) -> None:
        self.adverts = adverts
        self.values = values or []
        self.fail_connect = fail_connect
        self.scans = 0
        self.scan_stops = 0
        self.connects: list[str] = []
        self.disconnects: list[str] = []

    async def start_scan(self, on_device) -> None:
        self.scans += 1
        loop = asyncio.get_running_loop()
        for device in self.adverts:
            loop.call_soon(on_device, device)

    async def stop_scan(self) -> None:
        self.scan_stops += 1

    async def connect(self, device_id: str) -> None:
        self.connects.append(device_id)
        if self.fail_connect:
            raise ConnectionError("link lost")

    async def read_characteristics(
        self, device_id: str, max_reads: int
    ) -> list[CharacteristicValue]:
        return list(self.values)

    async def disconnect(self, device_id: str) -> None:
        self.disconnects.append(device_id)
