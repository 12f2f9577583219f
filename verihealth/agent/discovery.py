"""Auto-connect loop for the one device provisioned on this installation.

State machine::

    STOPPED → SCANNING → CONNECTING → CONNECTED → DISCONNECTING → SCANNING ...
                                                               ↘ STOPPED (after stop())

Only an advertisement whose id equals the provisioned id starts a
connection; everything else is ignored without logging its identity.  After
each connect/read/disconnect cycle the loop waits ``rescan_delay`` seconds
and checks the running flag before scanning again.  ``stop()`` is
cooperative: a cycle already connecting finishes, then the loop exits.

Radio specifics (BLE scanning, GATT reads) live behind ``DeviceRadio``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from verihealth.agent.credentials import SecureDeviceStore
from verihealth.agent.queue import LocalQueue
from verihealth.agent.readings import WearableReading

logger = logging.getLogger("verihealth.agent.discovery")


# ---------------------------------------------------------------------------
# Radio abstraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiscoveredDevice:
    """An advertisement seen during a scan."""

    id: str
    name: str | None = None
    rssi: int | None = None


@dataclass(frozen=True)
class CharacteristicValue:
    """One value read from a connected device."""

    type: str
    value: Any
    unit: str | None = None


class DeviceRadio(ABC):
    """Transport used by the loop to find, connect to, and read a device."""

    @abstractmethod
    async def start_scan(self, on_device: Callable[[DiscoveredDevice], None]) -> None:
        """Begin scanning; ``on_device`` is called for every advertisement."""

    @abstractmethod
    async def stop_scan(self) -> None: ...

    @abstractmethod
    async def connect(self, device_id: str) -> None: ...

    @abstractmethod
    async def read_characteristics(
        self, device_id: str, max_reads: int
    ) -> list[CharacteristicValue]: ...

    @abstractmethod
    async def disconnect(self, device_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Connection session
# ---------------------------------------------------------------------------


Listener = Callable[[str | None], None]


class ConnectionSession:
    """Observable connection state for UI subscribers.

    Owned by the loop; listeners receive the connected device id (or None).
    """

    def __init__(self) -> None:
        self._connected_device_id: str | None = None
        self._listeners: set[Listener] = set()

    @property
    def connected_device_id(self) -> str | None:
        return self._connected_device_id

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that unsubscribes it."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def set_connected(self, device_id: str | None) -> None:
        self._connected_device_id = device_id
        for listener in list(self._listeners):
            try:
                listener(device_id)
            except Exception as exc:
                logger.warning("Connection listener raised: %s", exc)


# ---------------------------------------------------------------------------
# Auto-connect loop
# ---------------------------------------------------------------------------


class LoopState(str, Enum):
    STOPPED = "stopped"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class AutoConnectLoop:
    """Keep finding the provisioned device and feeding its readings to the queue."""

    def __init__(
        self,
        radio: DeviceRadio,
        queue: LocalQueue,
        credentials: SecureDeviceStore,
        session: ConnectionSession | None = None,
        rescan_delay: float = 2.0,
        max_reads: int = 4,
    ) -> None:
        self._radio = radio
        self._queue = queue
        self._credentials = credentials
        self.session = session or ConnectionSession()
        self._rescan_delay = rescan_delay
        self._max_reads = max_reads
        self._running = False
        self._state = LoopState.STOPPED
        self._match: asyncio.Future[DiscoveredDevice] | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> LoopState:
        return self._state

    async def start(self) -> bool:
        """Start the loop.

        Returns:
            True if the loop is running after the call, False when there is
            no provisioned device to look for.
        """
        if self._running:
            return True
        self._running = True

        target = await self._credentials.get_device_id()
        if not target:
            logger.info("No provisioned device; auto-connect not started")
            self._running = False
            return False
        if not self._running:
            # stop() ran while the credential lookup was pending
            logger.info("Auto-connect stopped before it began scanning")
            return False

        self._stop_event = stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(target, stop_event), name="verihealth-auto-connect"
        )
        return True

    async def stop(self) -> None:
        """Stop scanning; an in-flight connection cycle may still complete."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._match is not None and not self._match.done():
            self._match.cancel()
        try:
            await self._radio.stop_scan()
        except Exception as exc:
            logger.warning("Stopping scan failed: %s", type(exc).__name__)

    async def wait_stopped(self) -> None:
        """Wait for the loop task to exit after ``stop()``."""
        if self._task is not None:
            await self._task
            self._task = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, target: str, stop_event: asyncio.Event) -> None:
        # A loop from an earlier start() exits on its own event even if the
        # loop has been restarted since.
        try:
            while not stop_event.is_set():
                device = await self._scan_for(target)
                if device is not None and not stop_event.is_set():
                    await self._connect_cycle(device)
                if not stop_event.is_set():
                    await self._pause(stop_event)
        finally:
            if self._stop_event is stop_event:
                self._state = LoopState.STOPPED

    async def _pause(self, stop_event: asyncio.Event) -> None:
        # Fixed delay between cycles, cut short by stop().
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self._rescan_delay)
        except asyncio.TimeoutError:
            pass

    async def _scan_for(self, target: str) -> DiscoveredDevice | None:
        loop = asyncio.get_running_loop()
        self._match = match = loop.create_future()

        def on_device(device: DiscoveredDevice) -> None:
            if device.id == target and not match.done():
                match.set_result(device)

        self._state = LoopState.SCANNING
        try:
            await self._radio.start_scan(on_device)
            return await match
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise  # the loop task itself is being cancelled
            return None
        except Exception as exc:
            logger.warning("Scan failed: %s", type(exc).__name__)
            return None
        finally:
            self._match = None
            try:
                await self._radio.stop_scan()
            except Exception as exc:
                logger.warning("Stopping scan failed: %s", type(exc).__name__)

    async def _connect_cycle(self, device: DiscoveredDevice) -> None:
        await self._enqueue(
            WearableReading.observed_now(device.id, "device_discovered", 1, "count")
        )

        self._state = LoopState.CONNECTING
        try:
            await self._radio.connect(device.id)
            self._state = LoopState.CONNECTED
            self.session.set_connected(device.id)

            values = await self._radio.read_characteristics(device.id, self._max_reads)
            for item in values[: self._max_reads]:
                await self._enqueue(
                    WearableReading.observed_now(device.id, item.type, item.value, item.unit)
                )
        except Exception as exc:
            logger.warning("Connect/read failed: %s", type(exc).__name__)
        finally:
            self._state = LoopState.DISCONNECTING
            try:
                await self._radio.disconnect(device.id)
            except Exception as exc:
                logger.warning("Disconnect failed: %s", type(exc).__name__)
            self.session.set_connected(None)

    async def _enqueue(self, reading: WearableReading) -> None:
        try:
            await self._queue.enqueue(reading)
        except Exception as exc:
            logger.warning("Enqueue of %s reading failed: %s", reading.type, exc)
