"""On-device credential and preference storage.

``SecureDeviceStore`` holds the provisioned device id and its signing
secret.  ``KeyValueStore`` holds non-secret values such as the last
successful sync time, which the UI may display freely.

The file-backed implementations keep each store in its own JSON file; the
secure one is created with owner-only permissions.  Values from the secure
store are never logged.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger("verihealth.agent.credentials")

DEVICE_ID_KEY = "veri_device_id_v1"
DEVICE_SECRET_KEY = "veri_device_secret_v1"
LAST_SYNC_KEY = "veri_last_sync"


class SecureDeviceStore(ABC):
    @abstractmethod
    async def get_device_id(self) -> str | None: ...

    @abstractmethod
    async def get_device_secret(self) -> str | None: ...

    @abstractmethod
    async def set_device_credentials(self, device_id: str, device_secret: str) -> None: ...

    @abstractmethod
    async def clear(self) -> None: ...


class KeyValueStore(ABC):
    @abstractmethod
    async def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None: ...


class _JsonFile:
    """Small JSON object persisted atomically (write temp file, then rename)."""

    def __init__(self, path: Path, mode: int = 0o644) -> None:
        self._path = path
        self._mode = mode

    def read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        return data if isinstance(data, dict) else {}

    def write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, self._mode)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh)
        os.replace(tmp, self._path)


class FileSecureDeviceStore(SecureDeviceStore):
    """Device credentials in an owner-readable (0600) JSON file."""

    def __init__(self, path: Path | str) -> None:
        self._file = _JsonFile(Path(path), mode=0o600)

    async def _get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._file.read)
        return data.get(key) or None

    async def get_device_id(self) -> str | None:
        return await self._get(DEVICE_ID_KEY)

    async def get_device_secret(self) -> str | None:
        return await self._get(DEVICE_SECRET_KEY)

    async def set_device_credentials(self, device_id: str, device_secret: str) -> None:
        data = {DEVICE_ID_KEY: device_id, DEVICE_SECRET_KEY: device_secret}
        await asyncio.to_thread(self._file.write, data)
        logger.info("Stored credentials for device %s", device_id)

    async def clear(self) -> None:
        await asyncio.to_thread(self._file.write, {})


class JsonFileKeyValueStore(KeyValueStore):
    """Plain key-value preferences in a JSON file."""

    def __init__(self, path: Path | str) -> None:
        self._file = _JsonFile(Path(path))

    async def get_item(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._file.read)
        return data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        def _update() -> None:
            data = self._file.read()
            data[key] = value
            self._file.write(data)

        await asyncio.to_thread(_update)
