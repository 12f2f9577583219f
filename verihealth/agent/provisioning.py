"""Device provisioning client.

Asks the server for a new device id and secret, then keeps both in the
secure store.  The response body carries the secret, so only the status code
is ever logged.
"""

from __future__ import annotations

import logging
import uuid

import httpx

from verihealth.agent.credentials import SecureDeviceStore

logger = logging.getLogger("verihealth.agent.provisioning")


class DeviceProvisioningService:
    def __init__(
        self,
        credentials: SecureDeviceStore,
        provision_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._credentials = credentials
        self._provision_url = provision_url
        self._http_client = http_client
        self._timeout = timeout

    async def provision_new_device(self, auth_headers: dict[str, str]) -> str | None:
        """Register this installation as a new device.

        Args:
            auth_headers: Authorization headers for the provisioning endpoint.

        Returns:
            The new device id, or None if the server refused or answered
            without credentials.
        """
        body = {"client_generated_id": str(uuid.uuid4())}
        headers = {"Content-Type": "application/json", **auth_headers}

        if self._http_client is not None:
            response = await self._http_client.post(
                self._provision_url, json=body, headers=headers
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._provision_url, json=body, headers=headers)

        if not response.is_success:
            logger.warning("Device provisioning failed with status %d", response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Device provisioning returned a non-JSON body")
            return None

        device_id = data.get("device_id") if isinstance(data, dict) else None
        device_secret = data.get("device_secret") if isinstance(data, dict) else None
        if not device_id or not device_secret:
            logger.warning("Device provisioning response missing credentials")
            return None

        await self._credentials.set_device_credentials(device_id, device_secret)
        return device_id

    async def get_provisioned_device_id(self) -> str | None:
        return await self._credentials.get_device_id()
