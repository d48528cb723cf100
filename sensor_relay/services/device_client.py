"""
Device client interface used by the dashboard scheduler.

The dashboard never holds a raw connection itself; it is handed a
DeviceClient with an explicit open/read/close lifecycle. The production
implementation reads snapshots through the relay gateway over HTTP. Tests
inject their own implementation.
"""
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import ValidationError

from sensor_relay.schemas import SensorSample


class DeviceReadError(Exception):
    """A snapshot could not be turned into a valid SensorSample."""


class DeviceClient(ABC):
    """Source of SensorSample readings."""

    @abstractmethod
    async def open(self) -> None:
        ...

    @abstractmethod
    async def read(self) -> SensorSample:
        """Return the latest sample or raise DeviceReadError."""

    @abstractmethod
    async def close(self) -> None:
        ...

    async def __aenter__(self) -> "DeviceClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class RelayDeviceClient(DeviceClient):
    """
    Reads snapshots from the relay's /sensors endpoint.

    Pass an httpx transport (e.g. httpx.ASGITransport(app=app)) to poll a
    relay running in the same process without going over the network.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        path: str = "/sensors",
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.path = path
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout_s),
            transport=self._transport,
        )

    async def read(self) -> SensorSample:
        if self._client is None:
            raise DeviceReadError("Device client is not open")

        try:
            response = await self._client.get(self.path)
        except httpx.HTTPError as exc:
            raise DeviceReadError(f"Failed to fetch data: {exc!r}") from exc

        if not response.is_success:
            raise DeviceReadError(
                f"Failed to fetch data: {response.status_code} {response.reason_phrase}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise DeviceReadError("Snapshot body is not valid JSON") from exc

        try:
            return SensorSample.model_validate(payload)
        except ValidationError as exc:
            raise DeviceReadError(
                f"Snapshot rejected: {exc.error_count()} invalid field(s)"
            ) from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
