"""BLE GATT transport implementation."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from yudectl.core.errors import (
    ConfigError,
    DeviceNotFoundError,
    TransportConnectError,
    TransportDiscoveryError,
    TransportMTUError,
    TransportReadError,
    TransportWriteError,
)
from yudectl.core.model import Advertisement, Characteristic, CharProperty, Profile, Service

_ADAPTER_RE = re.compile(r"^hci[0-9]+$")
_PROPERTY_NAMES = {
    "broadcast": CharProperty.BROADCAST,
    "read": CharProperty.READ,
    "write-without-response": CharProperty.WRITE_WITHOUT_RESPONSE,
    "write": CharProperty.WRITE,
    "notify": CharProperty.NOTIFY,
    "indicate": CharProperty.INDICATE,
    "authenticated-signed-writes": CharProperty.AUTHENTICATED_SIGNED_WRITES,
    "extended-properties": CharProperty.EXTENDED_PROPERTIES,
}
LOGGER = logging.getLogger(__name__)


def _import_bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise TransportConnectError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


def to_advertisement(device: Any, adv: Any) -> Advertisement:
    return Advertisement(
        local_name=adv.local_name,
        address=device.address,
        rssi=adv.rssi,
        raw={
            "manufacturer_data": dict(adv.manufacturer_data),
            "service_data": dict(adv.service_data),
            "service_uuids": list(adv.service_uuids),
            "tx_power": adv.tx_power,
        },
    )


def to_properties(names: list[str]) -> CharProperty:
    properties = CharProperty(0)
    for name in names:
        properties |= _PROPERTY_NAMES.get(name, CharProperty(0))
    return properties


def to_profile(services: Any, *, full: bool = True) -> Profile:
    """Convert a bleak service collection, keeping its iteration order."""
    converted: list[Service] = []
    for service in services:
        characteristics: tuple[Characteristic, ...] = ()
        if full:
            characteristics = tuple(
                Characteristic(
                    handle=char.handle,
                    uuid=char.uuid,
                    properties=to_properties(char.properties),
                    service_uuid=service.uuid,
                )
                for char in service.characteristics
            )
        converted.append(Service(uuid=service.uuid, handle=service.handle, characteristics=characteristics))
    return Profile(services=tuple(converted))


class BleakConnection:
    def __init__(self, client: Any, disconnected: asyncio.Event) -> None:
        self._client = client
        self._disconnected = disconnected
        self._cancel_requested = False

    @property
    def address(self) -> str:
        return self._client.address

    async def exchange_mtu(self, requested: int) -> int:
        if not self._client.is_connected:
            raise TransportMTUError(f"{self.address} is not connected")

        # BlueZ reports 23 until the MTU is acquired explicitly.
        acquire = getattr(getattr(self._client, "_backend", None), "_acquire_mtu", None)
        if acquire is not None:
            try:
                await acquire()
            except Exception as exc:
                LOGGER.warning("MTU acquisition unsupported by backend: %s", exc)

        try:
            negotiated = int(self._client.mtu_size)
        except Exception as exc:
            raise TransportMTUError(f"MTU unavailable for {self.address}: {exc}") from exc
        return min(requested, negotiated)

    async def discover_profile(self, full: bool = True) -> Profile:
        try:
            return to_profile(self._client.services, full=full)
        except Exception as exc:
            raise TransportDiscoveryError(f"GATT discovery failed for {self.address}: {exc}") from exc

    async def write_characteristic(
        self,
        characteristic: Characteristic,
        payload: bytes,
        want_ack: bool,
    ) -> None:
        try:
            await self._client.write_gatt_char(characteristic.handle, payload, response=want_ack)
        except Exception as exc:
            raise TransportWriteError(
                f"BLE write to {characteristic.uuid} failed: {exc}"
            ) from exc

    async def read_characteristic(self, characteristic: Characteristic) -> bytes:
        try:
            data = await self._client.read_gatt_char(characteristic.handle)
        except Exception as exc:
            raise TransportReadError(
                f"BLE read from {characteristic.uuid} failed: {exc}"
            ) from exc
        return bytes(data)

    def disconnected(self) -> asyncio.Event:
        return self._disconnected

    async def cancel_connection(self) -> None:
        if self._cancel_requested or self._disconnected.is_set():
            return
        self._cancel_requested = True
        try:
            await self._client.disconnect()
        except Exception as exc:
            raise TransportConnectError(f"BLE disconnect from {self.address} failed: {exc}") from exc


class BleakHostStack:
    """Scan and connect through bleak's platform backend or a BlueZ adapter."""

    def __init__(self, adapter: str | None = None, *, connect_timeout_s: float = 10.0) -> None:
        self.adapter = adapter
        self.connect_timeout_s = connect_timeout_s

    def _backend_kwargs(self) -> dict[str, Any]:
        return {"adapter": self.adapter} if self.adapter else {}

    async def _scan(self, predicate: Callable[[Advertisement], bool]) -> Any:
        bleak = _import_bleak()
        async with bleak.BleakScanner(**self._backend_kwargs()) as scanner:
            async for device, adv in scanner.advertisement_data():
                if predicate(to_advertisement(device, adv)):
                    LOGGER.debug("Matched %s (%s) rssi=%s", adv.local_name, device.address, adv.rssi)
                    return device
        raise DeviceNotFoundError("scanner stopped before a matching advertisement")

    async def _race(
        self,
        work: Awaitable[Any],
        *,
        deadline: float | None,
        timeout_s: float | None,
        cancel: asyncio.Event,
    ) -> Any:
        """Await ``work`` unless ``cancel`` fires or ``deadline`` passes first."""
        loop = asyncio.get_running_loop()
        remaining = None if deadline is None else max(0.0, deadline - loop.time())
        work_task = asyncio.ensure_future(work)
        cancel_task = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait(
                {work_task, cancel_task},
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (work_task, cancel_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work_task, cancel_task, return_exceptions=True)

        if work_task.cancelled():
            reason = "interrupted" if cancel.is_set() else f"timed out after {timeout_s}s"
            raise DeviceNotFoundError(f"no matching peripheral found ({reason})")
        return work_task.result()

    async def connect(
        self,
        predicate: Callable[[Advertisement], bool],
        *,
        timeout_s: float | None,
        cancel: asyncio.Event,
    ) -> BleakConnection:
        deadline = None if timeout_s is None else asyncio.get_running_loop().time() + timeout_s
        try:
            device = await self._race(
                self._scan(predicate), deadline=deadline, timeout_s=timeout_s, cancel=cancel
            )
        except DeviceNotFoundError:
            raise
        except Exception as exc:
            raise TransportConnectError(f"BLE scan failed: {exc}") from exc

        return await self._race(
            self._open(device), deadline=deadline, timeout_s=timeout_s, cancel=cancel
        )

    async def _open(self, device: Any) -> BleakConnection:
        bleak = _import_bleak()
        disconnected = asyncio.Event()
        client = bleak.BleakClient(
            device,
            disconnected_callback=lambda _client: disconnected.set(),
            timeout=self.connect_timeout_s,
            **self._backend_kwargs(),
        )
        try:
            await client.connect()
        except asyncio.CancelledError:
            await _abandon(client)
            raise
        except Exception as exc:
            raise TransportConnectError(f"BLE connect failed for {device.address}: {exc}") from exc
        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {device.address}")
        return BleakConnection(client, disconnected)


async def _abandon(client: Any) -> None:
    # Link setup was interrupted; drop whatever the backend managed to open.
    try:
        await client.disconnect()
    except Exception as exc:
        LOGGER.warning("Could not drop interrupted connection: %s", exc)


def build_host_stack(device: str) -> BleakHostStack:
    """Resolve the ``--device`` selector to a host stack implementation."""
    if device == "default":
        return BleakHostStack()
    if _ADAPTER_RE.match(device):
        return BleakHostStack(adapter=device)
    raise ConfigError(
        f"Unknown device '{device}'. Use 'default' or a BlueZ adapter name such as 'hci0'."
    )
