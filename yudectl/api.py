"""Stable public API for building tooling on top of yudectl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable

from yudectl.core.errors import (
    CharacteristicNotFoundError,
    CommandTimeoutError,
    ConfigError,
    DeviceNotFoundError,
    TransportConnectError,
    TransportDiscoveryError,
    TransportError,
    TransportMTUError,
    TransportReadError,
    TransportWriteError,
    YudectlError,
)
from yudectl.core.model import (
    Advertisement,
    Characteristic,
    CharProperty,
    PollPolicy,
    Profile,
    Service,
    SessionResult,
    Settings,
)
from yudectl.core.service import COMMAND, CommandService
from yudectl.transports.base import Connection, HostStack
from yudectl.transports.ble_gatt import BleakHostStack, build_host_stack

__all__ = [
    "YudectlError",
    "ConfigError",
    "DeviceNotFoundError",
    "CharacteristicNotFoundError",
    "CommandTimeoutError",
    "TransportError",
    "TransportConnectError",
    "TransportMTUError",
    "TransportDiscoveryError",
    "TransportWriteError",
    "TransportReadError",
    "Advertisement",
    "Characteristic",
    "CharProperty",
    "PollPolicy",
    "Profile",
    "Service",
    "SessionResult",
    "Settings",
    "COMMAND",
    "Connection",
    "HostStack",
    "BleakHostStack",
    "Client",
]


class Client:
    """Public client running the command session.

    Without an explicit ``host_stack`` the stack named by ``settings.device``
    is built.
    """

    def __init__(
        self,
        *,
        host_stack: HostStack | None = None,
        settings: Settings | None = None,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        settings = settings or Settings()
        self._service = CommandService(
            host_stack or build_host_stack(settings.device),
            settings,
            notify=notify,
        )

    @property
    def settings(self) -> Settings:
        return self._service.settings

    def run(self) -> SessionResult:
        return self._service.run()

    async def run_async(self) -> SessionResult:
        return await self._service.run_async()
