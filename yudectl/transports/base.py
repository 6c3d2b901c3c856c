"""Transport interfaces."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from yudectl.core.model import Advertisement, Characteristic, Profile


class Connection(Protocol):
    @property
    def address(self) -> str:
        """Peer address of the established link."""

    async def exchange_mtu(self, requested: int) -> int:
        """Request an ATT MTU and return the negotiated value."""

    async def discover_profile(self, full: bool = True) -> Profile:
        """Snapshot the peer's services and, when ``full``, their characteristics."""

    async def write_characteristic(
        self,
        characteristic: Characteristic,
        payload: bytes,
        want_ack: bool,
    ) -> None:
        """Write ``payload``; ``want_ack`` selects write-with-response."""

    async def read_characteristic(self, characteristic: Characteristic) -> bytes:
        """Read the current value of ``characteristic``."""

    def disconnected(self) -> asyncio.Event:
        """One-shot signal set when the link closes for any reason."""

    async def cancel_connection(self) -> None:
        """Request local teardown without waiting for the signal."""


class HostStack(Protocol):
    async def connect(
        self,
        predicate: Callable[[Advertisement], bool],
        *,
        timeout_s: float | None,
        cancel: asyncio.Event,
    ) -> Connection:
        """Scan until ``predicate`` matches and connect, or fail on deadline/cancel."""
