"""Core data models used across transports, service, and CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class CharProperty(enum.IntFlag):
    BROADCAST = 0x01
    READ = 0x02
    WRITE_WITHOUT_RESPONSE = 0x04
    WRITE = 0x08
    NOTIFY = 0x10
    INDICATE = 0x20
    AUTHENTICATED_SIGNED_WRITES = 0x40
    EXTENDED_PROPERTIES = 0x80

    @property
    def label(self) -> str:
        """Display name used in diagnostics, e.g. ``Notify``."""
        names = [member.name for member in CharProperty if member in self]
        if not names:
            return "None"
        return "|".join(name.replace("_", " ").title().replace(" ", "") for name in names)


@dataclass(frozen=True)
class Advertisement:
    local_name: str | None
    address: str
    rssi: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Characteristic:
    handle: int
    uuid: str
    properties: CharProperty
    service_uuid: str

    def supports(self, required: CharProperty) -> bool:
        return bool(self.properties & required)


@dataclass(frozen=True)
class Service:
    uuid: str
    handle: int
    characteristics: tuple[Characteristic, ...] = ()


@dataclass(frozen=True)
class Profile:
    """Snapshot of the peripheral's GATT tree, in discovery order."""

    services: tuple[Service, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not any(service.characteristics for service in self.services)


@dataclass(frozen=True)
class PollPolicy:
    max_reads: int = 100
    interval_s: float = 0.1
    backoff: float = 1.5
    max_interval_s: float = 2.0


@dataclass(frozen=True)
class Settings:
    device: str = "default"
    scan_duration_s: float = 5.0
    mtu: int = 512
    write_with_response: bool = False
    poll: PollPolicy = field(default_factory=PollPolicy)


@dataclass(frozen=True)
class SessionResult:
    address: str
    mtu: int
    write_characteristic: Characteristic
    read_characteristic: Characteristic
    command: str
    response: str
    reads: int
