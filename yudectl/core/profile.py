"""Characteristic selection over a discovered GATT profile."""

from __future__ import annotations

from yudectl.core.errors import CharacteristicNotFoundError
from yudectl.core.model import Characteristic, CharProperty, Profile


def select_characteristic(profile: Profile, required: CharProperty) -> Characteristic:
    """Return the first characteristic, in discovery order, exposing ``required``."""
    for service in profile.services:
        for characteristic in service.characteristics:
            if characteristic.supports(required):
                return characteristic
    raise CharacteristicNotFoundError(required)


def select_write_characteristic(profile: Profile) -> Characteristic:
    return select_characteristic(profile, CharProperty.WRITE)


def select_notify_characteristic(profile: Profile) -> Characteristic:
    return select_characteristic(profile, CharProperty.NOTIFY)


def describe_profile(profile: Profile) -> list[str]:
    lines: list[str] = []
    for service in profile.services:
        lines.append(f"Service {service.uuid} (handle 0x{service.handle:04X})")
        for characteristic in service.characteristics:
            lines.append(
                f"  Characteristic {characteristic.uuid} "
                f"(handle 0x{characteristic.handle:04X}) [{characteristic.properties.label}]"
            )
    return lines
