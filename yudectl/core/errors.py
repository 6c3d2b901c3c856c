"""Domain-specific errors for yudectl."""

from __future__ import annotations


class YudectlError(Exception):
    """Base error for yudectl.

    ``phase`` names the session step that failed and prefixes the message.
    """

    phase: str | None = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.phase:
            return f"{self.phase} : {message}"
        return message


class ConfigError(YudectlError):
    """Raised when the settings file or a CLI option is invalid."""


class DeviceNotFoundError(YudectlError):
    """Raised when no matching peripheral connected before deadline or interrupt."""


class CharacteristicNotFoundError(YudectlError):
    """Raised when the profile exposes no characteristic with a required property."""

    def __init__(self, required_property) -> None:
        self.required_property = required_property
        label = getattr(required_property, "label", str(required_property))
        super().__init__(f"not found {label} Characteristic")


class CommandTimeoutError(YudectlError):
    """Raised when the peripheral never answers with the completion marker."""


class TransportError(YudectlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the host stack fails to establish the link."""


class TransportMTUError(TransportError):
    """Raised when the MTU exchange is rejected."""


class TransportDiscoveryError(TransportError):
    """Raised when service discovery fails."""


class TransportWriteError(TransportError):
    """Raised when a characteristic write fails."""


class TransportReadError(TransportError):
    """Raised when a characteristic read fails."""
