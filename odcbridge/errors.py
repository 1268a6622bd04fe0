"""Exception taxonomy for bridge operations."""

from __future__ import annotations

from typing import ClassVar


class BridgeError(Exception):
    """Base class for every failure surfaced by odcbridge."""

    kind: ClassVar[str] = "BridgeError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class KeyPathNotFound(BridgeError):
    kind = "KeyPathNotFound"


class InvalidBase(BridgeError):
    kind = "InvalidBase"


class ObserveInvalidKeyPath(BridgeError):
    kind = "ObserveInvalidKeyPath"


class FuncNotFound(BridgeError):
    kind = "FuncNotFound"


class RegistryError(BridgeError):
    kind = "RegistryError"


class TransportError(BridgeError):
    """Channel-level failure: broker unreachable, publish rejected, link lost."""

    kind = "TransportError"


class RequestTimeout(BridgeError, TimeoutError):
    """No response arrived before the request deadline."""

    kind = "Timeout"


class ObserveTimeout(RequestTimeout):
    kind = "ObserveTimeout"


class DeviceError(BridgeError):
    """Device reported an error kind outside the known taxonomy."""

    kind = "DeviceError"

    def __init__(self, message: str = "", *, device_kind: str | None = None) -> None:
        super().__init__(message)
        self.device_kind = device_kind


_ERRORS_BY_KIND: dict[str, type[BridgeError]] = {
    cls.kind: cls
    for cls in (
        KeyPathNotFound,
        InvalidBase,
        ObserveInvalidKeyPath,
        FuncNotFound,
        RegistryError,
        TransportError,
        RequestTimeout,
        ObserveTimeout,
    )
}


def error_from_kind(kind: str | None, message: str | None = None) -> BridgeError:
    """Map a device error kind onto the local exception type."""
    cls = _ERRORS_BY_KIND.get(kind or "")
    if cls is None:
        return DeviceError(message or "", device_kind=kind)
    return cls(message or "")


__all__ = [
    "BridgeError",
    "DeviceError",
    "FuncNotFound",
    "InvalidBase",
    "KeyPathNotFound",
    "ObserveInvalidKeyPath",
    "ObserveTimeout",
    "RegistryError",
    "RequestTimeout",
    "TransportError",
    "error_from_kind",
]
