"""Base interfaces shared by the bridge service components."""

from __future__ import annotations

from typing import Any, Protocol

from ..config.settings import RuntimeConfig
from ..protocol.values import Base
from .dispatcher import Reply, Watch


class BridgeContext(Protocol):
    """Surface of the dispatcher that service components rely on."""

    @property
    def request_timeout(self) -> float: ...

    async def send(
        self,
        kind: str,
        args: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Reply: ...

    def watch(
        self,
        kind: str,
        args: dict[str, Any] | None = None,
        *,
        release_kind: str | None = None,
        timeout: float | None = None,
    ) -> Watch: ...


class ServiceComponent:
    """Common constructor for components layered on the dispatcher."""

    def __init__(self, config: RuntimeConfig, ctx: BridgeContext) -> None:
        self.config = config
        self.ctx = ctx


def target_args(base: Base | str | None, key_path: str) -> dict[str, Any]:
    """Request arguments addressing ``base`` + ``key_path``.

    Raises :class:`odcbridge.errors.InvalidBase` for an unknown base.
    """
    return {"base": Base.coerce(base).value, "keyPath": key_path}


__all__ = ["BridgeContext", "ServiceComponent", "target_args"]
