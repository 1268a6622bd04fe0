"""Interface every device transport implements."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from ..protocol.envelopes import RequestEnvelope

EnvelopeReceiver = Callable[[bytes], None]
LinkLostCallback = Callable[[BaseException], None]


class DeviceTransport(Protocol):
    """Moves request envelopes to the device and inbound payloads back.

    ``send`` returns once the envelope has been handed to the channel and
    raises :class:`odcbridge.errors.TransportError` when it cannot be.
    Requests must reach the device in the order ``send`` was called.
    """

    def set_receiver(
        self,
        receiver: EnvelopeReceiver | None,
        on_link_lost: LinkLostCallback | None = None,
    ) -> None: ...

    async def send(self, envelope: RequestEnvelope, *, timeout: float) -> None: ...


__all__ = ["DeviceTransport", "EnvelopeReceiver", "LinkLostCallback"]
