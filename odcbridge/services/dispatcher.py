"""Correlation of device requests and responses over one logical channel."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from types import TracebackType
from typing import Any

import msgspec

from ..errors import BridgeError, RequestTimeout, TransportError, error_from_kind
from ..protocol.envelopes import InboundEnvelope, RequestEnvelope, decode_inbound
from ..protocol.values import decode_value
from ..transport.base import DeviceTransport

logger = logging.getLogger("odcbridge.dispatcher")

WatchItem = InboundEnvelope | BaseException


def _events_factory() -> asyncio.Queue[WatchItem] | None:
    return None


class PendingRequest(msgspec.Struct):
    """Book-keeping for a request in flight.

    A watch registration keeps its entry after the acknowledgement; later
    events for the same id are queued on ``events`` until it is released.
    """

    id: int
    kind: str
    issued_at: float
    future: asyncio.Future[InboundEnvelope]
    events: asyncio.Queue[WatchItem] | None = msgspec.field(default_factory=_events_factory)
    transmitted: bool = False
    acknowledged: bool = False

    @property
    def is_watch(self) -> bool:
        return self.events is not None


class Reply(msgspec.Struct, frozen=True):
    result: Any
    time_taken: float
    device_time_taken: float | None = None


class DispatcherStats(msgspec.Struct):
    sent: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    discarded: int = 0
    events: int = 0


class CorrelationDispatcher:
    """Multiplexes concurrent requests onto a single device transport.

    The pending table is owned by the event loop the dispatcher runs on and
    is never exposed. Ids come from a monotonic counter and are never
    reused for the lifetime of the dispatcher.
    """

    def __init__(
        self,
        transport: DeviceTransport,
        *,
        request_timeout: float,
    ) -> None:
        self._transport = transport
        self._request_timeout = request_timeout
        self._pending: dict[int, PendingRequest] = {}
        self._ids = itertools.count(1)
        self._closed = False
        self.stats = DispatcherStats()
        transport.set_receiver(self.feed, self.fail_all)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    def snapshot(self) -> dict[str, int]:
        data = msgspec.structs.asdict(self.stats)
        data["pending"] = self.pending_count
        return data

    async def send(
        self,
        kind: str,
        args: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Reply:
        """Issue a request and wait for its single response."""
        deadline = self._request_timeout if timeout is None else timeout
        pending = self._allocate(kind, watch=False)
        try:
            envelope = await self._exchange(pending, args or {}, deadline)
        finally:
            self._pending.pop(pending.id, None)
        return self._to_reply(pending, envelope)

    def watch(
        self,
        kind: str,
        args: dict[str, Any] | None = None,
        *,
        release_kind: str | None = None,
        timeout: float | None = None,
    ) -> Watch:
        """Register a request that keeps receiving events after its reply.

        Use as ``async with dispatcher.watch(...) as watch``; leaving the
        block removes the registration and, once acknowledged, sends
        *release_kind* so the device drops it as well.
        """
        deadline = self._request_timeout if timeout is None else timeout
        return Watch(self, kind, args or {}, release_kind=release_kind, timeout=deadline)

    async def notify(self, kind: str, args: dict[str, Any] | None = None) -> None:
        """Send a request whose response is not awaited; any reply is discarded."""
        envelope = RequestEnvelope(id=next(self._ids), kind=kind, args=args or {})
        await self._transport.send(envelope, timeout=self._request_timeout)

    def feed(self, payload: bytes) -> None:
        """Entry point for raw inbound payloads from the transport."""
        try:
            envelope = decode_inbound(payload)
        except msgspec.DecodeError as exc:
            self.stats.discarded += 1
            logger.warning("Dropping malformed device envelope: %s", exc)
            return
        self.deliver(envelope)

    def deliver(self, envelope: InboundEnvelope) -> None:
        pending = self._pending.get(envelope.id)
        if pending is None:
            self.stats.discarded += 1
            logger.debug("Discarding envelope for unknown or expired id %d", envelope.id)
            return

        if envelope.is_event:
            if pending.events is None:
                self.stats.discarded += 1
                logger.debug("Discarding event '%s' for plain request %d", envelope.event, envelope.id)
                return
            self.stats.events += 1
            pending.events.put_nowait(envelope)
            return

        if not pending.future.done():
            if pending.events is not None and envelope.success:
                pending.acknowledged = True
            pending.future.set_result(envelope)
            return

        if pending.events is not None and not envelope.success:
            # The device dropped an acknowledged watch on its own.
            pending.events.put_nowait(self._error_for(envelope))
            return

        self.stats.discarded += 1
        logger.debug("Discarding duplicate response for id %d", envelope.id)

    def fail_all(self, exc: BaseException) -> None:
        """Fail every waiter, e.g. when the link to the device is lost."""
        if not self._pending:
            return
        logger.warning("Failing %d pending request(s): %s", len(self._pending), exc)
        for pending in list(self._pending.values()):
            failure = exc if isinstance(exc, BridgeError) else TransportError(str(exc))
            if not pending.future.done():
                pending.future.set_exception(failure)
            elif pending.events is not None:
                pending.events.put_nowait(failure)

    def close(self) -> None:
        self._closed = True
        self.fail_all(TransportError("Dispatcher closed"))
        self._transport.set_receiver(None)

    def _allocate(self, kind: str, *, watch: bool) -> PendingRequest:
        if self._closed:
            raise TransportError("Dispatcher closed")
        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            id=next(self._ids),
            kind=kind,
            issued_at=time.monotonic(),
            future=loop.create_future(),
            events=asyncio.Queue() if watch else None,
        )
        self._pending[pending.id] = pending
        return pending

    async def _transmit(self, pending: PendingRequest, args: dict[str, Any], timeout: float) -> None:
        envelope = RequestEnvelope(id=pending.id, kind=pending.kind, args=args)
        try:
            await self._transport.send(envelope, timeout=timeout)
        except TransportError:
            self.stats.failed += 1
            logger.warning("Transport rejected request %d (%s)", pending.id, pending.kind)
            raise
        pending.transmitted = True
        self.stats.sent += 1
        logger.debug("Sent request %d (%s)", pending.id, pending.kind)

    async def _exchange(self, pending: PendingRequest, args: dict[str, Any], timeout: float) -> InboundEnvelope:
        """Transmit and wait for the reply under one deadline counted from issue time."""
        remaining = max(0.0, pending.issued_at + timeout - time.monotonic())
        try:
            async with asyncio.timeout(remaining):
                await self._transmit(pending, args, remaining)
                return await pending.future
        except TimeoutError:
            self.stats.timed_out += 1
            logger.warning(
                "Request %d (%s) timed out after %.2fs",
                pending.id,
                pending.kind,
                timeout,
            )
            raise RequestTimeout(f"No response to {pending.kind} within {timeout:.2f}s") from None

    def _to_reply(self, pending: PendingRequest, envelope: InboundEnvelope) -> Reply:
        if not envelope.success:
            self.stats.failed += 1
            raise self._error_for(envelope)
        self.stats.completed += 1
        return Reply(
            result=decode_value(envelope.result),
            time_taken=time.monotonic() - pending.issued_at,
            device_time_taken=envelope.time_taken,
        )

    @staticmethod
    def _error_for(envelope: InboundEnvelope) -> BridgeError:
        if envelope.error is None:
            return error_from_kind(None, f"Request {envelope.id} failed without details")
        return error_from_kind(envelope.error.kind, envelope.error.message)

    async def _release(self, pending: PendingRequest, release_kind: str | None) -> None:
        self._pending.pop(pending.id, None)
        future = pending.future
        # A registration the device rejected left nothing behind to release.
        rejected = future.done() and not future.cancelled() and not pending.acknowledged
        if release_kind is None or not pending.transmitted or rejected or self._closed:
            return
        try:
            await self.notify(release_kind, {"observerId": pending.id})
        except TransportError as exc:
            logger.warning("Could not release watch %d on the device: %s", pending.id, exc)


class Watch:
    """Handle for a watch registration; see :meth:`CorrelationDispatcher.watch`."""

    def __init__(
        self,
        dispatcher: CorrelationDispatcher,
        kind: str,
        args: dict[str, Any],
        *,
        release_kind: str | None,
        timeout: float,
    ) -> None:
        self._dispatcher = dispatcher
        self._kind = kind
        self._args = args
        self._release_kind = release_kind
        self._timeout = timeout
        self._pending: PendingRequest | None = None
        self.reply: Reply | None = None

    @property
    def id(self) -> int | None:
        return self._pending.id if self._pending is not None else None

    async def __aenter__(self) -> Watch:
        dispatcher = self._dispatcher
        pending = dispatcher._allocate(self._kind, watch=True)
        self._pending = pending
        try:
            envelope = await dispatcher._exchange(pending, self._args, self._timeout)
            self.reply = dispatcher._to_reply(pending, envelope)
        except BaseException:
            await dispatcher._release(pending, self._release_kind)
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._pending is not None:
            await self._dispatcher._release(self._pending, self._release_kind)

    async def next_event(self) -> Any:
        """Wait for the next event payload; raises if the watch was failed."""
        if self._pending is None or self._pending.events is None:
            raise RuntimeError("Watch is not active")
        item = await self._pending.events.get()
        if isinstance(item, BaseException):
            raise item
        return decode_value(item.result)


__all__ = [
    "CorrelationDispatcher",
    "DispatcherStats",
    "PendingRequest",
    "Reply",
    "Watch",
]
