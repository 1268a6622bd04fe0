"""High level client for the on-device component bridge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from types import TracebackType
from typing import Any, TypeVar

from .config.settings import RuntimeConfig
from .errors import TransportError
from .protocol.values import Base, Node
from .services.dispatcher import CorrelationDispatcher
from .services.functions import CallResult, FunctionInvokerComponent
from .services.keypaths import KeyPathComponent, KeyPathRequest, ValueResult, ValuesResult
from .services.observer import NO_MATCH, FieldObserverComponent, ObserveResult
from .services.registry import RegistryComponent, RegistryFilter, RegistryResult
from .transport.base import DeviceTransport
from .transport.mqtt import MqttDeviceTransport

logger = logging.getLogger("odcbridge.client")

T = TypeVar("T")


class OnDeviceComponent:
    """Every bridge operation behind one ``async with`` block.

    Without an explicit *transport* an :class:`MqttDeviceTransport` is
    created and run for the lifetime of the block. A transport passed in
    is assumed to be running already and is left alone on exit.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        transport: DeviceTransport | None = None,
    ) -> None:
        self.config = config
        self._owns_transport = transport is None
        self._transport: DeviceTransport = transport if transport is not None else MqttDeviceTransport(config)
        self._transport_task: asyncio.Task[None] | None = None
        self._dispatcher: CorrelationDispatcher | None = None
        self._keypaths: KeyPathComponent | None = None
        self._observer: FieldObserverComponent | None = None
        self._functions: FunctionInvokerComponent | None = None
        self._registry: RegistryComponent | None = None

    @property
    def dispatcher(self) -> CorrelationDispatcher:
        if self._dispatcher is None:
            raise RuntimeError("OnDeviceComponent is not started; use 'async with'")
        return self._dispatcher

    async def start(self) -> None:
        if self._dispatcher is not None:
            return
        dispatcher = CorrelationDispatcher(self._transport, request_timeout=self.config.request_timeout)
        self._dispatcher = dispatcher
        self._keypaths = KeyPathComponent(self.config, dispatcher)
        self._observer = FieldObserverComponent(self.config, dispatcher)
        self._functions = FunctionInvokerComponent(self.config, dispatcher)
        self._registry = RegistryComponent(self.config, dispatcher)

        if self._owns_transport and isinstance(self._transport, MqttDeviceTransport):
            try:
                await self._start_transport(self._transport)
            except BaseException:
                await self.stop()
                raise
        logger.info("Bridge client started for device '%s'", self.config.device_id)

    async def stop(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.close()
            self._dispatcher = None
        self._keypaths = self._observer = self._functions = self._registry = None
        task = self._transport_task
        self._transport_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Transport task cancelled")

    async def _start_transport(self, transport: MqttDeviceTransport) -> None:
        self._transport_task = asyncio.create_task(transport.run(), name="odcbridge-transport")
        ready = asyncio.create_task(transport.wait_ready(self.config.request_timeout))
        done, _ = await asyncio.wait(
            {ready, self._transport_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if ready not in done:
            ready.cancel()
            failure = self._transport_task.exception()
            raise TransportError(f"MQTT transport exited before becoming ready: {failure}") from failure
        ready.result()

    async def __aenter__(self) -> OnDeviceComponent:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    def _require(self, component: T | None) -> T:
        if component is None:
            raise RuntimeError("OnDeviceComponent is not started; use 'async with'")
        return component

    async def get_value_at_key_path(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> ValueResult:
        return await self._require(self._keypaths).get_value(key_path, base=base, timeout=timeout)

    async def get_values_at_key_paths(
        self,
        requests: Mapping[str, KeyPathRequest | Mapping[str, Any] | str],
        *,
        timeout: float | None = None,
    ) -> ValuesResult:
        return await self._require(self._keypaths).get_values(requests, timeout=timeout)

    async def set_value_at_key_path(
        self,
        key_path: str,
        value: Any,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> float:
        return await self._require(self._keypaths).set_value(key_path, value, base=base, timeout=timeout)

    async def get_focused_node(self, *, timeout: float | None = None) -> Node | None:
        return await self._require(self._keypaths).get_focused_node(timeout=timeout)

    async def has_focus(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> bool:
        return await self._require(self._keypaths).has_focus(key_path, base=base, timeout=timeout)

    async def is_in_focus_chain(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> bool:
        return await self._require(self._keypaths).is_in_focus_chain(key_path, base=base, timeout=timeout)

    async def observe_field(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        match: Any = NO_MATCH,
        retry_timeout: float | None = None,
    ) -> ObserveResult:
        return await self._require(self._observer).observe(
            key_path,
            base=base,
            match=match,
            retry_timeout=retry_timeout,
        )

    async def call_func(
        self,
        key_path: str,
        func_name: str,
        func_params: Sequence[Any] | None = None,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> CallResult:
        return await self._require(self._functions).call(
            key_path,
            func_name,
            func_params,
            base=base,
            timeout=timeout,
        )

    async def read_registry(
        self,
        filters: RegistryFilter | None = None,
        *,
        timeout: float | None = None,
    ) -> RegistryResult:
        return await self._require(self._registry).read(filters, timeout=timeout)

    async def write_registry(
        self,
        values: Mapping[str, Mapping[str, str | None]],
        *,
        timeout: float | None = None,
    ) -> float:
        return await self._require(self._registry).write(values, timeout=timeout)

    async def delete_registry_sections(
        self,
        sections: str | Sequence[str],
        *,
        timeout: float | None = None,
    ) -> float:
        return await self._require(self._registry).delete_sections(sections, timeout=timeout)

    async def delete_entire_registry(self, *, timeout: float | None = None) -> float:
        return await self._require(self._registry).delete_entire(timeout=timeout)


__all__ = ["OnDeviceComponent"]
