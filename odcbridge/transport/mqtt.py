"""MQTT v5 device transport."""

from __future__ import annotations

import asyncio
import logging
import ssl
from pathlib import Path

import aiomqtt
import msgspec
import tenacity
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties
from transitions import Machine

from ..config.settings import RuntimeConfig
from ..const import MQTT_CONTENT_TYPE, SUPERVISOR_MAX_BACKOFF
from ..errors import TransportError
from ..protocol.envelopes import RequestEnvelope, encode_request
from ..protocol.topics import request_topic, response_topic
from .base import EnvelopeReceiver, LinkLostCallback

logger = logging.getLogger("odcbridge.transport")


class QueuedRequest(msgspec.Struct):
    """Publish packet waiting in the FIFO queue."""

    topic_name: str
    payload: bytes
    correlation_data: bytes
    response_topic: str
    sent: asyncio.Future[None]
    qos: int = 1
    content_type: str = MQTT_CONTENT_TYPE


def build_publish_properties(message: QueuedRequest) -> Properties:
    props = Properties(PacketTypes.PUBLISH)
    props.ContentType = message.content_type
    props.PayloadFormatIndicator = 1
    props.ResponseTopic = message.response_topic
    props.CorrelationData = message.correlation_data
    return props


def build_connect_properties() -> Properties:
    props = Properties(PacketTypes.CONNECT)
    props.SessionExpiryInterval = 0
    props.RequestResponseInformation = 1
    props.RequestProblemInformation = 1
    return props


def configure_tls_context(config: RuntimeConfig) -> ssl.SSLContext | None:
    if not config.mqtt_tls:
        return None
    try:
        if config.mqtt_cafile:
            if not Path(config.mqtt_cafile).exists():
                raise RuntimeError(f"MQTT TLS CA file missing: {config.mqtt_cafile}")
            context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=config.mqtt_cafile)
        else:
            context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        return context
    except (OSError, ssl.SSLError) as exc:
        raise RuntimeError(f"TLS setup failed: {exc}") from exc


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    if retry_state.attempt_number > 1:
        logger.info(
            "Reconnecting MQTT (attempt %d, next wait %.2fs)...",
            retry_state.attempt_number,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )


class MqttDeviceTransport:
    """Device channel over an MQTT v5 broker.

    Requests are published on ``<prefix>/<device_id>/request`` strictly in
    the order :meth:`send` was called; everything the device publishes on
    ``<prefix>/<device_id>/response`` is handed to the receiver unparsed.
    """

    STATE_DISCONNECTED = "disconnected"
    STATE_CONNECTING = "connecting"
    STATE_SUBSCRIBING = "subscribing"
    STATE_READY = "ready"

    def __init__(self, config: RuntimeConfig) -> None:
        self.config = config
        self.request_topic = request_topic(config.mqtt_topic, config.device_id)
        self.response_topic = response_topic(config.mqtt_topic, config.device_id)
        self.fsm_state = self.STATE_DISCONNECTED
        self._queue: asyncio.Queue[QueuedRequest] = asyncio.Queue(maxsize=config.mqtt_queue_limit)
        self._receiver: EnvelopeReceiver | None = None
        self._on_link_lost: LinkLostCallback | None = None
        self._ready = asyncio.Event()

        self.machine = Machine(
            model=self,
            states=[
                self.STATE_DISCONNECTED,
                self.STATE_CONNECTING,
                self.STATE_SUBSCRIBING,
                self.STATE_READY,
            ],
            initial=self.STATE_DISCONNECTED,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition("connect", "*", self.STATE_CONNECTING)
        self.machine.add_transition("connected", self.STATE_CONNECTING, self.STATE_SUBSCRIBING)
        self.machine.add_transition("subscribed", self.STATE_SUBSCRIBING, self.STATE_READY, after="_mark_ready")
        self.machine.add_transition("disconnect", "*", self.STATE_DISCONNECTED, before="_mark_lost")

    @property
    def is_ready(self) -> bool:
        return self.fsm_state == self.STATE_READY

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    def set_receiver(
        self,
        receiver: EnvelopeReceiver | None,
        on_link_lost: LinkLostCallback | None = None,
    ) -> None:
        self._receiver = receiver
        self._on_link_lost = on_link_lost

    async def wait_ready(self, timeout: float) -> None:
        try:
            async with asyncio.timeout(timeout):
                await self._ready.wait()
        except TimeoutError:
            raise TransportError(
                f"MQTT broker {self.config.mqtt_host}:{self.config.mqtt_port} not ready within {timeout:.2f}s"
            ) from None

    async def send(self, envelope: RequestEnvelope, *, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        message = QueuedRequest(
            topic_name=self.request_topic,
            payload=encode_request(envelope),
            correlation_data=str(envelope.id).encode("ascii"),
            response_topic=self.response_topic,
            sent=loop.create_future(),
        )
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            raise TransportError(f"MQTT publish queue full ({self._queue.maxsize} pending)") from None

        try:
            async with asyncio.timeout(timeout):
                await message.sent
        except TimeoutError:
            # The publisher skips messages whose future is already done.
            raise TransportError(f"Request {envelope.id} was not published within {timeout:.2f}s") from None

    async def run(self) -> None:
        """Connect, subscribe and pump messages until cancelled."""
        tls_context = configure_tls_context(self.config)
        reconnect_delay = max(1, self.config.reconnect_delay)

        retryer = tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=reconnect_delay, max=SUPERVISOR_MAX_BACKOFF)
            + tenacity.wait_random(0, 2),
            retry=tenacity.retry_if_exception_type((aiomqtt.MqttError, OSError, asyncio.TimeoutError)),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )

        try:
            async for attempt in retryer:
                with attempt:
                    try:
                        await self._connect_session(tls_context)
                    except* (aiomqtt.MqttError, OSError, asyncio.TimeoutError) as exc_group:
                        for exc in exc_group.exceptions:
                            logger.error("MQTT connection error: %s", exc)
                        raise exc_group.exceptions[0]
                    finally:
                        if self.fsm_state != self.STATE_DISCONNECTED:
                            self.trigger("disconnect")
        except asyncio.CancelledError:
            logger.info("MQTT transport stopping.")
            self.trigger("disconnect")
            raise
        finally:
            self._fail_queued(TransportError("MQTT transport stopped"))

    def _mark_ready(self) -> None:
        self._ready.set()

    def _mark_lost(self) -> None:
        was_ready = self._ready.is_set()
        self._ready.clear()
        if was_ready and self._on_link_lost is not None:
            self._on_link_lost(TransportError("Connection to the MQTT broker was lost"))

    def _fail_queued(self, exc: TransportError) -> None:
        while not self._queue.empty():
            message = self._queue.get_nowait()
            self._queue.task_done()
            if not message.sent.done():
                message.sent.set_exception(exc)

    async def _connect_session(self, tls_context: ssl.SSLContext | None) -> None:
        self.trigger("connect")

        async with aiomqtt.Client(
            hostname=self.config.mqtt_host,
            port=self.config.mqtt_port,
            username=self.config.mqtt_user or None,
            password=self.config.mqtt_pass or None,
            tls_context=tls_context,
            logger=logging.getLogger("odcbridge.mqtt.client"),
            protocol=aiomqtt.ProtocolVersion.V5,
            clean_session=None,
            properties=build_connect_properties(),
        ) as client:
            self.trigger("connected")
            logger.info("Connected to MQTT broker %s:%d.", self.config.mqtt_host, self.config.mqtt_port)

            await client.subscribe(self.response_topic, qos=1)
            self.trigger("subscribed")
            logger.info("Subscribed to %s.", self.response_topic)

            async with asyncio.TaskGroup() as task_group:
                task_group.create_task(self._publisher_loop(client))
                task_group.create_task(self._subscriber_loop(client))

    async def _publisher_loop(self, client: aiomqtt.Client) -> None:
        while True:
            message = await self._queue.get()
            try:
                if message.sent.done():
                    continue
                logger.debug("MQTT PUB > %s: %s", message.topic_name, message.payload)
                await client.publish(
                    message.topic_name,
                    message.payload,
                    qos=message.qos,
                    properties=build_publish_properties(message),
                )
                if not message.sent.done():
                    message.sent.set_result(None)
            except aiomqtt.MqttError as exc:
                logger.warning("MQTT publish failed: %s", exc)
                if not message.sent.done():
                    message.sent.set_exception(TransportError(f"MQTT publish failed: {exc}"))
                raise
            finally:
                self._queue.task_done()

    async def _subscriber_loop(self, client: aiomqtt.Client) -> None:
        try:
            async for message in client.messages:
                payload = message.payload
                if isinstance(payload, str):
                    payload = payload.encode("utf-8")
                elif not isinstance(payload, (bytes, bytearray)):
                    logger.debug("Ignoring non-binary payload on %s", message.topic)
                    continue
                logger.debug("MQTT SUB < %s: %s", message.topic, payload)
                receiver = self._receiver
                if receiver is None:
                    continue
                try:
                    receiver(bytes(payload))
                except (ValueError, TypeError, KeyError) as exc:
                    logger.exception("Error processing message on %s: %s", message.topic, exc)
        except aiomqtt.MqttError as exc:
            logger.warning("MQTT subscriber loop interrupted: %s", exc)
            raise


__all__ = [
    "MqttDeviceTransport",
    "QueuedRequest",
    "build_connect_properties",
    "build_publish_properties",
    "configure_tls_context",
]
