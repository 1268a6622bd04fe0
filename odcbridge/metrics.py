"""Prometheus exposition of dispatcher counters.

The ``odcbridge --metrics`` flag prints :func:`render_metrics` to stderr after a
bridge session; embedders can mount :func:`build_registry` themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

from . import __version__
from .services.dispatcher import CorrelationDispatcher

logger = logging.getLogger("odcbridge.metrics")

_PREFIX = "odcbridge_requests"
_DOCS = {
    "sent": "Requests handed to the device transport",
    "completed": "Requests answered successfully",
    "failed": "Requests answered with an error or rejected by the transport",
    "timed_out": "Requests that received no answer before their deadline",
    "discarded": "Inbound envelopes dropped as unknown, late or malformed",
    "events": "Watch events routed to a registration",
    "pending": "Requests currently waiting for an answer",
}


class DispatcherCollector(Collector):
    """Projects :meth:`CorrelationDispatcher.snapshot` as gauges."""

    def __init__(self, dispatcher: CorrelationDispatcher) -> None:
        self._dispatcher = dispatcher

    def collect(self) -> Iterator[Any]:
        snapshot = self._dispatcher.snapshot()
        for name, value in snapshot.items():
            metric = GaugeMetricFamily(f"{_PREFIX}_{name}", _DOCS.get(name, name))
            metric.add_metric((), value)
            yield metric

        info = InfoMetricFamily("odcbridge", "odcbridge client information")
        info.add_metric((), {"version": __version__})
        yield info


def build_registry(dispatcher: CorrelationDispatcher) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register(DispatcherCollector(dispatcher))
    return registry


def render_metrics(dispatcher: CorrelationDispatcher) -> bytes:
    """Text exposition format, ready to serve with ``CONTENT_TYPE_LATEST``."""
    return generate_latest(build_registry(dispatcher))


__all__ = ["CONTENT_TYPE_LATEST", "DispatcherCollector", "build_registry", "render_metrics"]
