"""Field observation layered on dispatcher watch registrations."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

import msgspec

from ..errors import KeyPathNotFound, ObserveInvalidKeyPath, ObserveTimeout
from ..keypath import is_valid_key_path
from ..protocol.envelopes import RequestKind
from ..protocol.values import Base
from .base import ServiceComponent, target_args
from .dispatcher import Watch

logger = logging.getLogger("odcbridge.observer")


class FieldMatch(msgspec.Struct, frozen=True):
    """Condition on a field other than the observed one."""

    key_path: str
    value: Any
    base: Base = Base.GLOBAL


class ObserveResult(msgspec.Struct, frozen=True):
    value: Any
    observer_fired: bool
    time_taken: float


NO_MATCH: Any = object()


def coerce_match(match: Any) -> FieldMatch | Any:
    """Turn ``{"keyPath": ..., "value": ...}`` into a :class:`FieldMatch`.

    Any other value is returned unchanged and compared literally against
    the observed field.
    """
    if isinstance(match, FieldMatch):
        return match
    if isinstance(match, Mapping) and "keyPath" in match and "value" in match:
        extra = set(match) - {"keyPath", "value", "base"}
        if not extra:
            return FieldMatch(
                key_path=str(match["keyPath"]),
                value=match["value"],
                base=Base.coerce(match.get("base")),
            )
    return match


class FieldObserverComponent(ServiceComponent):
    """Implements ``observeField`` with client-side match evaluation."""

    async def observe(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        match: Any = NO_MATCH,
        retry_timeout: float | None = None,
    ) -> ObserveResult:
        args = target_args(base, key_path)
        if not is_valid_key_path(key_path):
            raise ObserveInvalidKeyPath(f"Malformed key path '{key_path}'")

        condition = NO_MATCH if match is NO_MATCH else coerce_match(match)
        if isinstance(condition, FieldMatch) and not is_valid_key_path(condition.key_path):
            raise ObserveInvalidKeyPath(f"Malformed match key path '{condition.key_path}'")

        deadline = self.config.observe_timeout if retry_timeout is None else retry_timeout
        # The device keeps its watch slightly longer than the client waits.
        args["timeout"] = deadline + self.config.observe_grace

        started = time.monotonic()
        scope = asyncio.timeout(deadline)
        try:
            async with scope:
                value, fired = await self._run(args, condition)
        except TimeoutError:
            if not scope.expired():
                raise
            logger.info(
                "Observation of '%s' on %s timed out after %.2fs",
                key_path,
                args["base"],
                deadline,
            )
            raise ObserveTimeout(f"No matching change to '{key_path}' within {deadline:.2f}s") from None

        return ObserveResult(
            value=value,
            observer_fired=fired,
            time_taken=time.monotonic() - started,
        )

    async def _run(self, args: dict[str, Any], condition: Any) -> tuple[Any, bool]:
        watch = self.ctx.watch(
            RequestKind.OBSERVE_FIELD,
            args,
            release_kind=RequestKind.UNOBSERVE_FIELD,
        )
        try:
            async with watch:
                return await self._evaluate(watch, condition)
        except KeyPathNotFound as exc:
            raise ObserveInvalidKeyPath(exc.message) from None

    async def _evaluate(self, watch: Watch, condition: Any) -> tuple[Any, bool]:
        if watch.reply is None:
            raise RuntimeError(f"Watch {watch.id} has no registration reply")
        current = (watch.reply.result or {}).get("value")
        logger.debug("Watch %s registered; current value %r", watch.id, current)

        if condition is not NO_MATCH and await self._satisfied(condition, current):
            return current, False

        while True:
            event = await watch.next_event()
            current = (event or {}).get("value")
            logger.debug("Watch %s observed change to %r", watch.id, current)
            if condition is NO_MATCH or await self._satisfied(condition, current):
                return current, True

    async def _satisfied(self, condition: Any, observed: Any) -> bool:
        if not isinstance(condition, FieldMatch):
            return observed == condition
        reply = await self.ctx.send(
            RequestKind.GET_VALUE_AT_KEY_PATH,
            target_args(condition.base, condition.key_path),
        )
        result = reply.result or {}
        if not result.get("found"):
            raise ObserveInvalidKeyPath(f"Match key path '{condition.key_path}' did not resolve")
        return result.get("value") == condition.value


__all__ = ["NO_MATCH", "FieldMatch", "FieldObserverComponent", "ObserveResult", "coerce_match"]
