"""Remote function invocation on scene nodes."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import msgspec

from ..errors import FuncNotFound
from ..keypath import parse_key_path
from ..protocol.envelopes import RequestKind
from ..protocol.values import Base, encode_value
from .base import ServiceComponent, target_args

logger = logging.getLogger("odcbridge.functions")


class CallResult(msgspec.Struct, frozen=True):
    value: Any
    time_taken: float


class FunctionInvokerComponent(ServiceComponent):
    async def call(
        self,
        key_path: str,
        func_name: str,
        func_params: Sequence[Any] | None = None,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> CallResult:
        args = target_args(base, key_path)
        parse_key_path(key_path)
        if not func_name or not func_name.strip():
            raise FuncNotFound("Function name must not be empty")

        args["funcName"] = func_name
        args["funcParams"] = [encode_value(param) for param in func_params or ()]
        logger.debug("Calling %s() on '%s'", func_name, key_path)
        reply = await self.ctx.send(RequestKind.CALL_FUNC, args, timeout=timeout)
        return CallResult(
            value=(reply.result or {}).get("value"),
            time_taken=reply.time_taken,
        )


__all__ = ["CallResult", "FunctionInvokerComponent"]
