"""Async client for the device's external control protocol (ECP)."""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from enum import StrEnum
from types import TracebackType
from typing import Any
from urllib.parse import quote

import aiohttp

from ..config.settings import RuntimeConfig
from ..const import DEFAULT_ECP_TIMEOUT
from ..errors import BridgeError

logger = logging.getLogger("odcbridge.ecp")

ActiveApp = dict[str, dict[str, str]]


class EcpError(BridgeError):
    kind = "EcpError"


class Key(StrEnum):
    BACK = "Back"
    BACKSPACE = "Backspace"
    DOWN = "Down"
    ENTER = "Enter"
    FORWARD = "Fwd"
    HOME = "Home"
    LEFT = "Left"
    OK = "Select"
    OPTIONS = "Info"
    PLAY = "Play"
    REPLAY = "InstantReplay"
    REWIND = "Rev"
    RIGHT = "Right"
    SEARCH = "Search"
    UP = "Up"


def parse_active_app(document: str) -> ActiveApp:
    """Map each child of ``<active-app>`` to its attributes plus ``title``."""
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise EcpError(f"Received invalid active-app response from device: {exc}") from exc

    children = list(root)
    if not children:
        raise EcpError("Received invalid active-app response from device")

    response: ActiveApp = {}
    for child in children:
        entry = dict(child.attrib)
        entry["title"] = (child.text or "").strip()
        response[child.tag] = entry
    return response


class EcpClient:
    """Key presses, text entry and channel launches over HTTP port 8060."""

    def __init__(
        self,
        config: RuntimeConfig,
        session: aiohttp.ClientSession | None = None,
        *,
        base_url: str | None = None,
        timeout: float = DEFAULT_ECP_TIMEOUT,
    ) -> None:
        self.config = config
        self.base_url = (base_url or config.ecp_base_url).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> EcpClient:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        post: bool = True,
    ) -> str:
        if self._session is None:
            raise EcpError("ECP client is not open; use 'async with'")
        url = f"{self.base_url}/{path}"
        method = "POST" if post else "GET"
        query = {key: str(value) for key, value in (params or {}).items()}
        logger.debug("ECP %s %s %s", method, url, query or "")
        try:
            async with self._session.request(method, url, params=query or None, data=b"" if post else None) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    raise EcpError(f"ECP {method} /{path} failed with HTTP {resp.status}: {text[:200]}")
                return text
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise EcpError(f"ECP {method} /{path} failed: {exc}") from exc

    async def _pause(self, wait: float) -> None:
        delay = wait or self.config.ecp_key_press_delay
        if delay:
            await asyncio.sleep(delay)

    async def send_key_press(self, key: Key | str, wait: float = 0.0) -> None:
        await self._request(f"keypress/{quote(str(key), safe='')}")
        await self._pause(wait)

    async def send_text(self, text: str, wait: float = 0.0) -> None:
        for char in text:
            await self.send_key_press(f"LIT_{char}", wait)

    async def send_key_press_sequence(self, keys: Iterable[Key | str], wait: float = 0.0) -> None:
        for key in keys:
            await self.send_key_press(key, wait)

    async def send_launch_channel(
        self,
        channel_id: str | None = None,
        params: Mapping[str, Any] | None = None,
        verify_launch: bool = True,
    ) -> None:
        channel = channel_id or self.config.channel_id
        if not channel:
            raise EcpError("Channel id required and not supplied")

        await self._request(f"launch/{quote(channel, safe='')}", params)
        if not verify_launch:
            return

        try:
            app = await self.get_active_app()
        except EcpError as exc:
            raise EcpError(f"Could not launch channel with id of '{channel}'") from exc
        if app.get("app", {}).get("id") != channel:
            raise EcpError(f"Could not launch channel with id of '{channel}'")
        logger.info("Launched channel %s", channel)

    async def get_active_app(self) -> ActiveApp:
        document = await self._request("query/active-app", post=False)
        return parse_active_app(document)


__all__ = ["ActiveApp", "EcpClient", "EcpError", "Key", "parse_active_app"]
