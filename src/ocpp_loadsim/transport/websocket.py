"""
WebSocket transport for simulated stations.

Connection: {scheme}://{host}:{port}{pathPrefix}/{deviceId}, offering the OCPP
version as the only subprotocol. Each ``open()`` returns a fresh connection that
belongs to exactly one session cycle.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, InvalidHandshake, WebSocketException

from ocpp_loadsim.config import SimulatorConfig
from ocpp_loadsim.errors import OpenFailure, TransportFault

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send(self, data: str) -> None: ...

    def messages(self) -> AsyncIterator[Union[str, bytes]]: ...

    async def close(self) -> None: ...


class Transport(Protocol):
    async def open(self, url: str, subprotocol: str) -> Connection: ...


def build_url(config: SimulatorConfig, device_id: str) -> str:
    prefix = config.url_path_prefix.rstrip("/")
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix
    return f"{config.url_scheme}://{config.transport_host}:{config.transport_port}{prefix}/{device_id}"


class WebSocketConnection:
    def __init__(self, ws: "websockets.ClientConnection", url: str):
        self._ws = ws
        self._url = url

    @property
    def subprotocol(self) -> Optional[str]:
        return self._ws.subprotocol

    async def send(self, data: str) -> None:
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise TransportFault(f"Send failed on {self._url}: {e}") from e

    async def messages(self) -> AsyncIterator[Union[str, bytes]]:
        """Yield inbound frames until the peer closes.

        A clean close ends the iteration; an abnormal one raises TransportFault.
        """
        try:
            async for message in self._ws:
                yield message
        except ConnectionClosedOK:
            return
        except ConnectionClosed as e:
            raise TransportFault(f"Connection to {self._url} lost: {e}") from e

    async def close(self) -> None:
        await self._ws.close()


class WebSocketTransport:
    def __init__(self, open_timeout: float = 5.0, close_timeout: float = 1.0):
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout

    @classmethod
    def from_config(cls, config: SimulatorConfig) -> "WebSocketTransport":
        return cls(open_timeout=config.open_timeout_ms / 1000, close_timeout=config.close_timeout_ms / 1000)

    async def open(self, url: str, subprotocol: str) -> WebSocketConnection:
        try:
            ws = await websockets.connect(
                url,
                subprotocols=[subprotocol],
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
                ping_interval=None,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake, WebSocketException) as e:
            raise OpenFailure(f"Could not open {url}: {e}", url=url) from e

        if ws.subprotocol != subprotocol:
            logger.warning(f"{url}: server did not accept subprotocol {subprotocol!r}")
            await ws.close()
            raise OpenFailure(f"Server rejected subprotocol {subprotocol}", url=url)
        return WebSocketConnection(ws, url)
