"""Shared fixtures: an in-memory transport standing in for the CSMS."""

import asyncio
import json
from typing import Any, Callable, Iterable, Optional

import pytest

from ocpp_loadsim.config import SimulatorConfig
from ocpp_loadsim.errors import OpenFailure, TransportFault

CLOSE = object()


class FakeConnection:
    def __init__(self, inbound: Iterable[Any] = (), auto_reply: bool = False):
        self.sent: list[str] = []
        self.closed = False
        self.send_error: Optional[Exception] = None
        self.stall_on: Optional[Callable[[list[Any]], bool]] = None
        self._auto_reply = auto_reply
        self._inbound: asyncio.Queue = asyncio.Queue()
        for frame in inbound:
            self._inbound.put_nowait(frame)

    def push(self, frame: Any) -> None:
        """Deliver a frame from the server side."""
        self._inbound.put_nowait(frame)

    def server_close(self, error: Optional[Exception] = None) -> None:
        self._inbound.put_nowait(error if error is not None else CLOSE)

    async def send(self, data: str) -> None:
        if self.closed:
            raise TransportFault("send on closed connection")
        if self.send_error is not None:
            raise self.send_error
        if self.stall_on is not None and self.stall_on(json.loads(data)):
            # A peer that stops reading: the write never completes
            await asyncio.Event().wait()
        self.sent.append(data)
        if self._auto_reply:
            frame = json.loads(data)
            if frame[0] == 2:
                self.push(json.dumps([3, frame[1], {"status": "Accepted"}]))

    async def messages(self):
        while True:
            item = await self._inbound.get()
            if item is CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(CLOSE)


class FakeTransport:
    def __init__(
        self,
        inbound: Iterable[Any] = (),
        auto_reply: bool = False,
        fail_opens: int = 0,
        on_open: Optional[Callable[["FakeTransport", FakeConnection], None]] = None,
        open_delay: float = 0,
    ):
        self.inbound = list(inbound)
        self.auto_reply = auto_reply
        self.fail_opens = fail_opens
        self.on_open = on_open
        self.open_delay = open_delay
        self.opens: list[tuple[str, str]] = []
        self.connections: list[FakeConnection] = []

    async def open(self, url: str, subprotocol: str) -> FakeConnection:
        self.opens.append((url, subprotocol))
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_opens > 0:
            self.fail_opens -= 1
            raise OpenFailure("connection refused", url=url)
        conn = FakeConnection(self.inbound, self.auto_reply)
        self.connections.append(conn)
        if self.on_open:
            self.on_open(self, conn)
        return conn


def make_config(**overrides: Any) -> SimulatorConfig:
    values: dict[str, Any] = {
        "transport_host": "csms.test",
        "reconnect_count_min": 3,
        "reconnect_count_max": 3,
        "disconnect_delay_min_ms": 20,
        "disconnect_delay_max_ms": 20,
        "inter_cycle_sleep_min_ms": 0,
        "inter_cycle_sleep_max_ms": 0,
    }
    values.update(overrides)
    return SimulatorConfig(**values)


def frames(conn: FakeConnection) -> list[list[Any]]:
    return [json.loads(text) for text in conn.sent]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
