"""
Device session: one simulated station's connect/operate/disconnect lifecycle.

    disconnected -> connecting -> active -> closing -> disconnected  (x budget)

Everything that happens while active arrives as a SessionEvent on a per-cycle queue:
frames and the close notice from the reader task, and the keepalive timer
(``loop.call_later``). Events are handled one at a time in arrival order, so outbound
sends go out in the order the state machine issues them.

The active period runs under a single deadline, the drawn disconnect delay. When it
expires the session closes, even if a send to the CSMS is still blocked.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Optional

from ocpp_loadsim.actions import ActionRegistry, registry_for, reply_to
from ocpp_loadsim.config import SimulatorConfig
from ocpp_loadsim.correlation import CorrelationTracker
from ocpp_loadsim.errors import DecodeFailure, OpenFailure, TransportFault
from ocpp_loadsim.models.envelope import Call, CallError
from ocpp_loadsim.models.identity import DeviceIdentity
from ocpp_loadsim.models.metrics import RunMetrics
from ocpp_loadsim.models.session import SessionState
from ocpp_loadsim.profiles import profile_for
from ocpp_loadsim.transport.envelope import decode, encode_call
from ocpp_loadsim.transport.websocket import Connection, Transport, build_url

logger = logging.getLogger(__name__)

StateObserver = Callable[[SessionState, SessionState], None]


class SessionEvent:
    MESSAGE = "message"
    CLOSED = "closed"
    KEEPALIVE_TIMER = "keepalive_timer"

    __slots__ = ("kind", "data")

    def __init__(self, kind: str, data: Any = None):
        self.kind = kind
        self.data = data

    def __repr__(self) -> str:
        return f"SessionEvent(kind={self.kind!r})"


class DeviceSession:
    def __init__(
        self,
        identity: DeviceIdentity,
        config: SimulatorConfig,
        transport: Transport,
        rng: Optional[random.Random] = None,
        registry: Optional[ActionRegistry] = None,
        on_state_change: Optional[StateObserver] = None,
    ):
        self.identity = identity
        self._config = config
        self._transport = transport
        self._rng = rng or random.Random()
        self._profile = profile_for(identity.protocol_subtype)
        self._registry = registry or registry_for(identity.protocol_subtype)
        self._url = build_url(config, identity.device_id)
        self._on_state_change = on_state_change
        self._state = SessionState.DISCONNECTED
        self._budget = self._rng.randint(config.reconnect_count_min, config.reconnect_count_max)
        self._cycle = 0
        self.metrics = RunMetrics(device_id=identity.device_id, cycles=self._budget)

        # Per-cycle; reset on every close
        self._connection: Optional[Connection] = None
        self._tracker: Optional[CorrelationTracker] = None
        self._keepalive_timer: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def url(self) -> str:
        return self._url

    @property
    def _tag(self) -> str:
        return f"[{self.identity.device_id}]"

    def _set_state(self, state: SessionState) -> None:
        old, self._state = self._state, state
        logger.debug(f"{self._tag} {old.value} -> {state.value}")
        if self._on_state_change:
            self._on_state_change(old, state)

    def _draw_seconds(self, low_ms: int, high_ms: int) -> float:
        return self._rng.randint(low_ms, high_ms) / 1000

    async def run(self) -> RunMetrics:
        """Run every cycle of the reconnect budget, then return this session's metrics."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            for cycle in range(1, self._budget + 1):
                await self._run_cycle(cycle)
                if cycle < self._budget:
                    await asyncio.sleep(self._draw_seconds(
                        self._config.inter_cycle_sleep_min_ms, self._config.inter_cycle_sleep_max_ms,
                    ))
        finally:
            self.metrics.elapsed_time_ms = int((loop.time() - started) * 1000)
        logger.info(
            f"{self._tag} Completed {self.metrics.reconnect_count} connections with "
            f"{self.metrics.message_count} messages in {self.metrics.elapsed_time_ms}ms"
        )
        return self.metrics

    async def _run_cycle(self, cycle: int) -> None:
        loop = asyncio.get_running_loop()
        self._cycle = cycle
        self._set_state(SessionState.CONNECTING)
        logger.info(f"{self._tag} Connecting to {self._url} (attempt {cycle}/{self._budget})")

        opened_at = loop.time()
        try:
            connection = await asyncio.wait_for(
                self._transport.open(self._url, self._profile.subprotocol),
                timeout=self._config.open_timeout_ms / 1000,
            )
        except (OpenFailure, asyncio.TimeoutError) as e:
            self.metrics.open_failures += 1
            logger.warning(f"{self._tag} Connection attempt {cycle}/{self._budget} failed: {e}")
            self._set_state(SessionState.DISCONNECTED)
            return

        self._record_connect(int((loop.time() - opened_at) * 1000))

        queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        tracker = CorrelationTracker(clock=loop.time)
        self._connection = connection
        self._tracker = tracker
        reader = asyncio.create_task(self._read(connection, queue))
        self._set_state(SessionState.ACTIVE)

        # The disconnect delay bounds everything while active, a stalled send included
        delay = self._draw_seconds(self._config.disconnect_delay_min_ms, self._config.disconnect_delay_max_ms)
        try:
            await asyncio.wait_for(self._operate(queue, delay), timeout=delay)
        except asyncio.TimeoutError:
            logger.info(f"{self._tag} Disconnecting after {int(delay * 1000)}ms")
        except TransportFault as e:
            logger.warning(f"{self._tag} Transport fault: {e}")
        finally:
            await self._close(connection, tracker, reader)

    def _record_connect(self, connect_ms: int) -> None:
        self.metrics.connect_count += 1
        self.metrics.connect_time_ms_total += connect_ms
        self.metrics.max_connect_time_ms = max(self.metrics.max_connect_time_ms, connect_ms)
        if connect_ms >= self._config.connect_time_threshold_ms:
            self.metrics.slow_connects += 1
            logger.warning(
                f"{self._tag} Connected in {connect_ms}ms "
                f"(threshold {self._config.connect_time_threshold_ms}ms)"
            )
        else:
            logger.info(f"{self._tag} Connected in {connect_ms}ms")

    async def _operate(self, queue: "asyncio.Queue[SessionEvent]", delay: float) -> None:
        await self._announce()
        self._arm_keepalive(queue, delay)
        await self._process(queue)

    async def _read(self, connection: Connection, queue: "asyncio.Queue[SessionEvent]") -> None:
        error: Optional[TransportFault] = None
        try:
            async for raw in connection.messages():
                queue.put_nowait(SessionEvent(SessionEvent.MESSAGE, raw))
        except TransportFault as e:
            error = e
        queue.put_nowait(SessionEvent(SessionEvent.CLOSED, error))

    async def _announce(self) -> None:
        device_id = self.identity.device_id
        await self._send_call("BootNotification", self._profile.boot_notification(self._rng, device_id))
        if self._config.send_status_notification:
            await self._send_call("StatusNotification", self._profile.status_notification(self._rng, device_id))

    def _arm_keepalive(self, queue: "asyncio.Queue[SessionEvent]", delay: float) -> None:
        interval = self._keepalive_interval(delay)
        if interval is not None:
            self._keepalive_timer = asyncio.get_running_loop().call_later(
                interval, queue.put_nowait, SessionEvent(SessionEvent.KEEPALIVE_TIMER, interval),
            )

    def _keepalive_interval(self, disconnect_delay: float) -> Optional[float]:
        if self._config.keepalive_interval_ms is None:
            return None
        interval = self._config.keepalive_interval_ms / 1000
        return interval if interval < disconnect_delay else None

    async def _process(self, queue: "asyncio.Queue[SessionEvent]") -> None:
        """Handle events until the connection closes; the caller's deadline ends it otherwise."""
        while True:
            event = await queue.get()
            if event.kind == SessionEvent.MESSAGE:
                await self._handle_frame(event.data)
            elif event.kind == SessionEvent.KEEPALIVE_TIMER:
                await self._send_call("Heartbeat", self._profile.heartbeat(self._rng, self.identity.device_id))
                self.metrics.heartbeats_sent += 1
                self._keepalive_timer = asyncio.get_running_loop().call_later(
                    event.data, queue.put_nowait, event,
                )
            elif event.kind == SessionEvent.CLOSED:
                if event.data is not None:
                    raise event.data
                logger.info(f"{self._tag} Connection closed by server")
                return

    def _active(self) -> tuple[Connection, CorrelationTracker]:
        if self._connection is None or self._tracker is None:
            raise TransportFault(f"{self._tag} not connected")
        return self._connection, self._tracker

    async def _send(self, text: str) -> None:
        connection, _ = self._active()
        await connection.send(text)
        self.metrics.message_count += 1

    async def _send_call(self, action: str, payload: Any) -> str:
        _, tracker = self._active()
        request_id, text = encode_call(action, payload)
        tracker.track(request_id, action)
        await self._send(text)
        logger.debug(f"{self._tag} Sent {action} ({request_id})")
        return request_id

    async def _handle_frame(self, raw: Any) -> None:
        _, tracker = self._active()
        self.metrics.received_count += 1
        try:
            envelope = decode(raw)
        except DecodeFailure as e:
            self.metrics.decode_failures += 1
            logger.warning(f"{self._tag} Dropping malformed frame: {e}")
            return

        if isinstance(envelope, Call):
            await self._handle_call(envelope)
            return

        pending = tracker.resolve(envelope.request_id)
        if pending is None:
            self.metrics.orphan_count += 1
            logger.info(f"{self._tag} No pending request for {envelope.request_id}, ignoring reply")
            return
        self.metrics.resolved_count += 1
        if isinstance(envelope, CallError):
            self.metrics.error_replies += 1
            logger.info(
                f"{self._tag} Received error for {pending.action} ({envelope.request_id}): "
                f"{envelope.error_code} {envelope.error_description}"
            )
        else:
            logger.debug(f"{self._tag} Received response for {pending.action} ({envelope.request_id})")

    async def _handle_call(self, call: Call) -> None:
        """Answer an inbound Call with exactly one CallResult or CallError."""
        logger.info(f"{self._tag} Received incoming request: {call.action} (ID: {call.request_id})")
        reply, error_code = reply_to(self._registry, call)
        if error_code == "NotImplemented":
            self.metrics.not_implemented_count += 1
            logger.info(f"{self._tag} Unknown incoming action: {call.action}")
        elif error_code is not None:
            self.metrics.handler_faults += 1
        await self._send(reply)

    def _cancel_keepalive(self) -> None:
        if self._keepalive_timer is not None:
            self._keepalive_timer.cancel()
            self._keepalive_timer = None

    async def _close(self, connection: Connection, tracker: CorrelationTracker, reader: "asyncio.Task[None]") -> None:
        self._set_state(SessionState.CLOSING)
        self._cancel_keepalive()
        try:
            await asyncio.wait_for(connection.close(), timeout=self._config.close_timeout_ms / 1000)
        except (asyncio.TimeoutError, TransportFault, OSError) as e:
            logger.warning(f"{self._tag} Close did not complete cleanly: {e}")
        reader.cancel()
        await asyncio.gather(reader, return_exceptions=True)

        dropped = tracker.clear()
        if dropped:
            logger.debug(f"{self._tag} Discarded {dropped} pending request(s)")
        self._connection = None
        self._tracker = None
        self.metrics.reconnect_count += 1
        self._set_state(SessionState.DISCONNECTED)
