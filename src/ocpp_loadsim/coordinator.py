"""
Run coordinator: starts N independent device sessions and merges their metrics.

Sessions share nothing while running. Each gets its own identity, RNG and (per
cycle) its own connection; metrics are merged once, after every session is done.
"""

import asyncio
import logging
import random
from typing import Callable, Optional

from ocpp_loadsim.config import SimulatorConfig
from ocpp_loadsim.models.identity import DeviceIdentity
from ocpp_loadsim.models.metrics import AggregateMetrics, RunMetrics
from ocpp_loadsim.profiles import profile_for
from ocpp_loadsim.session import DeviceSession
from ocpp_loadsim.transport.websocket import Transport

logger = logging.getLogger(__name__)

SessionFactory = Callable[[DeviceIdentity, random.Random], DeviceSession]


class RunCoordinator:
    def __init__(
        self,
        config: SimulatorConfig,
        transport: Transport,
        session_factory: Optional[SessionFactory] = None,
    ):
        self._config = config
        self._transport = transport
        self._session_factory = session_factory or self._default_session
        self._master_rng = random.Random(config.seed)

    def _default_session(self, identity: DeviceIdentity, rng: random.Random) -> DeviceSession:
        return DeviceSession(identity, self._config, self._transport, rng=rng)

    def build_sessions(self, session_count: int) -> list[DeviceSession]:
        profile = profile_for(self._config.protocol_subtype)
        sessions = []
        for index in range(1, session_count + 1):
            rng = random.Random(self._master_rng.getrandbits(64))
            identity = DeviceIdentity(
                device_id=profile.make_device_id(index, rng),
                protocol_subtype=self._config.protocol_subtype,
            )
            sessions.append(self._session_factory(identity, rng))
        return sessions

    async def _start(self, session: DeviceSession, delay: float) -> RunMetrics:
        if delay > 0:
            await asyncio.sleep(delay)
        return await session.run()

    async def run(self, session_count: int) -> AggregateMetrics:
        """Run ``session_count`` sessions to completion and return the merged metrics.

        A session that raises is logged and counted in ``failed_sessions``; it never
        cancels its siblings.
        """
        if session_count < 1:
            raise ValueError("session_count must be at least 1")
        loop = asyncio.get_running_loop()
        sessions = self.build_sessions(session_count)
        spread = self._config.session_start_spread_ms
        logger.info(
            f"Starting {session_count} {self._config.protocol_subtype.value} sessions "
            f"against {self._config.transport_host}:{self._config.transport_port}"
        )

        started = loop.time()
        outcomes = await asyncio.gather(
            *(self._start(s, self._master_rng.randint(0, spread) / 1000 if spread else 0.0) for s in sessions),
            return_exceptions=True,
        )
        elapsed_ms = int((loop.time() - started) * 1000)

        results: list[RunMetrics] = []
        failed = 0
        for session, outcome in zip(sessions, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                failed += 1
                logger.error(f"[{session.identity.device_id}] Session aborted: {outcome!r}")
            else:
                results.append(outcome)

        aggregate = AggregateMetrics.merge(results, failed_sessions=failed, elapsed_time_ms=elapsed_ms)
        logger.info(
            f"Run finished: {aggregate.reconnect_count} connections, {aggregate.message_count} messages, "
            f"{failed} failed sessions in {elapsed_ms}ms"
        )
        return aggregate
