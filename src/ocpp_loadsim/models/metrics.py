"""
Run metrics: per-session counters and the merged aggregate.
"""

from typing import Iterable

from pydantic import BaseModel

COUNTER_FIELDS = (
    "connect_count",
    "message_count",
    "reconnect_count",
    "open_failures",
    "received_count",
    "resolved_count",
    "orphan_count",
    "decode_failures",
    "error_replies",
    "not_implemented_count",
    "handler_faults",
    "heartbeats_sent",
    "cycles",
    "connect_time_ms_total",
    "slow_connects",
)


class RunMetrics(BaseModel):
    """Counters owned by a single DeviceSession."""
    device_id: str = ""
    connect_count: int = 0
    message_count: int = 0
    reconnect_count: int = 0
    open_failures: int = 0
    received_count: int = 0
    resolved_count: int = 0
    orphan_count: int = 0
    decode_failures: int = 0
    error_replies: int = 0
    not_implemented_count: int = 0
    handler_faults: int = 0
    heartbeats_sent: int = 0
    cycles: int = 0
    connect_time_ms_total: int = 0
    max_connect_time_ms: int = 0
    slow_connects: int = 0
    elapsed_time_ms: int = 0


class AggregateMetrics(BaseModel):
    session_count: int = 0
    failed_sessions: int = 0
    connect_count: int = 0
    message_count: int = 0
    reconnect_count: int = 0
    open_failures: int = 0
    received_count: int = 0
    resolved_count: int = 0
    orphan_count: int = 0
    decode_failures: int = 0
    error_replies: int = 0
    not_implemented_count: int = 0
    handler_faults: int = 0
    heartbeats_sent: int = 0
    cycles: int = 0
    connect_time_ms_total: int = 0
    max_connect_time_ms: int = 0
    slow_connects: int = 0
    elapsed_time_ms: int = 0
    sessions: list[RunMetrics] = []

    @classmethod
    def merge(cls, results: Iterable[RunMetrics], failed_sessions: int = 0, elapsed_time_ms: int = 0) -> "AggregateMetrics":
        """Sum counters across sessions (connect time maximum is a max). Called once, after every session has finished."""
        collected = list(results)
        totals = {name: sum(getattr(m, name) for m in collected) for name in COUNTER_FIELDS}
        return cls(
            session_count=len(collected) + failed_sessions,
            failed_sessions=failed_sessions,
            elapsed_time_ms=elapsed_time_ms,
            sessions=collected,
            max_connect_time_ms=max((m.max_connect_time_ms for m in collected), default=0),
            **totals,
        )
