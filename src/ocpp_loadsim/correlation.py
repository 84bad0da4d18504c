"""
Request/response correlation for one connection.

Ids are scoped to the connection they were sent on: a tracker is created per
connection cycle and cleared when that connection closes.
"""

import time
from typing import Callable, Optional

from ocpp_loadsim.models.session import PendingRequest


class CorrelationTracker:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._pending: dict[str, PendingRequest] = {}

    def track(self, request_id: str, action: str) -> PendingRequest:
        pending = PendingRequest(request_id=request_id, action=action, sent_at=self._clock())
        self._pending[request_id] = pending
        return pending

    def resolve(self, request_id: str) -> Optional[PendingRequest]:
        """Remove and return the matching request, or None if it is an orphan."""
        return self._pending.pop(request_id, None)

    def clear(self) -> int:
        """Discard all pending requests. Returns how many were dropped."""
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._pending
