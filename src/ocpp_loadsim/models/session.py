"""
Session lifecycle models.
"""

from enum import Enum

from pydantic import BaseModel


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"


class PendingRequest(BaseModel):
    """A Call we sent and have not yet seen a CallResult/CallError for."""
    request_id: str
    action: str
    sent_at: float  # loop.time() at send
