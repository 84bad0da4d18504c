"""
Device identity: who a simulated station is and which OCPP version it speaks.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProtocolSubtype(str, Enum):
    """OCPP version; the value doubles as the WebSocket subprotocol."""

    OCPP16 = "ocpp1.6"
    OCPP201 = "ocpp2.0.1"
    OCPP21 = "ocpp2.1"


class DeviceIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    device_id: str = Field(min_length=1)
    protocol_subtype: ProtocolSubtype
