"""
ocpp-loadsim: OCPP charging station load simulator.

Runs many simulated charging stations that connect, boot, answer CSMS requests and
disconnect again in rapid cycles, to load-test a central system's connection handling.
"""

from ocpp_loadsim.actions import ActionRegistry, registry_for
from ocpp_loadsim.config import SimulatorConfig, load_config
from ocpp_loadsim.coordinator import RunCoordinator
from ocpp_loadsim.correlation import CorrelationTracker
from ocpp_loadsim.errors import (
    LoadSimError,
    DecodeFailure,
    ActionNotImplemented,
    OpenFailure,
    TransportFault,
    ConfigError,
)
from ocpp_loadsim.models.identity import DeviceIdentity, ProtocolSubtype
from ocpp_loadsim.models.metrics import AggregateMetrics, RunMetrics
from ocpp_loadsim.session import DeviceSession

__version__ = "0.1.0"
__all__ = [
    "ActionRegistry",
    "registry_for",
    "SimulatorConfig",
    "load_config",
    "RunCoordinator",
    "CorrelationTracker",
    "LoadSimError",
    "DecodeFailure",
    "ActionNotImplemented",
    "OpenFailure",
    "TransportFault",
    "ConfigError",
    "DeviceIdentity",
    "ProtocolSubtype",
    "AggregateMetrics",
    "RunMetrics",
    "DeviceSession",
]
