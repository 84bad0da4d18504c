"""
Per-version protocol profiles.

A profile bundles what differs between OCPP 1.6, 2.0.1 and 2.1: the subprotocol, the
device id prefix, and the shape of every outbound payload. Payload values are
synthetic and drawn from the caller's ``random.Random`` so runs can be seeded.
"""

import random
import string
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ocpp_loadsim.models.identity import ProtocolSubtype

PayloadBuilder = Callable[[random.Random, str], dict[str, Any]]

ALPHANUMERIC = string.ascii_letters + string.digits

BOOT_REASONS = [
    "ApplicationReset", "FirmwareUpdate", "LocalReset", "PowerUp", "RemoteReset",
    "ScheduledReset", "Triggered", "Unknown", "Watchdog",
]

CONNECTOR_STATUSES_V16 = [
    "Available", "Preparing", "Charging", "SuspendedEVSE", "SuspendedEV",
    "Finishing", "Reserved", "Unavailable", "Faulted",
]
CONNECTOR_STATUSES_V2 = ["Available", "Occupied", "Reserved", "Unavailable", "Faulted"]


def random_string(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(ALPHANUMERIC) for _ in range(length))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _firmware(rng: random.Random) -> str:
    return f"v{rng.randint(1, 9)}.{rng.randint(0, 9)}.{rng.randint(0, 9)}"


# --- OCPP 1.6 ---------------------------------------------------------------

def boot_notification_v16(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {
        "chargePointModel": f"Model_{random_string(rng, 5)}",
        "chargePointVendor": f"Vendor_{random_string(rng, 5)}",
        "chargePointSerialNumber": device_id,
        "firmwareVersion": _firmware(rng),
        "iccid": random_string(rng, 20),
        "imsi": random_string(rng, 15),
    }


def status_notification_v16(rng: random.Random, device_id: str, status: str = "Available") -> dict[str, Any]:
    return {"connectorId": 1, "errorCode": "NoError", "status": status, "timestamp": _now()}


def authorize_v16(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {"idTag": random_string(rng, 8)}


def start_transaction_v16(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {
        "connectorId": 1,
        "idTag": random_string(rng, 8),
        "meterStart": rng.randint(0, 1000),
        "timestamp": _now(),
    }


def stop_transaction_v16(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {
        "transactionId": rng.randint(1, 100000),
        "meterStop": rng.randint(1000, 100000),
        "timestamp": _now(),
        "reason": "Remote",
    }


def meter_values_v16(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {
        "connectorId": 1,
        "meterValue": [{
            "timestamp": _now(),
            "sampledValue": [{
                "value": str(rng.randint(0, 100000)),
                "context": "Sample.Periodic",
                "measurand": "Energy.Active.Import.Register",
                "unit": "Wh",
            }],
        }],
    }


# --- OCPP 2.0.1 / 2.1 -------------------------------------------------------

def boot_notification_v2(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {
        "reason": rng.choice(BOOT_REASONS),
        "chargingStation": {
            "serialNumber": device_id,
            "model": f"Model_{random_string(rng, 5)}",
            "vendorName": f"Vendor_{random_string(rng, 5)}",
            "firmwareVersion": _firmware(rng),
            "modem": {"iccid": random_string(rng, 20), "imsi": random_string(rng, 15)},
        },
    }


def status_notification_v2(rng: random.Random, device_id: str, status: str = "Available") -> dict[str, Any]:
    return {"timestamp": _now(), "connectorStatus": status, "evseId": 1, "connectorId": 1}


def authorize_v2(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {"idToken": {"idToken": random_string(rng, 8), "type": "ISO14443"}}


def _transaction_event(rng: random.Random, event_type: str) -> dict[str, Any]:
    return {
        "eventType": event_type,
        "timestamp": _now(),
        "triggerReason": "Authorized",
        "seqNo": rng.randint(1, 1000),
        "transactionInfo": {
            "transactionId": random_string(rng, 12),
            "chargingState": "Charging" if event_type == "Started" else "Idle",
        },
        "evse": {"id": 1, "connectorId": 1},
    }


def transaction_started_v2(rng: random.Random, device_id: str) -> dict[str, Any]:
    return _transaction_event(rng, "Started")


def transaction_ended_v2(rng: random.Random, device_id: str) -> dict[str, Any]:
    return _transaction_event(rng, "Ended")


def meter_values_v2(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {
        "evseId": 1,
        "meterValue": [{
            "timestamp": _now(),
            "sampledValue": [{
                "value": rng.randint(0, 100000),
                "context": "Sample.Periodic",
                "measurand": "Energy.Active.Import.Register",
                "unitOfMeasure": {"unit": "Wh", "multiplier": 0},
            }],
        }],
    }


def heartbeat(rng: random.Random, device_id: str) -> dict[str, Any]:
    return {}


class ProtocolProfile:
    """Outbound message table for one OCPP version."""

    __slots__ = ("subtype", "device_id_prefix", "_builders", "_status_builder")

    def __init__(
        self,
        subtype: ProtocolSubtype,
        device_id_prefix: str,
        builders: dict[str, PayloadBuilder],
        status_builder: Callable[..., dict[str, Any]],
    ):
        self.subtype = subtype
        self.device_id_prefix = device_id_prefix
        self._builders = builders
        self._status_builder = status_builder

    @property
    def subprotocol(self) -> str:
        return self.subtype.value

    @property
    def actions(self) -> list[str]:
        return sorted({name.split(":")[0] for name in self._builders})

    def make_device_id(self, index: int, rng: random.Random) -> str:
        return f"{self.device_id_prefix}_{index}_{random_string(rng, 8)}"

    def boot_notification(self, rng: random.Random, device_id: str) -> dict[str, Any]:
        return self._builders["BootNotification"](rng, device_id)

    def heartbeat(self, rng: random.Random, device_id: str) -> dict[str, Any]:
        return self._builders["Heartbeat"](rng, device_id)

    def status_notification(self, rng: random.Random, device_id: str, status: str = "Available") -> dict[str, Any]:
        return self._status_builder(rng, device_id, status)

    def sample(self, action: str, rng: random.Random, device_id: str, variant: Optional[str] = None) -> dict[str, Any]:
        """Build any outbound payload by action name.

        ``variant`` picks between payloads sharing an action name (``Started``/``Ended``
        for TransactionEvent).
        """
        key = f"{action}:{variant}" if variant else action
        builder = self._builders.get(key) or self._builders.get(action)
        if builder is None:
            raise KeyError(action)
        return builder(rng, device_id)


_V16_BUILDERS: dict[str, PayloadBuilder] = {
    "BootNotification": boot_notification_v16,
    "Heartbeat": heartbeat,
    "StatusNotification": status_notification_v16,
    "Authorize": authorize_v16,
    "StartTransaction": start_transaction_v16,
    "StopTransaction": stop_transaction_v16,
    "MeterValues": meter_values_v16,
}

_V2_BUILDERS: dict[str, PayloadBuilder] = {
    "BootNotification": boot_notification_v2,
    "Heartbeat": heartbeat,
    "StatusNotification": status_notification_v2,
    "Authorize": authorize_v2,
    "TransactionEvent": transaction_started_v2,
    "TransactionEvent:Started": transaction_started_v2,
    "TransactionEvent:Ended": transaction_ended_v2,
    "MeterValues": meter_values_v2,
}

PROFILES: dict[ProtocolSubtype, ProtocolProfile] = {
    ProtocolSubtype.OCPP16: ProtocolProfile(ProtocolSubtype.OCPP16, "CP", _V16_BUILDERS, status_notification_v16),
    ProtocolSubtype.OCPP201: ProtocolProfile(ProtocolSubtype.OCPP201, "CS", _V2_BUILDERS, status_notification_v2),
    ProtocolSubtype.OCPP21: ProtocolProfile(ProtocolSubtype.OCPP21, "CS", _V2_BUILDERS, status_notification_v2),
}


def profile_for(subtype: ProtocolSubtype) -> ProtocolProfile:
    return PROFILES[ProtocolSubtype(subtype)]
