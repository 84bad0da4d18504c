"""
Inbound action registry: what a simulated station answers when the CSMS calls it.

Handlers are pure: payload in, synthetic response payload out. ``reply_to`` turns a
dispatch into exactly one reply frame; counting is the caller's job.
"""

import logging
from typing import Any, Callable, Optional

from ocpp_loadsim.errors import ActionNotImplemented, RegistryFrozen
from ocpp_loadsim.models.envelope import Call
from ocpp_loadsim.models.identity import ProtocolSubtype
from ocpp_loadsim.transport.envelope import encode_error, encode_result

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

ACCEPTED = {"status": "Accepted"}


class ActionRegistry:
    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}
        self._frozen = False

    def register(self, action: str, handler: Handler) -> None:
        if self._frozen:
            raise RegistryFrozen(action)
        self._handlers[action] = handler

    def freeze(self) -> "ActionRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def actions(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, action: str) -> bool:
        return action in self._handlers

    def dispatch(self, action: str, payload: Any) -> Any:
        """Run the handler for ``action``. Raises ActionNotImplemented if there is none.

        Exceptions raised by the handler itself propagate unchanged.
        """
        handler = self._handlers.get(action)
        if handler is None:
            raise ActionNotImplemented(action)
        return handler(payload)


def accept(_payload: Any) -> dict[str, Any]:
    return dict(ACCEPTED)


def data_transfer(payload: Any) -> dict[str, Any]:
    vendor_id = payload.get("vendorId") if isinstance(payload, dict) else None
    message_id = payload.get("messageId") if isinstance(payload, dict) else None
    return {"status": "Accepted", "data": f"Response to {vendor_id}:{message_id or 'default'}"}


def get_configuration(_payload: Any) -> dict[str, Any]:
    return {
        "configurationKey": [
            {"key": "HeartbeatInterval", "readonly": False, "value": "60"},
            {"key": "ConnectionTimeOut", "readonly": False, "value": "60"},
        ],
        "unknownKey": [],
    }


def unlock_connector_v2(_payload: Any) -> dict[str, Any]:
    """2.x UnlockConnectorResponse status. The 1.6-style load scripts answer Accepted here."""
    return {"status": "Unlocked"}


def get_variables(payload: Any) -> dict[str, Any]:
    requested = payload.get("getVariableData", []) if isinstance(payload, dict) else []
    return {
        "getVariableResult": [
            {
                "attributeStatus": "Accepted",
                "component": item.get("component", {}),
                "variable": item.get("variable", {}),
                "attributeValue": "60",
            }
            for item in requested
        ]
    }


def set_variables(payload: Any) -> dict[str, Any]:
    requested = payload.get("setVariableData", []) if isinstance(payload, dict) else []
    return {
        "setVariableResult": [
            {
                "attributeStatus": "Accepted",
                "component": item.get("component", {}),
                "variable": item.get("variable", {}),
            }
            for item in requested
        ]
    }


_COMMON: dict[str, Handler] = {
    "ChangeAvailability": accept,
    "ChangeConfiguration": accept,
    "ClearCache": accept,
    "DataTransfer": data_transfer,
    "GetConfiguration": get_configuration,
    "RemoteStartTransaction": accept,
    "RemoteStopTransaction": accept,
    "Reset": accept,
    "UnlockConnector": accept,
}

# 2.x stations keep answering the 1.6 names and add the 2.x-native ones
_V2_EXTRA: dict[str, Handler] = {
    "UnlockConnector": unlock_connector_v2,
    "GetVariables": get_variables,
    "SetVariables": set_variables,
    "RequestStartTransaction": accept,
    "RequestStopTransaction": accept,
    "TriggerMessage": accept,
}

HANDLER_TABLES: dict[ProtocolSubtype, dict[str, Handler]] = {
    ProtocolSubtype.OCPP16: dict(_COMMON),
    ProtocolSubtype.OCPP201: {**_COMMON, **_V2_EXTRA},
    ProtocolSubtype.OCPP21: {**_COMMON, **_V2_EXTRA},
}


def registry_for(subtype: ProtocolSubtype) -> ActionRegistry:
    """Build the frozen registry for one protocol version."""
    registry = ActionRegistry()
    for action, handler in HANDLER_TABLES[ProtocolSubtype(subtype)].items():
        registry.register(action, handler)
    return registry.freeze()


def reply_to(registry: ActionRegistry, call: Call) -> tuple[str, Optional[str]]:
    """Build the single reply frame for an inbound Call.

    Returns (wire_text, error_code); error_code is None for a CallResult,
    ``NotImplemented`` for an unknown action and ``InternalError`` when the handler
    raised or returned something that cannot be encoded.
    """
    try:
        return encode_result(call.request_id, registry.dispatch(call.action, call.payload)), None
    except ActionNotImplemented as e:
        return encode_error(call.request_id, e.code, str(e)), e.code
    except Exception as e:
        logger.error(f"Error handling {call.action} ({call.request_id}): {e}")
        return encode_error(call.request_id, "InternalError", f"Failed to process {call.action}"), "InternalError"
