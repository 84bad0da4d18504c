"""
OCPP-J frame encoding and decoding.

Frames are compact JSON arrays with a fixed field order:

    Call:       [2, "<id>", "<action>", {payload}]
    CallResult: [3, "<id>", {payload}]
    CallError:  [4, "<id>", "<code>", "<description>", {details}]
"""

import json
import uuid
from typing import Any, Optional, Union

from pydantic import ValidationError

from ocpp_loadsim.errors import DecodeFailure
from ocpp_loadsim.models.envelope import Call, CallError, CallResult, Envelope, MessageType


def new_request_id() -> str:
    return str(uuid.uuid4())


def _dump(frame: list[Any]) -> str:
    return json.dumps(frame, separators=(",", ":"))


def encode_call(action: str, payload: Any, request_id: Optional[str] = None) -> tuple[str, str]:
    """Build a Call frame. Returns (request_id, wire_text)."""
    request_id = request_id or new_request_id()
    return request_id, _dump(Call(request_id=request_id, action=action, payload=payload).to_frame())


def encode_result(request_id: str, payload: Any) -> str:
    return _dump(CallResult(request_id=request_id, payload=payload).to_frame())


def encode_error(request_id: str, code: str, description: str, details: Any = None) -> str:
    return _dump(CallError(
        request_id=request_id,
        error_code=code,
        error_description=description,
        details=details if details is not None else {},
    ).to_frame())


def encode(envelope: Envelope) -> str:
    return _dump(envelope.to_frame())


def decode(raw: Union[str, bytes]) -> Envelope:
    """Parse an inbound frame. Raises DecodeFailure if it is not a valid envelope."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeFailure(f"Frame is not UTF-8: {e}") from e
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise DecodeFailure(f"Frame is not JSON: {e}", raw) from e

    if not isinstance(frame, list) or len(frame) < 2:
        raise DecodeFailure("Frame is not an array of at least two elements", raw)

    kind = frame[0]
    # bool is an int subclass; true/false are never a message type
    if isinstance(kind, bool) or not isinstance(kind, int):
        raise DecodeFailure(f"Message type must be an integer, got {kind!r}", raw)

    try:
        if kind == MessageType.CALL:
            if len(frame) < 3:
                raise DecodeFailure("Call frame is missing its action", raw)
            payload = frame[3] if len(frame) > 3 and frame[3] is not None else {}
            return Call(request_id=frame[1], action=frame[2], payload=payload)
        if kind == MessageType.CALL_RESULT:
            if len(frame) < 3:
                raise DecodeFailure("CallResult frame is missing its payload", raw)
            return CallResult(request_id=frame[1], payload=frame[2])
        if kind == MessageType.CALL_ERROR:
            if len(frame) < 4:
                raise DecodeFailure("CallError frame is missing code or description", raw)
            details = frame[4] if len(frame) > 4 and frame[4] is not None else {}
            return CallError(
                request_id=frame[1],
                error_code=frame[2],
                error_description=frame[3],
                details=details,
            )
    except ValidationError as e:
        raise DecodeFailure(f"Invalid envelope fields: {e.error_count()} error(s)", raw) from e

    raise DecodeFailure(f"Unknown message type {kind}", raw)
