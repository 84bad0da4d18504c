"""
OCPP-J envelope models.

The wire form is a positional JSON array; these models are the decoded view of it.
``to_frame()`` gives back the list in wire order.
"""

from enum import IntEnum
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field


class MessageType(IntEnum):
    CALL = 2
    CALL_RESULT = 3
    CALL_ERROR = 4


class Call(BaseModel):
    model_config = ConfigDict(frozen=True)

    message_type: ClassVar[MessageType] = MessageType.CALL

    request_id: str = Field(min_length=1)
    action: str = Field(min_length=1)
    payload: Any = Field(default_factory=dict)

    def to_frame(self) -> list[Any]:
        return [int(self.message_type), self.request_id, self.action, self.payload]


class CallResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    message_type: ClassVar[MessageType] = MessageType.CALL_RESULT

    request_id: str = Field(min_length=1)
    payload: Any = Field(default_factory=dict)

    def to_frame(self) -> list[Any]:
        return [int(self.message_type), self.request_id, self.payload]


class CallError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message_type: ClassVar[MessageType] = MessageType.CALL_ERROR

    request_id: str = Field(min_length=1)
    error_code: str
    error_description: str = ""
    details: Any = Field(default_factory=dict)

    def to_frame(self) -> list[Any]:
        return [
            int(self.message_type), self.request_id,
            self.error_code, self.error_description, self.details,
        ]


Envelope = Union[Call, CallResult, CallError]
