from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    NEW_MESSAGE = "new_message"
    UPDATE_MESSAGE = "update_message"
    DELETE_MESSAGE = "delete_message"


class SignalType(str, Enum):
    REGISTER = "register"
    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "candidate"


RELAYED_SIGNAL_TYPES = frozenset({SignalType.OFFER.value, SignalType.ANSWER.value, SignalType.CANDIDATE.value})


class BroadcastEvent(BaseModel):
    """Message-lifecycle notification pushed to every connected client.

    ``data`` carries the full message for new/update events and only ``{"id": ...}``
    for deletes. Absent optional message fields (``updated_at`` before the first
    edit) are left out of the serialized frame.
    """
    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
