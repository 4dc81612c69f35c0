from __future__ import annotations

import enum
from typing import Any, Mapping, Optional


class EventKind(str, enum.Enum):
    """Provider webhook event types this service acts on."""

    SESSION_STARTED = "call.session_started"
    SESSION_PARTICIPANT_LEFT = "call.session_participant_left"
    SESSION_ENDED = "call.session_ended"
    TRANSCRIPTION_READY = "call.transcription_ready"
    RECORDING_READY = "call.recording_ready"
    MESSAGE_NEW = "message.new"

    @classmethod
    def parse(cls, value: Any) -> Optional["EventKind"]:
        try:
            return cls(value)
        except ValueError:
            return None


def _dig(payload: Mapping[str, Any], *path: str) -> Any:
    node: Any = payload
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def custom_meeting_id(payload: Mapping[str, Any]) -> Optional[str]:
    """``call.custom.meetingId`` as set when the call was created."""
    value = _dig(payload, "call", "custom", "meetingId")
    return str(value) if value else None


def nested_str(payload: Mapping[str, Any], *path: str) -> Optional[str]:
    value = _dig(payload, *path)
    if value is None:
        return None
    value = str(value)
    return value or None
