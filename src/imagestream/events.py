"""Stream events shared by the relay and the client reducer.

One event is framed on the wire as a single SSE record::

    data: {"type":"partial","index":0,"image":"<base64>"}\\n\\n

The JSON object always carries a ``type`` discriminator.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

SSE_PREFIX = "data: "
SSE_TERMINATOR = "\n\n"


@dataclass(frozen=True)
class PartialEvent:
    index: int
    image: Optional[str]
    type: str = "partial"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "index": self.index, "image": self.image}


@dataclass(frozen=True)
class CompletedEvent:
    image: str
    session_id: Optional[str] = None
    type: str = "completed"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "image": self.image, "sessionId": self.session_id}


@dataclass(frozen=True)
class DoneEvent:
    type: str = "done"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    type: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}


StreamEvent = Union[PartialEvent, CompletedEvent, DoneEvent, ErrorEvent]


class EventDecodeError(ValueError):
    """Raised when a JSON object is not a recognizable stream event."""
    pass


def is_terminal(event: StreamEvent) -> bool:
    """``done`` and ``error`` end a stream."""
    return isinstance(event, (DoneEvent, ErrorEvent))


def event_from_dict(d: Dict[str, Any]) -> StreamEvent:
    if not isinstance(d, dict):
        raise EventDecodeError(f"event must be a JSON object, got {type(d).__name__}")
    kind = d.get("type")
    if kind == "partial":
        try:
            index = int(d.get("index", 0))
        except (TypeError, ValueError) as e:
            raise EventDecodeError(f"invalid partial index: {d.get('index')!r}") from e
        return PartialEvent(index=index, image=d.get("image"))
    if kind == "completed":
        return CompletedEvent(image=d.get("image") or "", session_id=d.get("sessionId"))
    if kind == "done":
        return DoneEvent()
    if kind == "error":
        return ErrorEvent(message=str(d.get("message") or ""))
    raise EventDecodeError(f"unknown event type: {kind!r}")


def encode_sse(event: StreamEvent) -> str:
    """Serialize one event as a compact SSE ``data:`` record."""
    payload = json.dumps(event.to_dict(), separators=(",", ":"), ensure_ascii=False)
    return f"{SSE_PREFIX}{payload}{SSE_TERMINATOR}"


def decode_sse_line(line: str) -> Optional[StreamEvent]:
    """Decode one complete line of an SSE stream.

    Returns None for lines that are not data records (blank separators,
    comments such as ``: keep-alive``, other fields). Raises
    ``json.JSONDecodeError`` or ``EventDecodeError`` for malformed data.
    """
    stripped = line.strip()
    if not stripped.startswith(SSE_PREFIX.strip()):
        return None
    body = stripped[len(SSE_PREFIX.strip()):].strip()
    if not body:
        return None
    return event_from_dict(json.loads(body))
