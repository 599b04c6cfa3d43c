from __future__ import annotations

import json

import pytest

from imagestream.events import (
    CompletedEvent,
    DoneEvent,
    ErrorEvent,
    EventDecodeError,
    PartialEvent,
    decode_sse_line,
    encode_sse,
    event_from_dict,
    is_terminal,
)


def test_encode_sse_frames_single_record():
    record = encode_sse(PartialEvent(index=2, image="QUJD"))
    assert record.startswith("data: ")
    assert record.endswith("\n\n")
    assert record.count("\n") == 2
    assert json.loads(record[len("data: "):]) == {"type": "partial", "index": 2, "image": "QUJD"}


def test_completed_carries_session_id_key():
    record = encode_sse(CompletedEvent(image="QUJD", session_id="abc123"))
    body = json.loads(record[len("data: "):])
    assert body == {"type": "completed", "image": "QUJD", "sessionId": "abc123"}


def test_error_message_keeps_non_ascii():
    record = encode_sse(ErrorEvent(message="échec ✗"))
    assert "échec ✗" in record


@pytest.mark.parametrize(
    "event",
    [
        PartialEvent(index=0, image="AAAA"),
        CompletedEvent(image="AAAA", session_id="s1"),
        DoneEvent(),
        ErrorEvent(message="boom"),
    ],
)
def test_decode_reverses_encode(event):
    record = encode_sse(event)
    assert decode_sse_line(record.rstrip("\n")) == event


def test_decode_ignores_non_data_lines():
    assert decode_sse_line("") is None
    assert decode_sse_line(": keep-alive") is None
    assert decode_sse_line("event: message") is None
    assert decode_sse_line("data: ") is None


def test_decode_rejects_malformed_json():
    with pytest.raises(json.JSONDecodeError):
        decode_sse_line("data: {not json")


def test_decode_rejects_unknown_type():
    with pytest.raises(EventDecodeError):
        decode_sse_line('data: {"type":"bogus"}')


def test_event_from_dict_rejects_non_object():
    with pytest.raises(EventDecodeError):
        event_from_dict([1, 2, 3])  # type: ignore[arg-type]


def test_event_from_dict_bad_index():
    with pytest.raises(EventDecodeError):
        event_from_dict({"type": "partial", "index": "two"})


def test_terminal_events():
    assert is_terminal(DoneEvent())
    assert is_terminal(ErrorEvent(message="x"))
    assert not is_terminal(PartialEvent(index=0, image=None))
    assert not is_terminal(CompletedEvent(image="x"))
