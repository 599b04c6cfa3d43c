"""Relay internal stream events to an HTTP response as Server-Sent Events.

The relay owns three things the generator does not know about:
  - the SSE response headers,
  - storing the final artifact under a fresh session id before forwarding
    the ``completed`` event (with that id embedded),
  - the closure guarantee: the response always ends with ``done`` or
    ``error`` (never ``error`` after ``completed``), and nothing is
    forwarded after the first terminal event.

If the client goes away, Starlette cancels the response task; the source
generator is closed from the ``finally`` block, which closes the upstream
call as well.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import AsyncIterator

import anyio
from fastapi.responses import StreamingResponse

from .events import CompletedEvent, DoneEvent, ErrorEvent, StreamEvent, encode_sse, is_terminal
from .store import Artifact, ArtifactStore

log = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Cache-Control",
    "X-Accel-Buffering": "no",
}

GENERATED_CONTENT_TYPE = "image/png"


def artifact_filename(session_id: str) -> str:
    return f"ai_generated_{session_id}.png"


def _store_completed(event: CompletedEvent, store: ArtifactStore, prompt: str) -> CompletedEvent:
    data = base64.b64decode(event.image, validate=True)
    if not data:
        raise ValueError("final image payload is empty")
    session_id = store.new_id()
    store.put(
        session_id,
        Artifact(
            data=data,
            content_type=GENERATED_CONTENT_TYPE,
            origin=prompt,
            filename=artifact_filename(session_id),
        ),
    )
    log.info("stored artifact %s (%d bytes)", session_id, len(data))
    return CompletedEvent(image=event.image, session_id=session_id)


async def _close_source(events: AsyncIterator[StreamEvent]) -> None:
    aclose = getattr(events, "aclose", None)
    if aclose is None:
        return
    # Shielded so cleanup still runs while the response task is being cancelled.
    with anyio.CancelScope(shield=True):
        await aclose()


async def relay_events(
    events: AsyncIterator[StreamEvent],
    store: ArtifactStore,
    *,
    prompt: str = "",
) -> AsyncIterator[str]:
    """Yield one SSE record per event, in order, ending at the first terminal event.

    Once ``completed`` has been forwarded the image is already with the client,
    so a source that then stops or fails is closed with ``done``.
    """
    terminated = False
    completed_sent = False
    try:
        try:
            async for event in events:
                if isinstance(event, CompletedEvent):
                    try:
                        event = _store_completed(event, store, prompt)
                    except (binascii.Error, ValueError) as e:
                        log.error("final image could not be decoded: %s", e)
                        terminated = True
                        yield encode_sse(ErrorEvent(message="final image payload could not be decoded"))
                        return
                elif completed_sent and isinstance(event, ErrorEvent):
                    log.warning("upstream error after completed, closing with done: %s", event.message)
                    event = DoneEvent()

                terminated = is_terminal(event)
                yield encode_sse(event)
                if terminated:
                    return
                if isinstance(event, CompletedEvent):
                    completed_sent = True
        except Exception as exc:
            terminated = True
            if completed_sent:
                log.warning("event source failed after completed, closing with done: %s", exc)
                yield encode_sse(DoneEvent())
                return
            log.exception("event source failed mid-stream")
            yield encode_sse(ErrorEvent(message=str(exc) or type(exc).__name__))
            return

        terminated = True
        if completed_sent:
            log.debug("event source ended after completed without done")
            yield encode_sse(DoneEvent())
            return
        log.warning("event source ended without a terminal event")
        yield encode_sse(ErrorEvent(message="stream ended unexpectedly"))
    finally:
        if not terminated:
            log.info("client went away before the stream finished; cancelling upstream")
        await _close_source(events)


def sse_response(
    events: AsyncIterator[StreamEvent],
    store: ArtifactStore,
    *,
    prompt: str = "",
) -> StreamingResponse:
    return StreamingResponse(
        relay_events(events, store, prompt=prompt),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
