"""Client side of the generation stream.

``SSEDecoder`` turns arbitrarily chunked response bytes back into stream
events; ``StreamReducer`` folds those events into renderable state; and
``RelayClient`` drives both over HTTP with requests.

Reducer phases::

    idle -> requesting -> streaming -> completed -> idle   (on done)
                                    -> errored   -> idle   (on error)
"""

from __future__ import annotations

import base64
import binascii
import codecs
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests

from .events import CompletedEvent, DoneEvent, ErrorEvent, EventDecodeError, PartialEvent, StreamEvent, decode_sse_line

log = logging.getLogger(__name__)

IDLE = "idle"
REQUESTING = "requesting"
STREAMING = "streaming"
COMPLETED = "completed"
ERRORED = "errored"


class SSEDecoder:
    """Incremental SSE decoder that is invariant to chunk boundaries."""

    def __init__(self) -> None:
        self.buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: Union[bytes, str]) -> List[StreamEvent]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self.buffer += chunk
        lines = self.buffer.split("\n")
        # The last piece has not seen its newline yet.
        self.buffer = lines.pop()
        return self._decode_lines(lines)

    def flush(self) -> List[StreamEvent]:
        """Decode whatever is left once the transport has closed."""
        tail = self.buffer + self._utf8.decode(b"", final=True)
        self.buffer = ""
        return self._decode_lines([tail]) if tail else []

    def _decode_lines(self, lines: List[str]) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for line in lines:
            try:
                event = decode_sse_line(line.rstrip("\r"))
            except (json.JSONDecodeError, EventDecodeError) as e:
                log.warning("discarding malformed SSE record %r: %s", line[:120], e)
                continue
            if event is not None:
                events.append(event)
        return events


def decode_image(b64: Optional[str]) -> Optional[bytes]:
    if not b64:
        return None
    return base64.b64decode(b64, validate=True)


@dataclass
class GenerationState:
    phase: str = IDLE
    stage: int = 0
    total_stages: int = 4
    image: Optional[bytes] = None
    session_id: Optional[str] = None
    busy: bool = False
    download_available: bool = False
    status: str = ""
    error: Optional[str] = None
    prompt: str = ""

    @property
    def progress(self) -> float:
        if self.total_stages <= 0:
            return 0.0
        return min(1.0, self.stage / self.total_stages)


class StreamReducer:
    """Folds stream events into ``GenerationState``.

    ``busy`` mirrors the disabled generate control: it is set by ``begin`` and
    cleared by every terminal path (``done``, ``error``, ``fail``).
    """

    def __init__(self, total_stages: int = 4):
        self.state = GenerationState(total_stages=total_stages)

    def begin(self, prompt: str) -> bool:
        prompt = (prompt or "").strip()
        if not prompt:
            self.state.status = "Please enter a prompt"
            return False
        if self.state.busy:
            log.debug("ignoring re-entrant generate request")
            return False
        total = self.state.total_stages
        self.state = GenerationState(
            phase=REQUESTING,
            total_stages=total,
            busy=True,
            prompt=prompt,
            status="Starting image generation...",
        )
        return True

    def on_first_byte(self) -> None:
        if self.state.phase == REQUESTING:
            self.state.phase = STREAMING

    def apply(self, event: StreamEvent) -> GenerationState:
        if isinstance(event, PartialEvent):
            self._on_partial(event)
        elif isinstance(event, CompletedEvent):
            self._on_completed(event)
        elif isinstance(event, DoneEvent):
            self._on_done()
        elif isinstance(event, ErrorEvent):
            self.fail(event.message)
        return self.state

    def fail(self, message: str) -> None:
        """Full reset after an error: no image, no session, control re-enabled."""
        total = self.state.total_stages
        prompt = self.state.prompt
        self.state = GenerationState(
            phase=ERRORED,
            total_stages=total,
            prompt=prompt,
            error=message,
            status=f"Error: {message}",
        )

    def finish(self) -> None:
        """Settle after the transport closed; a stream cut short counts as a failure."""
        if self.state.busy:
            self.fail("stream closed before generation finished")
        if self.state.phase in (COMPLETED, ERRORED):
            self.state.phase = IDLE

    def _on_partial(self, event: PartialEvent) -> None:
        self.state.phase = STREAMING
        self.state.stage = event.index + 1
        try:
            image = decode_image(event.image)
        except (binascii.Error, ValueError) as e:
            log.error("invalid image data for stage %d: %s", self.state.stage, e)
            self.state.status = f"Stage {self.state.stage} image could not be decoded"
            return
        if image is not None:
            self.state.image = image
        self.state.status = f"Stage {self.state.stage}/{self.state.total_stages} complete"

    def _on_completed(self, event: CompletedEvent) -> None:
        self.state.stage = self.state.total_stages
        try:
            image = decode_image(event.image)
        except (binascii.Error, ValueError) as e:
            log.error("invalid final image data: %s", e)
            image = None
            self.state.status = "Final image could not be decoded"
        else:
            self.state.status = "Image generated successfully!"
        if image is not None:
            self.state.image = image
        if event.session_id:
            self.state.session_id = event.session_id
        self.state.download_available = self.state.session_id is not None
        self.state.phase = COMPLETED

    def _on_done(self) -> None:
        self.state.busy = False
        self.state.phase = IDLE


class RelayClient:
    """HTTP client for a running imagestream server."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:3000",
        *,
        session: Optional[requests.Session] = None,
        timeout_s: Optional[float] = None,
        total_stages: int = 4,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.reducer = StreamReducer(total_stages=total_stages)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "RelayClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def generate(self, prompt: str) -> GenerationState:
        """Run one generation to completion, returning the final reduced state."""
        reducer = self.reducer
        if not reducer.begin(prompt):
            return reducer.state

        decoder = SSEDecoder()
        try:
            with self.session.post(
                self._url("/generate"),
                json={"prompt": reducer.state.prompt},
                stream=True,
                timeout=self.timeout_s,
            ) as resp:
                if resp.status_code != 200:
                    reducer.fail(_error_message(resp))
                    return reducer.state
                for chunk in resp.iter_content(chunk_size=None):
                    if not chunk:
                        continue
                    reducer.on_first_byte()
                    for event in decoder.feed(chunk):
                        reducer.apply(event)
                for event in decoder.flush():
                    reducer.apply(event)
        except requests.RequestException as e:
            log.error("generation request failed: %s", e)
            reducer.fail(str(e) or type(e).__name__)
        finally:
            reducer.finish()
        return reducer.state

    def download(self, session_id: str) -> bytes:
        resp = self.session.get(self._url(f"/artifact/{session_id}"), timeout=self.timeout_s)
        resp.raise_for_status()
        return resp.content

    def analyze_image(self, path: Path, *, content_type: str = "image/png") -> Dict[str, Any]:
        return self._upload("/analyze-image", "image", Path(path), content_type)

    def analyze_video(self, path: Path, *, content_type: str = "video/mp4") -> Dict[str, Any]:
        return self._upload("/analyze-video", "video", Path(path), content_type)

    def _upload(self, url: str, field_name: str, path: Path, content_type: str) -> Dict[str, Any]:
        with path.open("rb") as f:
            resp = self.session.post(
                self._url(url),
                files={field_name: (path.name, f, content_type)},
                timeout=self.timeout_s,
            )
        try:
            return resp.json()
        except ValueError:
            return {"success": False, "error": f"HTTP {resp.status_code}"}


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"Server error (HTTP {resp.status_code})"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"
