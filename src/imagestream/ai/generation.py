"""Streaming image generation against the OpenAI Responses API.

``ImageGenerator.stream()`` opens one upstream call and turns its events
into the internal vocabulary from ``imagestream.events``:

    partial* -> completed -> done      (success)
    partial* -> error                  (any failure, including early EOF)

Upstream partial images are not guaranteed to arrive in index order, so the
payload used for ``completed`` is the highest-indexed partial seen, tracked
by ``fold_partial``.
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from functools import reduce
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional, Tuple

from ..events import CompletedEvent, DoneEvent, ErrorEvent, PartialEvent, StreamEvent
from .client import OpenAIConfig, create_async_client

log = logging.getLogger(__name__)

StreamOpener = Callable[[str], Awaitable[Any]]

PARTIAL_IMAGE = "response.image_generation_call.partial_image"
IMAGE_CALL_COMPLETED = "response.image_generation_call.completed"
OUTPUT_ITEM_DONE = "response.output_item.done"
RESPONSE_COMPLETED = "response.completed"
RESPONSE_FAILED = "response.failed"
RESPONSE_INCOMPLETE = "response.incomplete"
STREAM_ERROR = "error"


@dataclass(frozen=True)
class BestPartial:
    """Accumulator for the highest-indexed partial image seen so far."""
    index: int = -1
    image: Optional[str] = None


def fold_partial(acc: BestPartial, index: int, image: Optional[str]) -> BestPartial:
    """Keep ``image`` only if it is non-empty and strictly outranks ``acc``."""
    if image and index > acc.index:
        return BestPartial(index=index, image=image)
    return acc


def best_partial(partials: Iterable[Tuple[int, Optional[str]]]) -> BestPartial:
    return reduce(lambda acc, p: fold_partial(acc, p[0], p[1]), partials, BestPartial())


@dataclass(frozen=True)
class UpstreamSignal:
    kind: str  # partial|final|completed|error
    index: int = 0
    image: Optional[str] = None
    message: str = ""


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _image_from_output(output: Any) -> Optional[str]:
    for item in output or []:
        if _field(item, "type") == "image_generation_call" and _field(item, "result"):
            return _field(item, "result")
    return None


def normalize_upstream_event(raw: Any) -> Optional[UpstreamSignal]:
    """Map one upstream SDK event (object or dict) to an ``UpstreamSignal``.

    Returns None for event types the relay does not care about.
    """
    kind = _field(raw, "type")
    if kind == PARTIAL_IMAGE:
        try:
            index = int(_field(raw, "partial_image_index", 0))
        except (TypeError, ValueError):
            index = 0
        return UpstreamSignal(kind="partial", index=index, image=_field(raw, "partial_image_b64"))
    if kind == IMAGE_CALL_COMPLETED:
        return UpstreamSignal(kind="completed", image=_field(raw, "result"))
    if kind == OUTPUT_ITEM_DONE:
        item = _field(raw, "item")
        if _field(item, "type") == "image_generation_call" and _field(item, "result"):
            return UpstreamSignal(kind="final", image=_field(item, "result"))
        return None
    if kind == RESPONSE_COMPLETED:
        response = _field(raw, "response")
        return UpstreamSignal(kind="completed", image=_image_from_output(_field(response, "output")))
    if kind == RESPONSE_FAILED:
        error = _field(_field(raw, "response"), "error")
        return UpstreamSignal(kind="error", message=str(_field(error, "message") or "upstream response failed"))
    if kind == RESPONSE_INCOMPLETE:
        return UpstreamSignal(kind="error", message="upstream response incomplete")
    if kind == STREAM_ERROR:
        return UpstreamSignal(kind="error", message=str(_field(raw, "message") or "upstream error"))
    return None


async def _close_quietly(stream: Any) -> None:
    close = getattr(stream, "close", None) or getattr(stream, "aclose", None)
    if close is None:
        return
    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        log.debug("closing upstream stream failed: %s", exc)


class ImageGenerator:
    """Single-pass adapter from one upstream generation call to stream events."""

    def __init__(self, cfg: OpenAIConfig, *, opener: Optional[StreamOpener] = None):
        self.cfg = cfg
        self._opener = opener or self._open_openai_stream
        self._client = None

    async def _open_openai_stream(self, prompt: str) -> Any:
        if self._client is None:
            self._client = create_async_client(self.cfg)
        return await self._client.responses.create(
            model=self.cfg.generation_model,
            input=prompt,
            stream=True,
            tools=[{"type": "image_generation", "partial_images": self.cfg.partial_images}],
        )

    async def stream(self, prompt: str) -> AsyncIterator[StreamEvent]:
        best = BestPartial()
        final_image: Optional[str] = None
        upstream = None
        log.info("Starting image generation for prompt: %r", prompt[:120])
        try:
            upstream = await self._opener(prompt)
            async for raw in upstream:
                signal = normalize_upstream_event(raw)
                if signal is None:
                    log.debug("ignoring upstream event %s", _field(raw, "type"))
                    continue

                if signal.kind == "partial":
                    best = fold_partial(best, signal.index, signal.image)
                    log.debug("partial image %d, size %d", signal.index, len(signal.image or ""))
                    yield PartialEvent(index=signal.index, image=signal.image)
                elif signal.kind == "final":
                    final_image = signal.image
                elif signal.kind == "completed":
                    # An explicit final payload wins; otherwise reuse the best partial.
                    image = signal.image or final_image or best.image
                    if not image:
                        yield ErrorEvent(message="upstream completed without producing an image")
                        return
                    log.info("generation completed, final image size %d (best partial index %d)", len(image), best.index)
                    yield CompletedEvent(image=image)
                    yield DoneEvent()
                    return
                else:
                    log.warning("upstream reported error: %s", signal.message)
                    yield ErrorEvent(message=signal.message)
                    return

            log.warning("upstream stream ended before completion")
            yield ErrorEvent(message="upstream stream ended before completion")
        except Exception as exc:
            log.exception("image generation failed")
            yield ErrorEvent(message=str(exc) or type(exc).__name__)
        finally:
            if upstream is not None:
                await _close_quietly(upstream)
