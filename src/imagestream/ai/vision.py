"""Image and video analysis through an OpenAI vision model."""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Sequence

from ..media.extract import Transcript, TranscriptOutcome
from .client import OpenAIConfig, UpstreamError, UpstreamResponseError, create_client

log = logging.getLogger(__name__)

IMAGE_PROMPT_SYSTEM = (
    "You write prompts for an image generation model. Describe the picture you are given "
    "as a single detailed prompt that would recreate it: subject, composition, style, "
    "lighting, colors and mood. Reply with the prompt only."
)

VIDEO_VISION_ONLY_TEMPLATE = (
    "These are {count} still frames sampled in order from a video. The video has no usable "
    "speech. Describe what happens in the video, then finish with one image generation "
    "prompt that captures its most representative scene."
)

VIDEO_AUDIO_AWARE_TEMPLATE = (
    "These are {count} still frames sampled in order from a video, followed by a transcript "
    "of its audio. Describe what happens in the video using both the frames and what is "
    "said, then finish with one image generation prompt that captures its most "
    "representative scene.\n\nTranscript:\n{transcript}"
)


def _data_url(data: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def build_video_prompt(frame_count: int, transcript: TranscriptOutcome) -> str:
    """Pick the audio-aware template only when a real transcript exists."""
    if isinstance(transcript, Transcript):
        return VIDEO_AUDIO_AWARE_TEMPLATE.format(count=frame_count, transcript=transcript.text)
    return VIDEO_VISION_ONLY_TEMPLATE.format(count=frame_count)


class VisionAnalyzer:
    """Thin wrapper over chat completions with image inputs."""

    def __init__(self, cfg: OpenAIConfig, *, client: Any = None, max_tokens: int = 800):
        self.cfg = cfg
        self.max_tokens = max_tokens
        self._client = client

    def _complete(self, messages: List[Dict[str, Any]]) -> str:
        if self._client is None:
            self._client = create_client(self.cfg)
        try:
            resp = self._client.chat.completions.create(
                model=self.cfg.vision_model,
                messages=messages,
                max_tokens=self.max_tokens,
            )
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(str(e) or type(e).__name__) from e

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise UpstreamResponseError(f"Invalid response structure: {e}") from e
        if not content or not content.strip():
            raise UpstreamResponseError("vision model returned an empty answer")
        return content.strip()

    def describe_image(self, data: bytes, content_type: str) -> str:
        """Return an image-generation prompt that describes ``data``."""
        messages = [
            {"role": "system", "content": IMAGE_PROMPT_SYSTEM},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Write the prompt for this image."},
                    {"type": "image_url", "image_url": {"url": _data_url(data, content_type)}},
                ],
            },
        ]
        return self._complete(messages)

    def analyze_video(
        self,
        frames: Sequence[bytes],
        transcript: TranscriptOutcome,
        *,
        frame_type: str = "image/jpeg",
    ) -> str:
        if not frames:
            raise ValueError("analyze_video needs at least one frame")
        content: List[Dict[str, Any]] = [{"type": "text", "text": build_video_prompt(len(frames), transcript)}]
        for frame in frames:
            content.append({"type": "image_url", "image_url": {"url": _data_url(frame, frame_type), "detail": "low"}})
        log.info("analyzing %d frames (audio: %s)", len(frames), transcript.kind)
        return self._complete([{"role": "user", "content": content}])
