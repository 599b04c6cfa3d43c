"""Frame and transcript extraction for uploaded videos.

``extract_media`` works inside a private temporary directory that is created
before ffmpeg runs and removed on every exit path. Frame extraction is
mandatory: zero frames raises ``MediaExtractionError``. Audio is best-effort
and always resolves to one of the ``TranscriptOutcome`` variants, so callers
can fall back to a vision-only analysis without inspecting strings.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TypeVar, Union

from ..transcription import Transcriber
from .ffmpeg import FFmpegError, extract_audio, extract_frames, ffprobe_duration_seconds, has_audio_stream

log = logging.getLogger(__name__)

T = TypeVar("T")


class MediaExtractionError(RuntimeError):
    """Raised when no usable frame can be produced from a video."""
    pass


@dataclass(frozen=True)
class Silent:
    """The video has no audio track, or none could be decoded."""
    kind: str = "silent"


@dataclass(frozen=True)
class TooShort:
    """Audio exists but is below the minimum duration/size worth transcribing."""
    duration_seconds: Optional[float] = None
    size_bytes: int = 0
    kind: str = "too_short"


@dataclass(frozen=True)
class EmptyTranscript:
    """Speech-to-text ran but produced no text."""
    kind: str = "empty_transcript"


@dataclass(frozen=True)
class TranscriptionFailed:
    reason: str = ""
    kind: str = "transcription_failed"


@dataclass(frozen=True)
class Transcript:
    text: str
    kind: str = "transcript"


TranscriptOutcome = Union[Silent, TooShort, EmptyTranscript, TranscriptionFailed, Transcript]


@dataclass(frozen=True)
class MediaConfig:
    max_frames: int = 8
    frame_fps: float = 1.0
    frame_width: int = 768
    min_audio_seconds: float = 1.0
    min_audio_bytes: int = 2048

    @classmethod
    def from_profile(cls, media_cfg: Dict[str, Any]) -> "MediaConfig":
        return cls(
            max_frames=int(media_cfg.get("max_frames", 8)),
            frame_fps=float(media_cfg.get("frame_fps", 1.0)),
            frame_width=int(media_cfg.get("frame_width", 768)),
            min_audio_seconds=float(media_cfg.get("min_audio_seconds", 1.0)),
            min_audio_bytes=int(media_cfg.get("min_audio_bytes", 2048)),
        )


@dataclass
class MediaExtraction:
    frames: List[bytes]
    transcript: TranscriptOutcome
    total_frames: int = 0


def sample_evenly(items: Sequence[T], limit: int) -> List[T]:
    """Pick at most ``limit`` items spread evenly, always keeping the first and last."""
    if limit <= 0:
        return []
    n = len(items)
    if n <= limit:
        return list(items)
    if limit == 1:
        return [items[0]]
    step = (n - 1) / (limit - 1)
    return [items[round(i * step)] for i in range(limit)]


def _extract_frames(video_path: Path, out_dir: Path, cfg: MediaConfig) -> List[Path]:
    try:
        paths = extract_frames(video_path, out_dir, fps=cfg.frame_fps, width=cfg.frame_width)
    except (FFmpegError, ValueError) as e:
        raise MediaExtractionError(f"frame extraction failed: {e}") from e
    if not paths:
        raise MediaExtractionError("no frames could be extracted from the video")
    return paths


def _extract_transcript(
    video_path: Path,
    work_dir: Path,
    cfg: MediaConfig,
    transcriber: Optional[Transcriber],
) -> TranscriptOutcome:
    try:
        if not has_audio_stream(video_path):
            return Silent()
        audio_path = extract_audio(video_path, work_dir / "audio.mp3")
    except FFmpegError as e:
        log.warning("audio extraction failed, continuing without audio: %s", e)
        return Silent()

    if not audio_path.exists() or audio_path.stat().st_size == 0:
        return Silent()

    size = audio_path.stat().st_size
    if size < cfg.min_audio_bytes:
        return TooShort(size_bytes=size)

    try:
        duration: Optional[float] = ffprobe_duration_seconds(audio_path)
    except FFmpegError as e:
        log.debug("could not probe audio duration: %s", e)
        duration = None
    if duration is not None and duration < cfg.min_audio_seconds:
        return TooShort(duration_seconds=duration, size_bytes=size)

    if transcriber is None:
        return TranscriptionFailed(reason="no transcriber configured")
    try:
        text = transcriber.transcribe(audio_path)
    except Exception as e:
        log.warning("transcription failed, continuing vision-only: %s", e)
        return TranscriptionFailed(reason=str(e))

    text = (text or "").strip()
    if not text:
        return EmptyTranscript()
    return Transcript(text=text)


def extract_media(
    video_bytes: bytes,
    *,
    cfg: MediaConfig,
    transcriber: Optional[Transcriber] = None,
    suffix: str = ".mp4",
    temp_root: Optional[Path] = None,
) -> MediaExtraction:
    """Extract up to ``cfg.max_frames`` JPEG frames and a transcript outcome."""
    if not video_bytes:
        raise MediaExtractionError("video is empty")

    work_dir = Path(tempfile.mkdtemp(prefix="imagestream_", dir=str(temp_root) if temp_root else None))
    try:
        video_path = work_dir / f"input{suffix or '.mp4'}"
        video_path.write_bytes(video_bytes)

        all_frames = _extract_frames(video_path, work_dir / "frames", cfg)
        selected = sample_evenly(all_frames, cfg.max_frames)
        frames = [p.read_bytes() for p in selected]
        log.info("extracted %d frames, forwarding %d", len(all_frames), len(frames))

        transcript = _extract_transcript(video_path, work_dir, cfg, transcriber)
        log.info("audio outcome: %s", transcript.kind)
        return MediaExtraction(frames=frames, transcript=transcript, total_frames=len(all_frames))
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)
        if work_dir.exists():
            log.warning("temporary directory was not fully removed: %s", work_dir)
