"""Speech-to-text for extracted audio tracks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .ai.client import OpenAIConfig, create_client

log = logging.getLogger(__name__)


class TranscriberError(RuntimeError):
    """Base error for transcription failures."""
    pass


class BackendNotAvailableError(TranscriberError):
    """Raised when the transcription backend is not configured."""
    pass


@runtime_checkable
class Transcriber(Protocol):
    def transcribe(self, audio_path: Path) -> str:
        """Return the plain-text transcript of ``audio_path`` (may be empty)."""
        ...


class OpenAITranscriber:
    """Transcriber backed by the OpenAI audio transcription endpoint."""

    def __init__(self, cfg: OpenAIConfig, *, language: Optional[str] = None):
        self.cfg = cfg
        self.language = language
        self._client = None

    def transcribe(self, audio_path: Path) -> str:
        if not self.cfg.api_key:
            raise BackendNotAvailableError(f"{self.cfg.api_key_env} is not set")
        if self._client is None:
            self._client = create_client(self.cfg)

        kwargs = {"model": self.cfg.transcription_model, "response_format": "text"}
        if self.language:
            kwargs["language"] = self.language

        audio_path = Path(audio_path)
        try:
            with audio_path.open("rb") as f:
                result = self._client.audio.transcriptions.create(file=f, **kwargs)
        except Exception as e:
            raise TranscriberError(f"transcription failed: {e}") from e

        # response_format="text" yields a str; other formats yield an object with .text
        text = result if isinstance(result, str) else getattr(result, "text", "")
        log.debug("transcribed %s: %d chars", audio_path.name, len(text or ""))
        return (text or "").strip()
