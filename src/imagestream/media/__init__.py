"""Media extraction for uploaded videos (frames + transcript)."""

from .extract import (
    EmptyTranscript,
    MediaConfig,
    MediaExtraction,
    MediaExtractionError,
    Silent,
    TooShort,
    Transcript,
    TranscriptionFailed,
    TranscriptOutcome,
    extract_media,
)

__all__ = [
    "EmptyTranscript",
    "MediaConfig",
    "MediaExtraction",
    "MediaExtractionError",
    "Silent",
    "TooShort",
    "Transcript",
    "TranscriptionFailed",
    "TranscriptOutcome",
    "extract_media",
]
