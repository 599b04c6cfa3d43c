"""Tests for frame/transcript extraction with ffmpeg stubbed out."""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

import imagestream.media.extract as extract_mod
from imagestream.media import (
    EmptyTranscript,
    MediaConfig,
    MediaExtractionError,
    Silent,
    TooShort,
    Transcript,
    TranscriptionFailed,
    extract_media,
)
from imagestream.media.extract import sample_evenly
from imagestream.media.ffmpeg import FFmpegError


class StubTranscriber:
    def __init__(self, text: str = "hello there", error: Exception = None):
        self.text = text
        self.error = error
        self.calls: List[Path] = []

    def transcribe(self, audio_path: Path) -> str:
        self.calls.append(Path(audio_path))
        if self.error is not None:
            raise self.error
        return self.text


def _frames_writer(count: int):
    def fake_extract_frames(video_path, out_dir, *, fps, width, quality=3):
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for i in range(count):
            p = out_dir / f"frame_{i + 1:05d}.jpg"
            p.write_bytes(f"frame-{i}".encode())
            paths.append(p)
        return paths

    return fake_extract_frames


def _audio_writer(size: int):
    def fake_extract_audio(video_path, out_path, *, sample_rate=16000):
        Path(out_path).write_bytes(b"\x00" * size)
        return Path(out_path)

    return fake_extract_audio


@pytest.fixture
def work_root(tmp_path: Path) -> Path:
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def with_audio(monkeypatch):
    monkeypatch.setattr(extract_mod, "extract_frames", _frames_writer(3))
    monkeypatch.setattr(extract_mod, "has_audio_stream", lambda p: True)
    monkeypatch.setattr(extract_mod, "extract_audio", _audio_writer(8192))
    monkeypatch.setattr(extract_mod, "ffprobe_duration_seconds", lambda p: 5.0)


CFG = MediaConfig()


class TestSampleEvenly:
    def test_short_list_unchanged(self):
        assert sample_evenly([1, 2, 3], 8) == [1, 2, 3]

    def test_keeps_first_and_last(self):
        picked = sample_evenly(list(range(100)), 8)
        assert len(picked) == 8
        assert picked[0] == 0 and picked[-1] == 99
        assert picked == sorted(picked)

    def test_limit_one_and_zero(self):
        assert sample_evenly([5, 6, 7], 1) == [5]
        assert sample_evenly([5, 6, 7], 0) == []


class TestExtractMedia:
    def test_transcript_success(self, with_audio, work_root):
        tr = StubTranscriber(text="  some speech  ")
        result = extract_media(b"video", cfg=CFG, transcriber=tr, temp_root=work_root)
        assert result.frames == [b"frame-0", b"frame-1", b"frame-2"]
        assert result.total_frames == 3
        assert result.transcript == Transcript(text="some speech")
        assert len(tr.calls) == 1
        assert list(work_root.iterdir()) == []

    def test_no_audio_stream_is_silent(self, monkeypatch, work_root):
        monkeypatch.setattr(extract_mod, "extract_frames", _frames_writer(2))
        monkeypatch.setattr(extract_mod, "has_audio_stream", lambda p: False)
        tr = StubTranscriber()
        result = extract_media(b"video", cfg=CFG, transcriber=tr, temp_root=work_root)
        assert isinstance(result.transcript, Silent)
        assert result.transcript.kind == "silent"
        assert tr.calls == []
        assert list(work_root.iterdir()) == []

    def test_audio_extraction_failure_is_silent(self, with_audio, monkeypatch, work_root):
        def boom(*a, **k):
            raise FFmpegError("no audio")

        monkeypatch.setattr(extract_mod, "extract_audio", boom)
        result = extract_media(b"video", cfg=CFG, transcriber=StubTranscriber(), temp_root=work_root)
        assert isinstance(result.transcript, Silent)

    def test_zero_byte_audio_is_silent(self, with_audio, monkeypatch, work_root):
        monkeypatch.setattr(extract_mod, "extract_audio", _audio_writer(0))
        result = extract_media(b"video", cfg=CFG, transcriber=StubTranscriber(), temp_root=work_root)
        assert isinstance(result.transcript, Silent)

    def test_tiny_audio_is_too_short(self, with_audio, monkeypatch, work_root):
        monkeypatch.setattr(extract_mod, "extract_audio", _audio_writer(100))
        tr = StubTranscriber()
        result = extract_media(b"video", cfg=CFG, transcriber=tr, temp_root=work_root)
        assert result.transcript == TooShort(size_bytes=100)
        assert tr.calls == []
        assert list(work_root.iterdir()) == []

    def test_short_duration_is_too_short(self, with_audio, monkeypatch, work_root):
        monkeypatch.setattr(extract_mod, "ffprobe_duration_seconds", lambda p: 0.4)
        result = extract_media(b"video", cfg=CFG, transcriber=StubTranscriber(), temp_root=work_root)
        assert isinstance(result.transcript, TooShort)
        assert result.transcript.duration_seconds == 0.4
        assert list(work_root.iterdir()) == []

    def test_blank_transcript(self, with_audio, work_root):
        result = extract_media(b"video", cfg=CFG, transcriber=StubTranscriber(text="   "), temp_root=work_root)
        assert isinstance(result.transcript, EmptyTranscript)
        assert list(work_root.iterdir()) == []

    def test_transcriber_error(self, with_audio, work_root):
        tr = StubTranscriber(error=RuntimeError("api down"))
        result = extract_media(b"video", cfg=CFG, transcriber=tr, temp_root=work_root)
        assert result.transcript == TranscriptionFailed(reason="api down")
        assert list(work_root.iterdir()) == []

    def test_no_transcriber(self, with_audio, work_root):
        result = extract_media(b"video", cfg=CFG, transcriber=None, temp_root=work_root)
        assert isinstance(result.transcript, TranscriptionFailed)

    def test_frames_are_capped(self, monkeypatch, work_root):
        monkeypatch.setattr(extract_mod, "extract_frames", _frames_writer(30))
        monkeypatch.setattr(extract_mod, "has_audio_stream", lambda p: False)
        result = extract_media(b"video", cfg=MediaConfig(max_frames=5), temp_root=work_root)
        assert len(result.frames) == 5
        assert result.total_frames == 30
        assert result.frames[0] == b"frame-0"
        assert result.frames[-1] == b"frame-29"

    def test_zero_frames_raises_and_cleans_up(self, monkeypatch, work_root):
        monkeypatch.setattr(extract_mod, "extract_frames", _frames_writer(0))
        with pytest.raises(MediaExtractionError):
            extract_media(b"video", cfg=CFG, temp_root=work_root)
        assert list(work_root.iterdir()) == []

    def test_ffmpeg_failure_raises_and_cleans_up(self, monkeypatch, work_root):
        def corrupt(*a, **k):
            raise FFmpegError("Invalid data found when processing input")

        monkeypatch.setattr(extract_mod, "extract_frames", corrupt)
        with pytest.raises(MediaExtractionError, match="Invalid data"):
            extract_media(b"not a video", cfg=CFG, temp_root=work_root)
        assert list(work_root.iterdir()) == []

    def test_empty_input_rejected(self, work_root):
        with pytest.raises(MediaExtractionError):
            extract_media(b"", cfg=CFG, temp_root=work_root)

    def test_input_written_with_suffix(self, monkeypatch, work_root):
        seen = {}

        def spy(video_path, out_dir, *, fps, width, quality=3):
            seen["name"] = Path(video_path).name
            seen["data"] = Path(video_path).read_bytes()
            return _frames_writer(1)(video_path, out_dir, fps=fps, width=width)

        monkeypatch.setattr(extract_mod, "extract_frames", spy)
        monkeypatch.setattr(extract_mod, "has_audio_stream", lambda p: False)
        extract_media(b"webm-bytes", cfg=CFG, suffix=".webm", temp_root=work_root)
        assert seen == {"name": "input.webm", "data": b"webm-bytes"}


def test_media_config_from_profile():
    cfg = MediaConfig.from_profile({"max_frames": 4, "min_audio_seconds": 2})
    assert cfg.max_frames == 4
    assert cfg.min_audio_seconds == 2.0
    assert cfg.frame_width == 768
