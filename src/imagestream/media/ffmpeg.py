from __future__ import annotations

import json
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List


class FFmpegError(RuntimeError):
    pass


def subprocess_flags() -> Dict[str, Any]:
    """Keep ffmpeg from flashing a console window on Windows."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def _require_cmd(cmd: str) -> str:
    path = shutil.which(cmd)
    if not path:
        raise FFmpegError(
            f"Required executable '{cmd}' not found in PATH. "
            "Install ffmpeg/ffprobe and ensure they are available on PATH."
        )
    return path


def _run(cmd: List[str]) -> None:
    proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, **subprocess_flags())
    if proc.returncode != 0:
        msg = proc.stderr.decode("utf-8", errors="replace").strip()
        raise FFmpegError(f"{cmd[0]} failed (exit={proc.returncode}). {msg}")


def ffprobe_streams(video_path: Path) -> dict:
    """Return ffprobe JSON for streams/format."""
    _require_cmd("ffprobe")
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_streams",
        "-show_format",
        str(Path(video_path)),
    ]
    try:
        out = subprocess.check_output(cmd, text=True, stderr=subprocess.PIPE, **subprocess_flags())
    except subprocess.CalledProcessError as e:
        raise FFmpegError(f"ffprobe failed (exit={e.returncode}). {(e.stderr or '').strip()}") from e
    try:
        return json.loads(out)
    except json.JSONDecodeError as e:
        raise FFmpegError(f"ffprobe returned invalid JSON: {out[:200]!r}") from e


def has_audio_stream(video_path: Path) -> bool:
    streams = ffprobe_streams(video_path).get("streams") or []
    return any(s.get("codec_type") == "audio" for s in streams)


def ffprobe_duration_seconds(media_path: Path) -> float:
    _require_cmd("ffprobe")
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(Path(media_path)),
    ]
    try:
        out = subprocess.check_output(cmd, text=True, stderr=subprocess.PIPE, **subprocess_flags()).strip()
    except subprocess.CalledProcessError as e:
        raise FFmpegError(f"ffprobe failed (exit={e.returncode}). {(e.stderr or '').strip()}") from e
    try:
        return float(out)
    except ValueError as e:
        raise FFmpegError(f"ffprobe returned non-numeric duration: {out!r}") from e


def extract_frames(
    video_path: Path,
    out_dir: Path,
    *,
    fps: float,
    width: int,
    quality: int = 3,
) -> List[Path]:
    """Write JPEG stills sampled at ``fps`` into ``out_dir``; return them in order."""
    _require_cmd("ffmpeg")
    if fps <= 0:
        raise ValueError("fps must be > 0")
    if width <= 0:
        raise ValueError("width must be > 0")

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    cmd = [
        "ffmpeg",
        "-y",
        "-v",
        "error",
        "-i",
        str(Path(video_path)),
        "-vf",
        f"fps={fps},scale={width}:-2",
        "-q:v",
        str(quality),
        str(out_dir / "frame_%05d.jpg"),
    ]
    _run(cmd)
    return sorted(out_dir.glob("frame_*.jpg"))


def extract_audio(video_path: Path, out_path: Path, *, sample_rate: int = 16000) -> Path:
    """Extract a mono MP3 track; raises FFmpegError if there is none to extract."""
    _require_cmd("ffmpeg")
    out_path = Path(out_path)
    cmd = [
        "ffmpeg",
        "-y",
        "-v",
        "error",
        "-i",
        str(Path(video_path)),
        "-vn",
        "-ac",
        "1",
        "-ar",
        str(sample_rate),
        "-acodec",
        "libmp3lame",
        "-b:a",
        "64k",
        str(out_path),
    ]
    _run(cmd)
    return out_path
