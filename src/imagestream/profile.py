from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def default_profile() -> Dict[str, Any]:
    return {
        "server": {
            "host": "127.0.0.1",
            "port": 3000,
            "cors_origins": ["*"],
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "base_url": None,  # None uses the SDK default
            "generation_model": "gpt-4.1",
            "vision_model": "gpt-4o",
            "transcription_model": "whisper-1",
            "partial_images": 3,
            "timeout_s": 600.0,
        },
        "limits": {
            "image_max_bytes": 10 * 1024 * 1024,
            "video_max_bytes": 50 * 1024 * 1024,
        },
        "store": {
            "max_entries": 256,
            "ttl_seconds": 3600.0,  # None keeps entries until capacity pushes them out
            "max_bytes": 512 * 1024 * 1024,  # per store, summed over payloads
        },
        "media": {
            "max_frames": 8,
            "frame_fps": 1.0,
            "frame_width": 768,
            "min_audio_seconds": 1.0,
            "min_audio_bytes": 2048,
        },
        "client": {
            "total_stages": 4,
        },
    }


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def load_profile(profile_path: Optional[Path]) -> Dict[str, Any]:
    """Load a YAML profile and overlay it on the defaults.

    Missing keys fall back to ``default_profile()`` so a profile only needs
    to list what it changes.
    """
    if profile_path is None:
        return default_profile()

    profile_path = Path(profile_path)
    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Profile YAML must be a mapping")
    return _deep_merge(default_profile(), data)
