from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .media.ffmpeg import subprocess_flags


@dataclass(frozen=True)
class DoctorReport:
    ok: bool
    checks: Dict[str, Dict[str, object]]


def _which(cmd: str) -> Optional[str]:
    return shutil.which(cmd)


def _version(cmd: str) -> str:
    try:
        out = subprocess.check_output([cmd, "-version"], text=True, stderr=subprocess.STDOUT, **subprocess_flags())
        return out.splitlines()[0].strip()
    except (OSError, subprocess.CalledProcessError) as e:
        return f"error: {type(e).__name__}: {e}"


def run_doctor(profile: Optional[Dict[str, Any]] = None) -> DoctorReport:
    checks: Dict[str, Dict[str, object]] = {}

    for cmd in ("ffmpeg", "ffprobe"):
        path = _which(cmd)
        checks[cmd] = {
            "found": path is not None,
            "path": path,
            "version": _version(cmd) if path else None,
        }

    key_env = ((profile or {}).get("openai") or {}).get("api_key_env", "OPENAI_API_KEY")
    checks["openai"] = {
        "api_key_env": key_env,
        "api_key_set": bool(os.getenv(key_env)),
    }
    if not checks["openai"]["api_key_set"]:
        checks["openai"]["note"] = f"Set {key_env} to enable generation and analysis."

    ok = bool(checks["ffmpeg"]["found"] and checks["ffprobe"]["found"] and checks["openai"]["api_key_set"])
    return DoctorReport(ok=ok, checks=checks)
