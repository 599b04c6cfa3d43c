"""OpenAI client configuration shared by generation, vision and transcription."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAI


@dataclass(frozen=True)
class OpenAIConfig:
    """Configuration for the upstream OpenAI API."""
    api_key_env: str = "OPENAI_API_KEY"
    base_url: Optional[str] = None
    generation_model: str = "gpt-4.1"
    vision_model: str = "gpt-4o"
    transcription_model: str = "whisper-1"
    partial_images: int = 3
    timeout_s: float = 600.0

    @classmethod
    def from_profile(cls, openai_cfg: Dict[str, Any]) -> "OpenAIConfig":
        return cls(
            api_key_env=str(openai_cfg.get("api_key_env", "OPENAI_API_KEY")),
            base_url=openai_cfg.get("base_url"),
            generation_model=str(openai_cfg.get("generation_model", "gpt-4.1")),
            vision_model=str(openai_cfg.get("vision_model", "gpt-4o")),
            transcription_model=str(openai_cfg.get("transcription_model", "whisper-1")),
            partial_images=int(openai_cfg.get("partial_images", 3)),
            timeout_s=float(openai_cfg.get("timeout_s", 600.0)),
        )

    @property
    def api_key(self) -> Optional[str]:
        return os.getenv(self.api_key_env) or None


class UpstreamError(Exception):
    """Base exception for failures talking to the upstream API."""
    pass


class UpstreamUnavailableError(UpstreamError):
    """Raised when the upstream API cannot be reached or is not configured."""
    pass


class UpstreamResponseError(UpstreamError):
    """Raised when the upstream response is missing the expected content."""
    pass


def _client_kwargs(cfg: OpenAIConfig) -> Dict[str, Any]:
    api_key = cfg.api_key
    if not api_key:
        raise UpstreamUnavailableError(f"{cfg.api_key_env} is not set")
    kwargs: Dict[str, Any] = {"api_key": api_key, "timeout": cfg.timeout_s}
    if cfg.base_url:
        kwargs["base_url"] = cfg.base_url
    return kwargs


def create_async_client(cfg: OpenAIConfig) -> AsyncOpenAI:
    return AsyncOpenAI(**_client_kwargs(cfg))


def create_client(cfg: OpenAIConfig) -> OpenAI:
    return OpenAI(**_client_kwargs(cfg))
