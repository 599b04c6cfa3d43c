from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .. import __version__
from ..ai.client import OpenAIConfig, UpstreamError
from ..ai.generation import ImageGenerator
from ..ai.vision import VisionAnalyzer
from ..media.extract import MediaConfig, MediaExtractionError, extract_media
from ..profile import load_profile
from ..relay import sse_response
from ..store import Artifact, ArtifactStore
from ..transcription import OpenAITranscriber, Transcriber
from .range import content_disposition, ranged_bytes_response

log = logging.getLogger(__name__)


class RelayContext:
    """Holds the per-process collaborators shared by all requests."""

    def __init__(
        self,
        profile_path: Optional[Path] = None,
        *,
        profile: Optional[Dict[str, Any]] = None,
        generator: Optional[ImageGenerator] = None,
        analyzer: Optional[VisionAnalyzer] = None,
        transcriber: Optional[Transcriber] = None,
        artifacts: Optional[ArtifactStore] = None,
        videos: Optional[ArtifactStore] = None,
        temp_root: Optional[Path] = None,
    ):
        self.profile = profile if profile is not None else load_profile(profile_path)
        openai_cfg = OpenAIConfig.from_profile(self.profile.get("openai", {}))
        store_cfg = self.profile.get("store", {})
        limits = self.profile.get("limits", {})

        self.generator = generator or ImageGenerator(openai_cfg)
        self.analyzer = analyzer or VisionAnalyzer(openai_cfg)
        self.transcriber = transcriber or OpenAITranscriber(openai_cfg)
        self.artifacts = artifacts or ArtifactStore.from_profile(store_cfg, name="artifacts")
        self.videos = videos or ArtifactStore.from_profile(store_cfg, name="videos")
        self.media_cfg = MediaConfig.from_profile(self.profile.get("media", {}))
        self.image_max_bytes = int(limits.get("image_max_bytes", 10 * 1024 * 1024))
        self.video_max_bytes = int(limits.get("video_max_bytes", 50 * 1024 * 1024))
        self.temp_root = temp_root


_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


@dataclass(frozen=True)
class ValidUpload:
    data: bytes
    content_type: str
    filename: str

    @property
    def suffix(self) -> str:
        """File extension used for the temporary copy handed to ffmpeg."""
        suffix = Path(self.filename).suffix
        return suffix if _SAFE_SUFFIX.match(suffix) else ".mp4"


def _fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def _read_capped(upload: UploadFile, limit: int) -> Optional[bytes]:
    """Read an upload, returning None when it is larger than ``limit``."""
    data = upload.file.read(limit + 1)
    if len(data) > limit:
        return None
    return data


def _validate_upload(upload: Optional[UploadFile], *, kind: str, limit: int) -> Union[ValidUpload, JSONResponse]:
    if upload is None:
        return _fail(400, f"No {kind} file uploaded")
    content_type = (upload.content_type or "").lower()
    if not content_type.startswith(f"{kind}/"):
        return _fail(400, f"Only {kind} files are accepted (got {content_type or 'unknown'})")
    data = _read_capped(upload, limit)
    if data is None:
        return _fail(413, f"{kind.capitalize()} file is too large (max {limit // (1024 * 1024)}MB)")
    if not data:
        return _fail(400, f"{kind.capitalize()} file is empty")
    return ValidUpload(data=data, content_type=content_type, filename=upload.filename or "")


def create_app(
    *,
    profile_path: Optional[Path] = None,
    context: Optional[RelayContext] = None,
) -> FastAPI:
    ctx = context or RelayContext(profile_path)

    app = FastAPI(title="imagestream", version=__version__)
    app.state.ctx = ctx
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(ctx.profile.get("server", {}).get("cors_origins", ["*"])),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root() -> JSONResponse:
        return JSONResponse({"name": "imagestream", "version": __version__})

    @app.get("/api/health")
    def api_health() -> JSONResponse:
        return JSONResponse({"ok": True, "artifacts": len(ctx.artifacts), "videos": len(ctx.videos)})

    @app.post("/generate")
    @app.post("/generate-image")
    async def generate(request: Request) -> Response:
        try:
            body = await request.json()
        except ValueError:
            body = {}
        prompt = body.get("prompt") if isinstance(body, dict) else None
        prompt = prompt.strip() if isinstance(prompt, str) else ""
        if not prompt:
            return JSONResponse({"error": "Prompt is required"}, status_code=400)

        return sse_response(ctx.generator.stream(prompt), ctx.artifacts, prompt=prompt)

    @app.get("/artifact/{session_id}")
    @app.get("/download/{session_id}")
    def download_artifact(session_id: str) -> Response:
        artifact = ctx.artifacts.get(session_id)
        if artifact is None:
            raise HTTPException(status_code=404, detail="artifact_not_found")
        return Response(
            content=artifact.data,
            media_type=artifact.content_type,
            headers={"Content-Disposition": content_disposition("attachment", artifact.filename)},
        )

    @app.post("/analyze-image")
    def analyze_image(image: Optional[UploadFile] = File(None)) -> JSONResponse:
        upload = _validate_upload(image, kind="image", limit=ctx.image_max_bytes)
        if isinstance(upload, JSONResponse):
            return upload

        try:
            prompt = ctx.analyzer.describe_image(upload.data, upload.content_type)
        except UpstreamError as e:
            log.error("image analysis failed: %s", e)
            return _fail(502, f"Image analysis failed: {e}")
        return JSONResponse({"success": True, "prompt": prompt})

    @app.post("/analyze-video")
    def analyze_video(video: Optional[UploadFile] = File(None)) -> JSONResponse:
        upload = _validate_upload(video, kind="video", limit=ctx.video_max_bytes)
        if isinstance(upload, JSONResponse):
            return upload

        filename = upload.filename or "video.mp4"
        try:
            extraction = extract_media(
                upload.data,
                cfg=ctx.media_cfg,
                transcriber=ctx.transcriber,
                suffix=upload.suffix,
                temp_root=ctx.temp_root,
            )
        except MediaExtractionError as e:
            log.warning("video extraction failed for %r: %s", filename, e)
            return _fail(422, f"Could not read video: {e}")

        try:
            analysis = ctx.analyzer.analyze_video(extraction.frames, extraction.transcript)
        except UpstreamError as e:
            log.error("video analysis failed: %s", e)
            return _fail(502, f"Video analysis failed: {e}")

        video_id = ctx.videos.new_id()
        ctx.videos.put(
            video_id,
            Artifact(
                data=upload.data,
                content_type=upload.content_type,
                origin=filename,
                filename=filename,
            ),
        )
        return JSONResponse(
            {
                "success": True,
                "videoId": video_id,
                "analysis": analysis,
                "audio": extraction.transcript.kind,
                "frames": len(extraction.frames),
            }
        )

    @app.get("/media/{video_id}")
    @app.get("/video/{video_id}")
    def serve_video(video_id: str, request: Request) -> Response:
        artifact = ctx.videos.get(video_id)
        if artifact is None:
            raise HTTPException(status_code=404, detail="video_not_found")
        return ranged_bytes_response(request, artifact.data, media_type=artifact.content_type, filename=artifact.filename)

    return app
