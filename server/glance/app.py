"""FastAPI 应用工厂 + lifespan。"""

from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, UploadFile, WebSocket
from pydantic import BaseModel

from glance.config import Settings, load_settings
from glance.pipeline.describe import (
    DescribePipeline,
    DescriptionResult,
    PipelineFailure,
    PipelineOutcome,
)
from glance.pipeline.orchestrator import Orchestrator
from glance.pipeline.speech import SpeechClient
from glance.pipeline.vision import VisionClient
from glance.settings_store import SettingsStore
from glance.ws.handler import WebSocketHandler
from glance.ws.session import Session

logger = logging.getLogger(__name__)


class DescribeResponse(BaseModel):
    status: str
    content: str
    prompt: str | None = None
    error: str | None = None


def _to_response(outcome: PipelineOutcome) -> DescribeResponse:
    if isinstance(outcome, DescriptionResult):
        return DescribeResponse(status="completed", content=outcome.text, prompt=outcome.prompt)
    if isinstance(outcome, PipelineFailure):
        return DescribeResponse(status="failed", content=outcome.message, error=outcome.kind.value)
    return DescribeResponse(status="cancelled", content="")


def _save_upload(upload: UploadFile, directory: Path, default_suffix: str) -> Path:
    suffix = Path(upload.filename or "").suffix or default_suffix
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=suffix)
    with open(fd, "wb") as output:
        shutil.copyfileobj(upload.file, output)
    return Path(tmp_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动/关闭生命周期管理。"""
    settings: Settings = app.state.settings

    # 1. 日志
    logging.basicConfig(
        level=getattr(logging, settings.server.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    # 2. HTTP 客户端
    speech = SpeechClient(settings.speech, settings.http)
    await speech.start()
    vision = VisionClient(settings.vision, settings.http)
    await vision.start()

    # 3. 设置存储 + 流水线
    store = SettingsStore(settings.store.path)
    pipeline = DescribePipeline(
        speech, vision, settings.pipeline, jpeg_quality=settings.vision.jpeg_quality
    )
    orchestrator = Orchestrator(pipeline, store)

    # 4. 临时目录
    spool_root = settings.pipeline.spool_dir
    spool_root.mkdir(parents=True, exist_ok=True)

    # 5. Sessions + handler
    sessions: dict[str, Session] = {}
    handler = WebSocketHandler(sessions, orchestrator, spool_root)

    app.state.speech = speech
    app.state.vision = vision
    app.state.orchestrator = orchestrator
    app.state.handler = handler
    app.state.sessions = sessions
    app.state.spool_root = spool_root

    yield

    # Shutdown (reverse order)
    for session in list(sessions.values()):
        await orchestrator.cancel_pipeline(session, notify=False)
        session.cleanup_spool()
    await vision.close()
    await speech.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    """创建 FastAPI 应用。"""
    if settings is None:
        settings = load_settings()

    app = FastAPI(title="Glance Server", lifespan=lifespan)
    app.state.settings = settings

    @app.websocket("/ws/{device_id}")
    async def ws_endpoint(ws: WebSocket, device_id: str):
        handler: WebSocketHandler = app.state.handler
        await handler.handle_connection(ws, device_id)

    @app.post("/describe", response_model=DescribeResponse)
    async def describe(
        image: UploadFile = File(...),
        audio: UploadFile | None = File(None),
    ) -> DescribeResponse:
        orchestrator: Orchestrator = app.state.orchestrator
        spool_root: Path = app.state.spool_root

        image_path: Path | None = None
        audio_path: Path | None = None
        try:
            image_path = _save_upload(image, spool_root, ".jpg")
            if audio is not None:
                audio_path = _save_upload(audio, spool_root, ".mp4")
            outcome = await orchestrator.describe(image_path, audio=audio_path)
        finally:
            # 传输失败时流水线保留录音，由这里兜底清理
            for path in (image_path, audio_path):
                if path is not None:
                    path.unlink(missing_ok=True)
        return _to_response(outcome)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "speech": app.state.speech.is_started if hasattr(app.state, "speech") else False,
            "vision": app.state.vision.is_started if hasattr(app.state, "vision") else False,
        }

    return app
