"""流水线编排 — 暂存上传文件、启动/取消每个会话的描述任务。"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from glance.pipeline.describe import PipelineRun

if TYPE_CHECKING:
    from glance.pipeline.describe import DescribePipeline, PipelineOutcome, ResultSink
    from glance.settings_store import SettingsStore
    from glance.ws.session import Session

logger = logging.getLogger(__name__)


class Orchestrator:
    """每个会话同一时间最多一个运行中的流水线。"""

    def __init__(self, pipeline: DescribePipeline, store: SettingsStore) -> None:
        self.pipeline = pipeline
        self.store = store

    async def handle_audio_start(self, session: Session) -> None:
        """处理 audio_start：打断 + 开始录音。"""
        await self.cancel_pipeline(session)
        session.start_recording()

    async def handle_audio_end(self, session: Session, name: str) -> None:
        session.stop_recording()
        session.audio_name = name

    async def handle_image(self, session: Session, data: bytes, name: str) -> None:
        """处理 image：连同已缓冲的录音一起启动流水线。"""
        await self.cancel_pipeline(session, notify=False)

        audio = session.stage_audio()
        image = session.stage_image(data, name)
        run = PipelineRun()
        session.run = run
        session.pipeline_task = asyncio.create_task(
            self._run_pipeline(session, image, audio, run)
        )

    async def cancel_pipeline(self, session: Session, notify: bool = True) -> None:
        """取消当前流水线，必要时通知设备。"""
        run = session.run
        was_running = run is not None and not run.done
        if run is not None:
            run.cancel()

        if session.pipeline_task and not session.pipeline_task.done():
            session.pipeline_task.cancel()
            try:
                await session.pipeline_task
            except asyncio.CancelledError:
                pass

        if was_running and notify:
            await session.on_cancelled()

        session.run = None
        session.pipeline_task = None

    async def describe(
        self,
        image: Path,
        audio: Path | None = None,
        sink: ResultSink | None = None,
        run: PipelineRun | None = None,
    ) -> PipelineOutcome:
        """读取凭据并执行一次完整流水线。"""
        credentials = self.store.credentials()
        return await self.pipeline.run(image, credentials, audio=audio, sink=sink, run=run)

    async def _run_pipeline(
        self, session: Session, image: Path, audio: Path | None, run: PipelineRun
    ) -> None:
        try:
            outcome = await self.describe(image, audio=audio, sink=session, run=run)
            logger.info(
                "Run for %s finished: %s", session.device_id, type(outcome).__name__
            )
        except asyncio.CancelledError:
            logger.info("Pipeline cancelled for session %s", session.device_id)
            raise
        except Exception:
            logger.exception("Pipeline error for session %s", session.device_id)
