"""会话对象 — 聚合单个 WebSocket 连接的所有状态。"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from glance.ws.protocol import CancelledMessage, FailureMessage, ResultMessage, StatusMessage

if TYPE_CHECKING:
    from fastapi import WebSocket

    from glance.pipeline.describe import DescriptionResult, PipelineFailure, PipelineRun

logger = logging.getLogger(__name__)


def _suffix(name: str, default: str) -> str:
    return Path(name).suffix or default


class Session:
    """每个 WebSocket 连接一个 Session 实例，同时充当流水线的结果接收方。"""

    def __init__(self, device_id: str, ws: WebSocket, spool_root: Path) -> None:
        self.device_id = device_id
        self.ws = ws
        self.spool_dir = spool_root / f"{device_id}-{uuid.uuid4().hex[:8]}"

        # 录音
        self.recording = False
        self.audio_buffer = bytearray()
        self.audio_name = "recording.mp4"

        # 流水线
        self.run: PipelineRun | None = None
        self.pipeline_task: asyncio.Task | None = None

        self.last_heartbeat: float = time.monotonic()

    # ────────────── 录音缓冲 ──────────────

    def start_recording(self) -> None:
        self.audio_buffer.clear()
        self.recording = True

    def stop_recording(self) -> None:
        self.recording = False

    def append_audio(self, data: bytes) -> None:
        """追加录音二进制帧到缓冲。"""
        self.audio_buffer.extend(data)

    def clear_audio(self) -> None:
        self.audio_buffer.clear()

    # ────────────── 临时文件 ──────────────

    def _spool_path(self, name: str, default_suffix: str) -> Path:
        self.spool_dir.mkdir(parents=True, exist_ok=True)
        return self.spool_dir / f"{uuid.uuid4().hex}{_suffix(name, default_suffix)}"

    def stage_audio(self) -> Path | None:
        """把录音缓冲写入临时文件并清空缓冲；缓冲为空返回 None。"""
        if not self.audio_buffer:
            return None
        path = self._spool_path(self.audio_name, ".mp4")
        path.write_bytes(bytes(self.audio_buffer))
        self.audio_buffer.clear()
        return path

    def stage_image(self, data: bytes, name: str = "capture.jpg") -> Path:
        path = self._spool_path(name, ".jpg")
        path.write_bytes(data)
        return path

    def cleanup_spool(self) -> None:
        """删除会话临时目录（被取消的运行可能留下文件）。"""
        shutil.rmtree(self.spool_dir, ignore_errors=True)

    def update_heartbeat(self) -> None:
        self.last_heartbeat = time.monotonic()

    # ────────────── 结果接收 ──────────────

    async def on_status(self, text: str) -> None:
        await self.ws.send_text(StatusMessage(content=text).model_dump_json())

    async def on_result(self, result: DescriptionResult) -> None:
        await self.ws.send_text(ResultMessage(content=result.text).model_dump_json())

    async def on_failure(self, failure: PipelineFailure) -> None:
        await self.ws.send_text(
            FailureMessage(message=failure.message, error=failure.kind.value).model_dump_json()
        )

    async def on_cancelled(self) -> None:
        await self.ws.send_text(CancelledMessage().model_dump_json())
