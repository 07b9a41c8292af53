"""共享 fixtures — mock WebSocket, 测试配置, 临时文件, mock 客户端等。"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from glance.config import HTTPConfig, PipelineConfig, Settings, SpeechConfig, VisionConfig, load_settings
from glance.pipeline.describe import DescribePipeline, DescriptionResult, PipelineFailure
from glance.settings_store import Credentials

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ────────────────────── Mock WebSocket ──────────────────────


class MockWebSocket:
    """模拟 FastAPI WebSocket，记录发送的消息。"""

    def __init__(self) -> None:
        self.sent_text: list[str] = []
        self.sent_bytes: list[bytes] = []
        self._receive_queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def accept(self) -> None:
        pass

    async def send_text(self, data: str) -> None:
        self.sent_text.append(data)

    async def send_bytes(self, data: bytes) -> None:
        self.sent_bytes.append(data)

    async def receive(self) -> dict[str, Any]:
        return await self._receive_queue.get()

    async def close(self, code: int = 1000) -> None:
        self.closed = True

    def inject_text(self, data: str) -> None:
        """注入一条 JSON 文本消息到接收队列。"""
        self._receive_queue.put_nowait({"type": "websocket.receive", "text": data})

    def inject_bytes(self, data: bytes) -> None:
        """注入一条二进制消息到接收队列。"""
        self._receive_queue.put_nowait({"type": "websocket.receive", "bytes": data})

    def inject_disconnect(self) -> None:
        """注入断开事件。"""
        self._receive_queue.put_nowait({"type": "websocket.disconnect"})

    def get_sent_json_messages(self) -> list[dict]:
        """将所有已发送的 JSON 文本解析为 dict 列表。"""
        return [json.loads(t) for t in self.sent_text]

    def get_sent_messages_by_type(self, msg_type: str) -> list[dict]:
        """筛选指定 type 的已发送消息。"""
        return [m for m in self.get_sent_json_messages() if m.get("type") == msg_type]


# ────────────────────── Result sink ──────────────────────


class RecordingSink:
    """记录流水线回调顺序的结果接收方。"""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def on_status(self, text: str) -> None:
        self.events.append(("status", text))

    async def on_result(self, result: DescriptionResult) -> None:
        self.events.append(("result", result.text))

    async def on_failure(self, failure: PipelineFailure) -> None:
        self.events.append(("failure", failure.kind))


# ────────────────────── Fixtures ──────────────────────


@pytest.fixture
def test_config() -> Settings:
    """加载测试专用配置。"""
    return load_settings(FIXTURES_DIR / "test_config.toml")


@pytest.fixture
def mock_ws() -> MockWebSocket:
    return MockWebSocket()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(api_key="sk-test", host="http://100.64.0.7")


@pytest.fixture
def png_bytes() -> bytes:
    """一张 8x8 的 PNG 图片。"""
    from io import BytesIO

    buf = BytesIO()
    Image.new("RGBA", (8, 8), (200, 30, 30, 255)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def image_file(tmp_path, png_bytes) -> Path:
    path = tmp_path / "capture.png"
    path.write_bytes(png_bytes)
    return path


@pytest.fixture
def audio_file(tmp_path) -> Path:
    """伪造的 MP4 录音（内容不会被解码）。"""
    path = tmp_path / "recording.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)
    return path


@pytest.fixture
def mock_speech() -> MagicMock:
    """Mock 语音客户端 — 返回固定转录响应体。"""
    speech = MagicMock()
    speech.send = AsyncMock(return_value='{"text": "hello"}')
    speech.is_started = True
    return speech


@pytest.fixture
def mock_vision() -> MagicMock:
    """Mock 视觉客户端 — 返回固定描述响应体。"""
    vision = MagicMock()
    vision.send = AsyncMock(return_value='{"response": "a cat"}')
    vision.is_started = True
    return vision


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(default_prompt="Describe the scene.")


@pytest.fixture
def pipeline(mock_speech, mock_vision, pipeline_config) -> DescribePipeline:
    return DescribePipeline(mock_speech, mock_vision, pipeline_config)


@pytest.fixture
def speech_config() -> SpeechConfig:
    return SpeechConfig(url="http://speech.test/v1/audio/transcriptions")


@pytest.fixture
def vision_config() -> VisionConfig:
    return VisionConfig()


@pytest.fixture
def http_config() -> HTTPConfig:
    return HTTPConfig()
