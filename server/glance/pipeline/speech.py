"""语音识别 — OpenAI 兼容的转录接口（multipart 上传）。"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from glance.errors import TranscriptionFormatError, TranscriptionParseError, TranscriptionTransportError

if TYPE_CHECKING:
    from glance.config import HTTPConfig, SpeechConfig

logger = logging.getLogger(__name__)


class SpeechClient:
    """转录请求客户端。只负责发送与取回响应体，删除文件由流水线决定。"""

    def __init__(self, config: SpeechConfig, http: HTTPConfig) -> None:
        self.config = config
        self.http = http
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.http.connect_timeout, read=self.http.read_timeout)
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_started(self) -> bool:
        return self._client is not None

    async def send(self, audio_path: Path, api_key: str) -> str:
        """上传录音，返回原始响应体文本。

        只要收到响应（无论状态码）就返回响应体；连接失败、超时或录音文件
        不可读时抛出 TranscriptionTransportError。
        """
        if not self._client:
            raise RuntimeError("Speech client not started")

        try:
            audio = await asyncio.to_thread(audio_path.read_bytes)
        except OSError as e:
            raise TranscriptionTransportError(f"Cannot read recording {audio_path}: {e}") from e

        try:
            resp = await self._client.post(
                self.config.url,
                headers={"Authorization": f"Bearer {api_key}"},
                data={"model": self.config.model},
                files={"file": (audio_path.name, audio, self.config.content_type)},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TranscriptionTransportError(f"Speech request failed: {e}") from e

        body = resp.text
        logger.debug("Speech response (%d): %s", resp.status_code, body)
        return body


def parse_transcription(body: str) -> str:
    """从转录响应体中取出 text 字段。"""
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise TranscriptionParseError(f"Transcription body is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise TranscriptionParseError("Transcription body is not a JSON object")

    text = data.get("text")
    if text is None:
        raise TranscriptionFormatError("No 'text' field in the response")
    return str(text)
