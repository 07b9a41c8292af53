"""图片描述 — 图片转 JPEG base64，送入 Ollama 多模态模型（LLaVA）。"""

from __future__ import annotations

import base64
import json
import logging
from io import BytesIO
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
from PIL import Image, UnidentifiedImageError

from glance.errors import ImageDecodeError, VisionParseError, VisionTransportError

if TYPE_CHECKING:
    from glance.config import HTTPConfig, VisionConfig

logger = logging.getLogger(__name__)

MISSING_RESPONSE_TEXT = "No 'response' field found in JSON"


def encode_image(image_path: Path, quality: int = 100) -> str:
    """解码图片并重新编码为 JPEG，返回 base64 字符串。

    无论源文件格式如何都会重新编码。
    """
    try:
        with Image.open(image_path) as img:
            img = img.convert("RGB")
            buf = BytesIO()
            img.save(buf, format="JPEG", quality=quality)
    except (OSError, UnidentifiedImageError) as e:
        raise ImageDecodeError(f"Cannot decode image {image_path}: {e}") from e
    return base64.b64encode(buf.getvalue()).decode("ascii")


def build_url(host: str, config: VisionConfig) -> str:
    """拼接 <host>:<port><path>，未带协议的主机补 http://。"""
    host = host.strip().rstrip("/")
    if host and "://" not in host:
        host = f"http://{host}"
    return f"{host}:{config.port}{config.path}"


class VisionClient:
    """Ollama /api/generate 非流式调用。"""

    def __init__(self, config: VisionConfig, http: HTTPConfig) -> None:
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

    def build_payload(self, prompt: str, image_b64: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "images": [image_b64],
        }

    async def send(self, prompt: str, image_b64: str, host: str) -> str:
        """发送描述请求，返回原始响应体文本。"""
        if not self._client:
            raise RuntimeError("Vision client not started")
        if not host.strip():
            raise VisionTransportError("Vision host not configured")

        url = build_url(host, self.config)
        try:
            resp = await self._client.post(url, json=self.build_payload(prompt, image_b64))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise VisionTransportError(f"Vision request to {url} failed: {e}") from e

        body = resp.text
        logger.debug("Vision response (%d): %s", resp.status_code, body)
        return body


def parse_description(body: str) -> str:
    """取出 response 字段；缺失时返回占位文本而不是报错。"""
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise VisionParseError(f"Vision body is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise VisionParseError("Vision body is not a JSON object")

    response = data.get("response")
    if response is None:
        return MISSING_RESPONSE_TEXT
    return str(response)
