"""E2E 测试专用 fixtures — 真实应用 + 真实 httpx 客户端，外部服务用 MockTransport 替代。"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from starlette.testclient import TestClient

from glance.app import create_app
from glance.config import Settings, load_settings
from glance.settings_store import OPEN_AI_API_KEY, TAILSCALE_HOST_IP, SettingsStore

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeServices:
    """记录发往外部服务的请求，并按测试设定返回响应。"""

    def __init__(self) -> None:
        self.speech_requests: list[httpx.Request] = []
        self.vision_requests: list[httpx.Request] = []
        self.speech_handler: Handler = lambda request: httpx.Response(200, json={"text": "hello"})
        self.vision_handler: Handler = lambda request: httpx.Response(200, json={"response": "a cat"})

    def _speech(self, request: httpx.Request) -> httpx.Response:
        self.speech_requests.append(request)
        return self.speech_handler(request)

    def _vision(self, request: httpx.Request) -> httpx.Response:
        self.vision_requests.append(request)
        return self.vision_handler(request)

    def install(self, app) -> None:
        app.state.speech._client = httpx.AsyncClient(transport=httpx.MockTransport(self._speech))
        app.state.vision._client = httpx.AsyncClient(transport=httpx.MockTransport(self._vision))

    def vision_payload(self, index: int = -1) -> dict:
        return json.loads(self.vision_requests[index].content)


@pytest.fixture
def e2e_settings(tmp_path) -> Settings:
    settings = load_settings(FIXTURES_DIR / "test_config.toml")
    settings.pipeline.spool_dir = tmp_path / "spool"
    settings.store.path = tmp_path / "settings.json"

    store = SettingsStore(settings.store.path)
    store.set(OPEN_AI_API_KEY, "sk-e2e")
    store.set(TAILSCALE_HOST_IP, "100.64.0.7")
    return settings


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def client(e2e_settings, services):
    app = create_app(e2e_settings)
    with TestClient(app) as c:
        services.install(app)
        yield c
