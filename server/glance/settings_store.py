"""键值设置存储 — JSON 文件保存 API key 与主机地址。"""

from __future__ import annotations

import json
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

OPEN_AI_API_KEY = "open_ai_api_key"
TAILSCALE_HOST_IP = "tailscale_host_ip"


@dataclass(frozen=True)
class Credentials:
    """单次流水线运行使用的凭据，运行开始时读取一次。"""

    api_key: str = ""
    host: str = ""


class SettingsStore:
    """字符串键值存储，缺失的键返回空字符串。"""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, str]:
        """读取全部键值。文件不存在或损坏则返回空字典。"""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Failed to load settings from %s: %s, using defaults", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Settings file %s is not an object, using defaults", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get(self, key: str) -> str:
        return self.load().get(key, "")

    def set(self, key: str, value: str) -> None:
        """写入单个键（原子写入：临时文件 + rename）。"""
        data = self.load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with open(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            Path(tmp_path).replace(self.path)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def credentials(self) -> Credentials:
        data = self.load()
        return Credentials(
            api_key=data.get(OPEN_AI_API_KEY, ""),
            host=data.get(TAILSCALE_HOST_IP, ""),
        )
