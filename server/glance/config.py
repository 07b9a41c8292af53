"""配置管理 — Pydantic Settings 从 TOML 加载。"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

_DEFAULT_TOML = Path(__file__).resolve().parent.parent / "config" / "default.toml"
_DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"

DEFAULT_PROMPT = "What is in this image? Describe it briefly."


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class HTTPConfig(BaseModel):
    read_timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)


class SpeechConfig(BaseModel):
    url: str = "https://api.openai.com/v1/audio/transcriptions"
    model: str = "whisper-1"
    content_type: str = "audio/mp4"


class VisionConfig(BaseModel):
    port: int = 11434
    path: str = "/api/generate"
    model: str = "llava"
    jpeg_quality: int = Field(default=100, ge=1, le=100)


class PipelineConfig(BaseModel):
    default_prompt: str = DEFAULT_PROMPT
    spool_dir: Path = _DEFAULT_DATA_DIR / "spool"


class StoreConfig(BaseModel):
    path: Path = _DEFAULT_DATA_DIR / "settings.json"


class Settings(BaseSettings):
    server: ServerConfig = ServerConfig()
    http: HTTPConfig = HTTPConfig()
    speech: SpeechConfig = SpeechConfig()
    vision: VisionConfig = VisionConfig()
    pipeline: PipelineConfig = PipelineConfig()
    store: StoreConfig = StoreConfig()

    model_config = {"env_prefix": "GLANCE_", "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # TOML 内容经 init 参数传入，环境变量优先级更高
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def load_settings(toml_path: Path = _DEFAULT_TOML) -> Settings:
    """从 TOML 文件加载配置，环境变量可覆盖。"""
    import sys

    if sys.version_info >= (3, 11):
        import tomllib
    else:
        import tomli as tomllib

    if toml_path.exists():
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
        return Settings(**data)
    return Settings()
