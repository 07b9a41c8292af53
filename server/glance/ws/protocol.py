"""WebSocket 消息类型定义 — Pydantic 模型。"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


# ────────────────────── 基础 ──────────────────────

class BaseMessage(BaseModel):
    type: str


# ────────────────────── Device → Server ──────────────────────

class PingMessage(BaseMessage):
    type: Literal["ping"] = "ping"


class AudioStartMessage(BaseMessage):
    type: Literal["audio_start"] = "audio_start"


class AudioEndMessage(BaseMessage):
    type: Literal["audio_end"] = "audio_end"
    name: str = "recording.mp4"


class ImageMessage(BaseMessage):
    type: Literal["image"] = "image"
    data: str  # base64
    name: str = "capture.jpg"


class GestureMessage(BaseMessage):
    type: Literal["gesture"] = "gesture"
    gesture: Literal["tap", "swipe_up", "swipe_down", "swipe_forward", "swipe_backward"]


# ────────────────────── Server → Device ──────────────────────

class PongMessage(BaseMessage):
    type: Literal["pong"] = "pong"


class StatusMessage(BaseMessage):
    type: Literal["status"] = "status"
    content: str


class ResultMessage(BaseMessage):
    type: Literal["result"] = "result"
    content: str


class FailureMessage(BaseMessage):
    type: Literal["failure"] = "failure"
    message: str
    error: str


class CancelledMessage(BaseMessage):
    type: Literal["cancelled"] = "cancelled"


# ────────────────────── 解析 ──────────────────────

_DEVICE_TYPES: dict[str, type[BaseMessage]] = {
    "ping": PingMessage,
    "audio_start": AudioStartMessage,
    "audio_end": AudioEndMessage,
    "image": ImageMessage,
    "gesture": GestureMessage,
}

_SERVER_TYPES: dict[str, type[BaseMessage]] = {
    "pong": PongMessage,
    "status": StatusMessage,
    "result": ResultMessage,
    "failure": FailureMessage,
    "cancelled": CancelledMessage,
}


def parse_device_message(data: dict) -> BaseMessage:
    """解析 Device → Server 的 JSON 消息。"""
    msg_type = data.get("type")
    cls = _DEVICE_TYPES.get(msg_type)  # type: ignore[arg-type]
    if cls is None:
        raise ValueError(f"Unknown device message type: {msg_type!r}")
    return cls(**data)


def parse_server_message(data: dict) -> BaseMessage:
    """解析 Server → Device 的 JSON 消息。"""
    msg_type = data.get("type")
    cls = _SERVER_TYPES.get(msg_type)  # type: ignore[arg-type]
    if cls is None:
        raise ValueError(f"Unknown server message type: {msg_type!r}")
    return cls(**data)
