"""WebSocket endpoint + 消息路由分发。"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from glance.ws.protocol import (
    AudioEndMessage,
    GestureMessage,
    ImageMessage,
    PongMessage,
    parse_device_message,
)
from glance.ws.session import Session

if TYPE_CHECKING:
    from glance.pipeline.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

# 心跳超时 (秒)
HEARTBEAT_TIMEOUT = 90


class WebSocketHandler:
    """处理单个 WebSocket 连接的消息路由。"""

    def __init__(
        self,
        sessions: dict[str, Session],
        orchestrator: Orchestrator,
        spool_root: Path,
    ) -> None:
        self._sessions = sessions
        self._orchestrator = orchestrator
        self._spool_root = spool_root

    async def handle_connection(self, ws: WebSocket, device_id: str) -> None:
        """处理完整的 WebSocket 连接生命周期。"""
        await ws.accept()
        session = Session(device_id, ws, self._spool_root)

        # 同一设备重连：取消旧会话的运行
        old = self._sessions.get(device_id)
        if old is not None:
            await self._orchestrator.cancel_pipeline(old, notify=False)
            old.cleanup_spool()

        self._sessions[device_id] = session

        heartbeat_task = asyncio.create_task(self._heartbeat_monitor(session))

        try:
            await self._message_loop(session)
        except WebSocketDisconnect:
            logger.info("WebSocket disconnected: %s", device_id)
        except Exception:
            logger.exception("WebSocket error: %s", device_id)
        finally:
            heartbeat_task.cancel()
            await self._orchestrator.cancel_pipeline(session, notify=False)
            session.cleanup_spool()
            if self._sessions.get(device_id) is session:
                self._sessions.pop(device_id, None)

    async def _message_loop(self, session: Session) -> None:
        """消息接收主循环。"""
        while True:
            msg = await session.ws.receive()

            if msg["type"] == "websocket.disconnect":
                break

            if msg["type"] == "websocket.receive":
                if "bytes" in msg and msg["bytes"]:
                    # 二进制帧 → 录音
                    if session.recording:
                        session.append_audio(msg["bytes"])
                    else:
                        logger.debug("Dropping audio frame outside recording: %s", session.device_id)
                elif "text" in msg and msg["text"]:
                    await self._route_json(session, msg["text"])

    async def _route_json(self, session: Session, raw: str) -> None:
        """解析 JSON 并路由到处理器。"""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from %s: %s", session.device_id, raw[:100])
            return

        if not isinstance(data, dict):
            logger.warning("Non-object message from %s", session.device_id)
            return

        try:
            message = parse_device_message(data)
        except ValueError as e:
            logger.warning("Unknown message from %s: %s", session.device_id, e)
            return

        if message.type == "ping":
            session.update_heartbeat()
            await session.ws.send_text(PongMessage().model_dump_json())

        elif message.type == "audio_start":
            await self._orchestrator.handle_audio_start(session)

        elif isinstance(message, AudioEndMessage):
            await self._orchestrator.handle_audio_end(session, message.name)

        elif isinstance(message, ImageMessage):
            try:
                image = base64.b64decode(message.data, validate=True)
            except (binascii.Error, ValueError):
                logger.warning("Invalid base64 image from %s", session.device_id)
                return
            await self._orchestrator.handle_image(session, image, message.name)

        elif isinstance(message, GestureMessage):
            # 下滑返回相机界面：放弃当前运行
            if message.gesture == "swipe_down":
                await self._orchestrator.cancel_pipeline(session)

    async def _heartbeat_monitor(self, session: Session) -> None:
        """监控心跳超时。"""
        try:
            while True:
                await asyncio.sleep(30)
                elapsed = time.monotonic() - session.last_heartbeat
                if elapsed > HEARTBEAT_TIMEOUT:
                    logger.warning("Heartbeat timeout for %s (%.0fs)", session.device_id, elapsed)
                    await session.ws.close()
                    break
        except asyncio.CancelledError:
            pass
