"""转录 + 描述流水线 — 语音转文字 → 图片描述，串行执行。

一次运行的全部结果都以显式的返回值表达（DescriptionResult / PipelineFailure /
PipelineCancelled），客户端抛出的 PipelineError 不会越过 run()。
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, Union

from glance.errors import ErrorKind, PipelineError
from glance.pipeline.speech import parse_transcription
from glance.pipeline.vision import encode_image, parse_description

if TYPE_CHECKING:
    from glance.config import PipelineConfig
    from glance.pipeline.speech import SpeechClient
    from glance.pipeline.vision import VisionClient
    from glance.settings_store import Credentials

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    IDLE = "idle"
    TRANSCRIBING = "transcribing"
    SKIPPING_TRANSCRIPTION = "skipping_transcription"
    DESCRIBING = "describing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL = {PipelineState.COMPLETED, PipelineState.FAILED, PipelineState.CANCELLED}

_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {
        PipelineState.TRANSCRIBING,
        PipelineState.SKIPPING_TRANSCRIPTION,
        PipelineState.CANCELLED,
    },
    PipelineState.TRANSCRIBING: {
        PipelineState.DESCRIBING,
        PipelineState.FAILED,
        PipelineState.CANCELLED,
    },
    PipelineState.SKIPPING_TRANSCRIPTION: {PipelineState.DESCRIBING, PipelineState.CANCELLED},
    PipelineState.DESCRIBING: {
        PipelineState.COMPLETED,
        PipelineState.FAILED,
        PipelineState.CANCELLED,
    },
}


class CancellationToken:
    """取消标记。每个副作用（删除文件、发送结果）之前检查。"""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class PipelineRun:
    """单次运行的状态：取消标记 + 状态机。"""

    token: CancellationToken = field(default_factory=CancellationToken)
    state: PipelineState = PipelineState.IDLE
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])

    @property
    def done(self) -> bool:
        return self.state in _TERMINAL

    def transition_to(self, new_state: PipelineState) -> None:
        """状态机转换，校验合法路径。"""
        allowed = _TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid state transition: {self.state.value} → {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    def cancel(self) -> None:
        self.token.cancel()


@dataclass(frozen=True)
class DescriptionResult:
    text: str
    prompt: str


@dataclass(frozen=True)
class PipelineFailure:
    kind: ErrorKind
    message: str
    detail: str = ""


@dataclass(frozen=True)
class PipelineCancelled:
    pass


PipelineOutcome = Union[DescriptionResult, PipelineFailure, PipelineCancelled]


class ResultSink(Protocol):
    """结果接收方（WebSocket 会话、HTTP 响应收集器等）。"""

    async def on_status(self, text: str) -> None:
        """中间状态，例如转录出的文字。"""

    async def on_result(self, result: DescriptionResult) -> None:
        """最终描述。"""

    async def on_failure(self, failure: PipelineFailure) -> None:
        """终止性失败。"""


class _RunCancelled(Exception):
    pass


def _check(run: PipelineRun) -> None:
    if run.token.cancelled:
        raise _RunCancelled


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to delete %s: %s", path, e)
    else:
        logger.debug("Deleted %s", path)


class DescribePipeline:
    """语音转写 → 图片描述。无音频时直接用默认 prompt 描述图片。"""

    def __init__(
        self,
        speech: SpeechClient,
        vision: VisionClient,
        config: PipelineConfig,
        jpeg_quality: int = 100,
    ) -> None:
        self.speech = speech
        self.vision = vision
        self.config = config
        self.jpeg_quality = jpeg_quality

    async def run(
        self,
        image: Path,
        credentials: Credentials,
        audio: Path | None = None,
        sink: ResultSink | None = None,
        run: PipelineRun | None = None,
    ) -> PipelineOutcome:
        if run is None:
            run = PipelineRun()

        try:
            if audio is None:
                run.transition_to(PipelineState.SKIPPING_TRANSCRIPTION)
                prompt = self.config.default_prompt
            else:
                run.transition_to(PipelineState.TRANSCRIBING)
                prompt = await self._transcribe(audio, credentials, run, sink)

            run.transition_to(PipelineState.DESCRIBING)
            text = await self._describe(prompt, image, credentials, run)

            result = DescriptionResult(text=text, prompt=prompt)
            _check(run)
            run.transition_to(PipelineState.COMPLETED)
            if sink is not None:
                await sink.on_result(result)
            return result

        except _RunCancelled:
            logger.info("Describe run cancelled in state %s", run.state.value)
            run.transition_to(PipelineState.CANCELLED)
            return PipelineCancelled()

        except PipelineError as e:
            logger.error("Describe run failed: %s", e, exc_info=True)
            if run.token.cancelled:
                run.transition_to(PipelineState.CANCELLED)
                return PipelineCancelled()
            failure = PipelineFailure(kind=e.kind, message=e.user_message, detail=str(e))
            run.transition_to(PipelineState.FAILED)
            if sink is not None:
                await sink.on_failure(failure)
            return failure

        except asyncio.CancelledError:
            logger.info("Describe task cancelled in state %s", run.state.value)
            run.cancel()
            if not run.done:
                run.transition_to(PipelineState.CANCELLED)
            raise

    async def _transcribe(
        self,
        audio: Path,
        credentials: Credentials,
        run: PipelineRun,
        sink: ResultSink | None,
    ) -> str:
        _check(run)
        # 传输失败时录音保留，不删除
        body = await self.speech.send(audio, credentials.api_key)

        _check(run)
        _discard(audio)

        text = parse_transcription(body)
        logger.info("Transcribed prompt: %s", text)

        _check(run)
        if sink is not None:
            await sink.on_status(text)
        return text

    async def _describe(
        self,
        prompt: str,
        image: Path,
        credentials: Credentials,
        run: PipelineRun,
    ) -> str:
        # 先解码再删除；请求结果如何，图片都已不存在
        try:
            image_b64 = await asyncio.to_thread(encode_image, image, self.jpeg_quality)
        finally:
            if not run.token.cancelled:
                _discard(image)
        _check(run)

        body = await self.vision.send(prompt, image_b64, credentials.host)
        _check(run)
        return parse_description(body)
