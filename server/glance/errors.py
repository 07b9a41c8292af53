"""错误分类 — 传输 / 解析 / 格式错误。

客户端抛出这些异常，流水线捕获后转换为显式的失败结果，不向外传播。
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSCRIPTION_TRANSPORT = "transcription_transport"
    TRANSCRIPTION_PARSE = "transcription_parse"
    TRANSCRIPTION_FORMAT = "transcription_format"
    IMAGE_DECODE = "image_decode"
    VISION_TRANSPORT = "vision_transport"
    VISION_PARSE = "vision_parse"


class PipelineError(Exception):
    """流水线错误基类。"""

    kind: ErrorKind
    user_message: str = "Something went wrong"


class TransportError(PipelineError):
    """网络或连接失败，没有收到响应。"""


class ParseError(PipelineError):
    """响应体不是合法的 JSON 对象。"""


class FormatError(PipelineError):
    """响应体合法但缺少期望字段。"""


class TranscriptionTransportError(TransportError):
    kind = ErrorKind.TRANSCRIPTION_TRANSPORT
    user_message = "Failed while calling speech service"


class TranscriptionParseError(ParseError):
    kind = ErrorKind.TRANSCRIPTION_PARSE
    user_message = "Failed to parse response"


class TranscriptionFormatError(FormatError):
    kind = ErrorKind.TRANSCRIPTION_FORMAT
    user_message = "Failed to get response text"


class ImageDecodeError(PipelineError):
    kind = ErrorKind.IMAGE_DECODE
    user_message = "Failed to read image"


class VisionTransportError(TransportError):
    kind = ErrorKind.VISION_TRANSPORT
    user_message = "Failed while calling vision service"


class VisionParseError(ParseError):
    kind = ErrorKind.VISION_PARSE
    user_message = "Failed to parse JSON response"
