"""Glance — 语音提问 + 拍照，返回图片描述。"""

__version__ = "0.1.0"
