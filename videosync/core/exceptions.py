"""
videosync.core.exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~

同步引擎的业务异常。

- ``ValidationError``        → 只回给发送方（``join-error`` / ``error``），不修改任何状态
- ``AuthorizationViolation`` → 静默丢弃，仅记 debug 日志，永不回给客户端
- ``RoomNotEmptyError``      → 试图删除仍有成员的房间，属于编程错误
"""
from __future__ import annotations


class SyncError(Exception):
    """同步引擎所有业务异常的基类。"""


class ValidationError(SyncError):
    """入站事件缺少必填字段或格式非法。

    Attributes:
        event: 触发异常的入站事件名。
        message: 回给发送方的错误描述（英文，客户端直接展示）。
    """

    def __init__(self, message: str, event: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.event = event


class AuthorizationViolation(SyncError):
    """非当前主持人尝试控制播放。"""


class RoomNotEmptyError(SyncError):
    """房间仍有主持人或观众，不允许删除。"""
