"""
videosync.schemas.events
~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 事件协议的 Pydantic 模型。

线上帧格式统一为 ``{"event": "<事件名>", "data": {...}}``，
字段名使用 camelCase（与 Web 前端保持一致），Python 侧使用 snake_case。
"""
from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from videosync.core.exceptions import ValidationError

Role = Literal["host", "viewer"]
ROLES: tuple[str, ...] = ("host", "viewer")
SyncType = Literal["play", "pause", "seek"]

# ── 事件名 ────────────────────────────────────────────────────────────

# 入站
JOIN = "join"
SYNC_EVENT = "sync-event"
SEND_VIDEO_STATE = "send-video-state"
SEND_VIDEO_URL = "send-video-url"
SEND_CHAT_MESSAGE = "send-chat-message"

# 出站
JOIN_SUCCESS = "join-success"
JOIN_ERROR = "join-error"
VIEWER_JOINED = "viewer-joined"
VIEWERS_LIST = "viewers-list"
REQUEST_VIDEO_STATE = "request-video-state"
INITIAL_SYNC = "initial-sync"
VIDEO_URL_UPDATE = "video-url-update"
CHAT_MESSAGE = "chat-message"
USER_JOINED_CHAT = "user-joined-chat"
USER_LEFT_CHAT = "user-left-chat"
USER_LEFT = "user-left"
ERROR = "error"


class CamelModel(BaseModel):
    """camelCase 别名的基础模型，入站时两种写法都接受。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class WireMessage(BaseModel):
    """一帧 WebSocket 消息。"""

    event: str = Field(..., min_length=1, description="事件名")
    data: dict[str, Any] = Field(default_factory=dict, description="事件负载")


# ── 入站负载 ──────────────────────────────────────────────────────────

class UserInfo(CamelModel):
    """旧版 Web 前端在 join 中携带的用户信息。"""

    id: str | None = None
    username: str | None = None


class JoinRequest(CamelModel):
    """``join`` 事件负载。

    ``room_id`` / ``role`` 缺失或为空时由服务层统一返回 ``join-error``。
    """

    room_id: str | None = None
    role: str | None = None
    display_name: str | None = None
    user_id: str | None = None
    video_url: str | None = None
    user_info: UserInfo | None = None

    def resolved_display_name(self) -> str | None:
        name = self.display_name or (self.user_info.username if self.user_info else None)
        return name.strip() if name and name.strip() else None

    def resolved_user_id(self) -> str | None:
        return self.user_id or (self.user_info.id if self.user_info else None)


class SyncEventRequest(CamelModel):
    """``sync-event`` 事件负载。"""

    type: SyncType
    current_time: float = Field(..., ge=0, allow_inf_nan=False)


class VideoStateRequest(CamelModel):
    """``send-video-state`` 事件负载（主持人回应 host-pull）。"""

    viewer_id: str = Field(..., min_length=1)
    is_playing: bool
    current_time: float = Field(..., ge=0, allow_inf_nan=False)


class VideoUrlRequest(CamelModel):
    """``send-video-url`` 事件负载。``viewer_id`` 为空表示发给全部观众。"""

    viewer_id: str | None = None
    video_url: str = Field(..., min_length=1)


class ChatMessageRequest(CamelModel):
    """``send-chat-message`` 事件负载。"""

    message: str | None = None
    username: str | None = None
    user_id: str | None = None


# ── 出站 / 状态模型 ───────────────────────────────────────────────────

class PlaybackSnapshot(CamelModel):
    """房间缓存的播放快照，用于给新加入的观众快速对齐。"""

    model_config = ConfigDict(validate_assignment=True)

    is_playing: bool = False
    current_time: float = Field(default=0.0, ge=0)
    video_url: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """序列化为 ``initial-sync`` 负载，``videoUrl`` 为空时省略。"""
        return self.model_dump(by_alias=True, exclude_none=True)


class ViewerInfo(CamelModel):
    """观众名单中的一项。"""

    id: str
    username: str


class RoomInfoData(CamelModel):
    """房间摘要信息（REST 查询用）。"""

    room_id: str = Field(..., description="房间唯一标识")
    has_host: bool = Field(..., description="是否有主持人在线")
    viewer_count: int = Field(..., description="当前观众数")
    snapshot: PlaybackSnapshot = Field(..., description="当前播放快照")


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: type[ModelT], data: Any, event: str) -> ModelT:
    """把入站负载解析为模型，失败时抛出业务层 ``ValidationError``。"""
    if not isinstance(data, dict):
        raise ValidationError("Payload must be an object", event=event)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "payload"
        raise ValidationError(f"Invalid {field}: {first['msg']}", event=event) from e
