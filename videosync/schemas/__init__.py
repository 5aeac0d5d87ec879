"""
videosync.schemas
~~~~~~~~~~~~~~~~~
REST 应答体与 WebSocket 事件协议模型。
"""
from videosync.schemas.api_response import ApiResponse
from videosync.schemas.events import (
    PlaybackSnapshot,
    RoomInfoData,
    ViewerInfo,
    WireMessage,
)

# 泛型模型需要 model_rebuild 才能解析前向引用
ApiResponse.model_rebuild()
