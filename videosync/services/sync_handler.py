"""
videosync.services.sync_handler
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

播放同步协议处理 —— 主持人驱动的播放状态机。

状态只有 Paused(position) / Playing(position) 两种，不记录墙钟锚点，
两次同步事件之间由观众端自行推算进度。

所有操作只对房间的*当前*主持人开放；其他连接的尝试抛出
``AuthorizationViolation``，由上层静默丢弃。鉴权先于校验，
非主持人永远拿不到任何诊断信息。
"""
from __future__ import annotations

from videosync.core.exceptions import AuthorizationViolation
from videosync.core.logging import get_logger
from videosync.schemas import events
from videosync.schemas.events import (
    SyncEventRequest,
    VideoStateRequest,
    VideoUrlRequest,
    parse_payload,
)
from videosync.services.gateway import Connection, ConnectionGateway
from videosync.services.room import Room

logger = get_logger(__name__)


class SyncProtocolHandler:
    """校验发送者角色、修改快照并转发同步事件。

    Attributes:
        gateway: 出站消息网关。
    """

    def __init__(self, gateway: ConnectionGateway) -> None:
        self.gateway = gateway

    def _require_host(self, room: Room, connection: Connection, event: str) -> None:
        if not room.is_host(connection.id):
            raise AuthorizationViolation(f"{event} from non-host {connection.id}")

    def handle_sync_event(self, room: Room, connection: Connection, data: object) -> None:
        """处理 ``sync-event``：更新快照并转发给除发送者外的所有成员。

        - ``play(t)``  → 播放中，位置 t
        - ``pause(t)`` → 已暂停，位置 t
        - ``seek(t)``  → 位置 t，播放状态不变
        """
        self._require_host(room, connection, events.SYNC_EVENT)
        request = parse_payload(SyncEventRequest, data, events.SYNC_EVENT)

        if request.type == "play":
            room.play(request.current_time)
        elif request.type == "pause":
            room.pause(request.current_time)
        else:
            room.seek(request.current_time)

        self.gateway.emit_to_room(
            room.room_id,
            events.SYNC_EVENT,
            {"type": request.type, "currentTime": request.current_time},
            exclude=connection.id,
        )
        logger.debug(
            "同步事件 | room=%s | %s @ %.2fs | isPlaying=%s",
            room.room_id, request.type, request.current_time, room.snapshot.is_playing,
        )

    def handle_video_state(self, room: Room, connection: Connection, data: object) -> None:
        """处理 ``send-video-state``：把主持人的实时状态单播给指定观众。

        这是对 ``request-video-state`` 的回应，不修改房间快照。
        目标必须是同一房间内的观众，否则丢弃。
        """
        self._require_host(room, connection, events.SEND_VIDEO_STATE)
        request = parse_payload(VideoStateRequest, data, events.SEND_VIDEO_STATE)
        if not room.has_viewer(request.viewer_id):
            logger.debug("目标观众不在房间内 | room=%s | viewer=%s", room.room_id, request.viewer_id)
            return

        payload: dict[str, object] = {
            "isPlaying": request.is_playing,
            "currentTime": request.current_time,
        }
        if room.snapshot.video_url:
            payload["videoUrl"] = room.snapshot.video_url
        self.gateway.emit(request.viewer_id, events.INITIAL_SYNC, payload)

    def handle_video_url(self, room: Room, connection: Connection, data: object) -> None:
        """处理 ``send-video-url``：缓存视频地址并推送给指定观众（或全部观众）。"""
        self._require_host(room, connection, events.SEND_VIDEO_URL)
        request = parse_payload(VideoUrlRequest, data, events.SEND_VIDEO_URL)
        room.set_video_url(request.video_url)

        if not request.viewer_id:
            self.broadcast_video_url(room)
        elif room.has_viewer(request.viewer_id):
            self.gateway.emit(
                request.viewer_id, events.VIDEO_URL_UPDATE, {"videoUrl": request.video_url},
            )
        else:
            # 观众可能在主持人回应前已经离开
            logger.debug("目标观众不在房间内 | room=%s | viewer=%s", room.room_id, request.viewer_id)

    def broadcast_video_url(self, room: Room) -> None:
        """把快照中的视频地址推给所有观众。"""
        if not room.snapshot.video_url:
            return
        payload = {"videoUrl": room.snapshot.video_url}
        for viewer_id in room.viewers:
            self.gateway.emit(viewer_id, events.VIDEO_URL_UPDATE, payload)

    def send_initial_sync(self, room: Room, viewer_id: str) -> None:
        """把缓存快照发给刚加入的观众（兜底，可能与主持人回应重复送达）。"""
        self.gateway.emit(viewer_id, events.INITIAL_SYNC, room.snapshot.to_wire())
