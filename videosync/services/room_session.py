"""
videosync.services.room_session
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

放映室会话服务 —— 按事件类型分发入站事件，负责加入协议与断线清理。

架构设计:
  - ``RoomRegistry``         独占房间实例，``acquire`` 提供单房间单写者临界区
  - ``SyncProtocolHandler``  主持人播放控制
  - ``PresenceTracker``      观众名单与进出通知
  - ``ChatRelay``            聊天广播

同一连接的事件由 WebSocket 端点按到达顺序逐个交给 ``dispatch``；
不同房间之间互不加锁，一个房间里的异常不会影响其他房间。
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from videosync.core.exceptions import AuthorizationViolation, ValidationError
from videosync.core.logging import get_logger
from videosync.schemas import events
from videosync.schemas.events import JoinRequest, parse_payload
from videosync.services.chat_relay import ChatRelay
from videosync.services.gateway import Connection, ConnectionGateway
from videosync.services.presence import PresenceTracker
from videosync.services.room import Room
from videosync.services.room_registry import RoomRegistry
from videosync.services.sync_handler import SyncProtocolHandler

logger = get_logger(__name__)

EventHandler = Callable[[Connection, Any], Awaitable[None]]
RoomHandler = Callable[[Room, Connection, Any], None]


class RoomSessionService:
    """入站事件的统一入口。

    - ``dispatch(connection, event, data)`` → 按事件名路由
    - ``join(connection, data)``            → 加入协议
    - ``leave(connection)``                 → 离开当前房间（断线 / 换房间）
    - ``disconnect(connection)``            → 传输层断开后的清理

    Attributes:
        registry: 房间注册表。
        gateway: 出站消息网关。
        presence: 在线状态跟踪器。
        sync: 播放同步处理器。
        chat: 聊天转发器。
    """

    def __init__(
        self,
        registry: RoomRegistry,
        gateway: ConnectionGateway,
        chat_max_length: int = 500,
        display_name_max_length: int = 64,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.presence = PresenceTracker(gateway)
        self.sync = SyncProtocolHandler(gateway)
        self.chat = ChatRelay(gateway, max_length=chat_max_length)
        self.display_name_max_length = display_name_max_length
        self._handlers: dict[str, EventHandler] = {
            events.JOIN: self.join,
            events.SYNC_EVENT: self.sync_event,
            events.SEND_VIDEO_STATE: self.send_video_state,
            events.SEND_VIDEO_URL: self.send_video_url,
            events.SEND_CHAT_MESSAGE: self.chat_message,
        }

    # ── 分发 ──────────────────────────────────────────────────────────

    async def dispatch(self, connection: Connection, event: str, data: Any) -> None:
        """处理一条入站事件，所有业务异常都在这里收口。"""
        handler = self._handlers.get(event)
        if handler is None:
            self.reject(connection, ValidationError(f"Unknown event: {event}", event=event))
            return
        try:
            await handler(connection, data)
        except AuthorizationViolation as e:
            # 越权操作静默丢弃，不给客户端任何反馈
            logger.debug("忽略越权操作: %s", e)
        except ValidationError as e:
            self.reject(connection, e)
        except Exception as e:
            logger.error(
                "事件处理异常 | event=%s | room=%s | %s",
                event, connection.room_id, e, exc_info=True,
            )
            self.gateway.emit(
                connection.id, events.ERROR, {"event": event, "message": "Internal error"},
            )

    def reject(self, connection: Connection, error: ValidationError) -> None:
        """把校验错误只回给发送方。"""
        logger.info("拒绝入站事件 | event=%s | %s", error.event, error.message)
        if error.event == events.JOIN:
            self.gateway.emit(connection.id, events.JOIN_ERROR, {"message": error.message})
        else:
            self.gateway.emit(
                connection.id, events.ERROR, {"event": error.event, "message": error.message},
            )

    # ── 加入 ──────────────────────────────────────────────────────────

    async def join(self, connection: Connection, data: Any) -> None:
        """加入协议。

        校验失败时只回 ``join-error``，不修改注册表。已在某个房间里的连接
        会先走一遍离开流程，再加入新房间。
        """
        request = parse_payload(JoinRequest, data, events.JOIN)
        room_id = request.room_id
        role = (request.role or "").strip()
        if not room_id or not room_id.strip() or not role:
            raise ValidationError("Missing roomId or role", event=events.JOIN)
        if role not in events.ROLES:
            raise ValidationError("Invalid role", event=events.JOIN)

        if connection.room_id is not None:
            # 同一房间内换角色时保留房间（及其快照），仅重置成员身份
            await self.leave(connection, keep_room=connection.room_id == room_id)

        display_name = request.resolved_display_name()
        if display_name:
            connection.display_name = display_name[: self.display_name_max_length]
        connection.user_id = request.resolved_user_id() or connection.user_id

        async with self.registry.acquire(room_id) as room:
            connection.room_id = room_id
            connection.role = "host" if role == "host" else "viewer"
            self.gateway.subscribe(connection.id, room_id)

            if connection.role == "host":
                self._join_as_host(room, connection, request.video_url)
            else:
                self._join_as_viewer(room, connection)

            self.gateway.emit(
                connection.id,
                events.JOIN_SUCCESS,
                {"roomId": room_id, "role": connection.role, "connectionId": connection.id},
            )
            self.presence.announce_joined(room, connection)

    def _join_as_host(self, room: Room, connection: Connection, video_url: str | None) -> None:
        previous = room.set_host(connection.id, connection.display_name)
        if previous is not None:
            logger.warning(
                "主持人槽位被覆盖 | room=%s | 原主持人=%s | 新主持人=%s",
                room.room_id, previous, connection.id,
            )
        logger.info("主持人加入 | room=%s | 观众数: %d", room.room_id, len(room.viewers))

        self.gateway.emit(connection.id, events.VIEWERS_LIST, self.presence.roster_payload(room))
        if video_url and room.set_video_url(video_url):
            self.sync.broadcast_video_url(room)

    def _join_as_viewer(self, room: Room, connection: Connection) -> None:
        room.add_viewer(connection.id, connection.display_name)
        logger.info("观众加入 | room=%s | 观众数: %d", room.room_id, len(room.viewers))

        if room.host_id is not None:
            self.presence.viewer_joined(room, connection)
            # 向主持人拉取该观众专属的权威状态
            self.gateway.emit(room.host_id, events.REQUEST_VIDEO_STATE, {"viewerId": connection.id})

        # 同时立刻用缓存快照兜底，观众端需要容忍重复送达
        self.sync.send_initial_sync(room, connection.id)

    # ── 离开 / 断线 ───────────────────────────────────────────────────

    async def leave(self, connection: Connection, keep_room: bool = False) -> None:
        """离开当前房间；房间变空时由注册表删除。重复调用是无操作。

        Args:
            connection: 要离开的连接。
            keep_room: 为 True 时即使房间变空也不删除（紧接着会重新加入同一房间）。
        """
        room_id = connection.room_id
        if room_id is None:
            return

        async with self.registry.acquire_existing(room_id) as room:
            self.gateway.unsubscribe(connection.id, room_id)
            if room is not None:
                if room.clear_host(connection.id):
                    logger.info("主持人离开 | room=%s", room_id)
                    self.presence.host_left(room, connection)
                elif room.remove_viewer(connection.id):
                    logger.info("观众离开 | room=%s | 观众数: %d", room_id, len(room.viewers))
                    self.presence.viewer_left(room, connection)
                self.presence.announce_left(room, connection)
                if not keep_room:
                    self.registry.discard_if_empty(room)

        connection.room_id = None
        connection.role = None

    async def disconnect(self, connection: Connection) -> None:
        """传输层断开：走离开流程，不向离开者本人发送任何错误。"""
        await self.leave(connection)

    # ── 房间内事件 ────────────────────────────────────────────────────

    async def _in_room(self, connection: Connection, handler: RoomHandler, data: Any) -> None:
        if connection.room_id is None:
            raise AuthorizationViolation(f"connection {connection.id} has not joined a room")
        async with self.registry.acquire_existing(connection.room_id) as room:
            if room is None:
                raise AuthorizationViolation(f"room {connection.room_id} no longer exists")
            handler(room, connection, data)

    async def sync_event(self, connection: Connection, data: Any) -> None:
        await self._in_room(connection, self.sync.handle_sync_event, data)

    async def send_video_state(self, connection: Connection, data: Any) -> None:
        await self._in_room(connection, self.sync.handle_video_state, data)

    async def send_video_url(self, connection: Connection, data: Any) -> None:
        await self._in_room(connection, self.sync.handle_video_url, data)

    async def chat_message(self, connection: Connection, data: Any) -> None:
        self.chat.relay(connection, data)
