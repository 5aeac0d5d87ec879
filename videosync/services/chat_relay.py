"""
videosync.services.chat_relay
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

聊天转发 —— 把消息广播给房间内所有连接（包括发送者本人）。

无状态、不保留历史，后加入的观众看不到之前的消息。
"""
from __future__ import annotations

from datetime import datetime, timezone

from videosync.core.logging import get_logger
from videosync.schemas import events
from videosync.schemas.events import ChatMessageRequest, parse_payload
from videosync.services.gateway import Connection, ConnectionGateway

logger = get_logger(__name__)


class ChatRelay:
    """房间聊天转发器。

    Attributes:
        gateway: 出站消息网关。
        max_length: 单条消息最大长度，超出的消息直接丢弃。
    """

    def __init__(self, gateway: ConnectionGateway, max_length: int = 500) -> None:
        self.gateway = gateway
        self.max_length = max_length

    def relay(self, connection: Connection, data: object) -> bool:
        """校验并广播一条聊天消息。

        空消息、空用户名、超长消息以及未加入房间的发送者都会被静默丢弃，
        不广播也不回任何错误事件。

        Args:
            connection: 发送者连接。
            data: ``send-chat-message`` 事件负载。

        Returns:
            是否广播成功。
        """
        request = parse_payload(ChatMessageRequest, data, events.SEND_CHAT_MESSAGE)
        room_id = connection.room_id
        message = (request.message or "").strip()
        username = (request.username or "").strip() or connection.display_name

        if room_id is None or not message or not username:
            logger.debug("丢弃聊天消息 | room=%s | 空内容或未加入房间", room_id)
            return False
        if len(message) > self.max_length:
            logger.debug("丢弃聊天消息 | room=%s | 长度 %d 超限", room_id, len(message))
            return False

        self.gateway.emit_to_room(
            room_id,
            events.CHAT_MESSAGE,
            {
                "message": message,
                "username": username,
                "userId": request.user_id or connection.user_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
        return True
