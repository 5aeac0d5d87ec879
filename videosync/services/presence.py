"""
videosync.services.presence
~~~~~~~~~~~~~~~~~~~~~~~~~~~

在线状态跟踪 —— 成员变化时向主持人推送完整观众名单，并发出进出房间通知。

每次推送的都是完整名单而非增量，房间规模在几十人以内时足够简单。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from videosync.schemas import events
from videosync.services.gateway import Connection, ConnectionGateway
from videosync.services.room import Room


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PresenceTracker:
    """房间成员变化的通知出口。

    Attributes:
        gateway: 出站消息网关。
    """

    def __init__(self, gateway: ConnectionGateway) -> None:
        self.gateway = gateway

    def roster_payload(self, room: Room) -> dict[str, Any]:
        return {"viewers": [v.model_dump(by_alias=True) for v in room.roster()]}

    def push_roster(self, room: Room) -> None:
        """把完整观众名单推给当前主持人（没有主持人时什么都不做）。"""
        if room.host_id is not None:
            self.gateway.emit(room.host_id, events.VIEWERS_LIST, self.roster_payload(room))

    def viewer_joined(self, room: Room, connection: Connection) -> None:
        """观众加入：通知主持人并刷新名单。"""
        if room.host_id is None:
            return
        self.gateway.emit(
            room.host_id,
            events.VIEWER_JOINED,
            {
                "viewerId": connection.id,
                "roomId": room.room_id,
                "username": connection.display_name,
            },
        )
        self.push_roster(room)

    def viewer_left(self, room: Room, connection: Connection) -> None:
        """观众离开：通知主持人并刷新名单。"""
        if room.host_id is None:
            return
        self.gateway.emit(
            room.host_id,
            events.USER_LEFT,
            {"role": "viewer", "connectionId": connection.id},
        )
        self.push_roster(room)

    def host_left(self, room: Room, connection: Connection) -> None:
        """主持人离开：通知房间内剩余的所有成员。"""
        self.gateway.emit_to_room(
            room.room_id,
            events.USER_LEFT,
            {"role": "host", "connectionId": connection.id},
            exclude=connection.id,
        )

    def _chat_notice(self, room: Room, connection: Connection, event: str) -> None:
        self.gateway.emit_to_room(
            room.room_id,
            event,
            {
                "connectionId": connection.id,
                "username": connection.display_name,
                "role": connection.role,
                "roomId": room.room_id,
                "timestamp": _utc_now(),
            },
            exclude=connection.id,
        )

    def announce_joined(self, room: Room, connection: Connection) -> None:
        """聊天区的"某某加入了房间"提示，发给除本人以外的成员。"""
        self._chat_notice(room, connection, events.USER_JOINED_CHAT)

    def announce_left(self, room: Room, connection: Connection) -> None:
        self._chat_notice(room, connection, events.USER_LEFT_CHAT)
