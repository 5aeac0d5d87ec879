"""
videosync.services.gateway
~~~~~~~~~~~~~~~~~~~~~~~~~~

连接网关 —— 维护所有在线连接、房间广播组，以及出站消息的投递。

出站采用"即发即忘"：``emit`` 只把消息放进连接自己的有界队列，
由该连接的写协程按顺序发送。队列满或发送失败只记日志，不会影响业务处理。
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Any

from fastapi import WebSocket

from videosync.core.logging import get_logger
from videosync.schemas.events import Role

logger = get_logger(__name__)


class Connection:
    """一条与传输层绑定的临时身份，断开即销毁，从不持久化。

    Attributes:
        id: 网关分配的不透明连接 ID。
        websocket: 底层 WebSocket（测试中可以为 None）。
        room_id: 当前所在房间，未加入时为 None。
        role: 当前角色，未加入时为 None。
        display_name: 显示名称。
        user_id: 外部身份系统提供的用户 ID（可选）。
        outbox: 出站消息队列。
    """

    def __init__(
        self,
        websocket: WebSocket | None = None,
        connection_id: str | None = None,
        queue_size: int = 256,
    ) -> None:
        self.id: str = connection_id or uuid.uuid4().hex
        self.websocket = websocket
        self.room_id: str | None = None
        self.role: Role | None = None
        self.display_name: str = f"User_{self.id[:8]}"
        self.user_id: str | None = None
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"<Connection {self.id} room={self.room_id} role={self.role}>"

    async def _write_loop(self) -> None:
        """按入队顺序把出站消息写到 WebSocket。"""
        assert self.websocket is not None
        while True:
            message = await self.outbox.get()
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                logger.warning("发送失败，停止写协程 | conn=%s | %s", self.id, e)
                return

    def start_writer(self) -> None:
        if self._writer is None and self.websocket is not None:
            self._writer = asyncio.create_task(self._write_loop())

    async def close(self) -> None:
        """停止写协程，丢弃尚未发送的消息。"""
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None


class ConnectionGateway:
    """连接网关。

    - ``connect(websocket)``               → 接受连接并分配 ID
    - ``emit(conn_id, event, data)``       → 单播
    - ``emit_to_room(room_id, ...)``       → 房间组播（可排除发送者）
    - ``subscribe`` / ``unsubscribe``      → 维护房间广播组

    房间广播组只保存连接 ID，房间状态本身归 ``RoomRegistry`` 所有。
    """

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._connections: dict[str, Connection] = {}
        # room_id -> 订阅该房间的连接 ID（dict 保持加入顺序）
        self._groups: dict[str, dict[str, None]] = {}

    # ── 连接生命周期 ──────────────────────────────────────────────────

    async def connect(self, websocket: WebSocket) -> Connection:
        """接受新连接，分配 ID 并启动写协程。"""
        await websocket.accept()
        connection = Connection(websocket=websocket, queue_size=self.queue_size)
        self.add(connection)
        connection.start_writer()
        return connection

    def add(self, connection: Connection) -> None:
        self._connections[connection.id] = connection

    async def disconnect(self, connection: Connection) -> None:
        """移除连接并退出所有广播组。"""
        self._connections.pop(connection.id, None)
        if connection.room_id is not None:
            self.unsubscribe(connection.id, connection.room_id)
        await connection.close()

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    @property
    def online_count(self) -> int:
        """当前在线连接数。"""
        return len(self._connections)

    # ── 广播组 ────────────────────────────────────────────────────────

    def subscribe(self, connection_id: str, room_id: str) -> None:
        self._groups.setdefault(room_id, {})[connection_id] = None

    def unsubscribe(self, connection_id: str, room_id: str) -> None:
        group = self._groups.get(room_id)
        if group is None:
            return
        group.pop(connection_id, None)
        if not group:
            del self._groups[room_id]

    def members(self, room_id: str) -> list[str]:
        """返回订阅了该房间的连接 ID 列表。"""
        return list(self._groups.get(room_id, {}))

    # ── 出站 ──────────────────────────────────────────────────────────

    def emit(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        """向单个连接投递事件（即发即忘）。"""
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug("目标连接不存在，丢弃 %s | target=%s", event, connection_id)
            return
        try:
            connection.outbox.put_nowait({"event": event, "data": data})
        except asyncio.QueueFull:
            logger.warning("出站队列已满，丢弃 %s | target=%s", event, connection_id)

    def emit_to_room(
        self,
        room_id: str,
        event: str,
        data: dict[str, Any],
        exclude: str | None = None,
    ) -> None:
        """向房间广播组内所有连接投递事件。"""
        for connection_id in self.members(room_id):
            if connection_id != exclude:
                self.emit(connection_id, event, data)
