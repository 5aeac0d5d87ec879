"""
videosync.client.sync_client
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

基于 ``websockets`` 的 Python 客户端，可以作为主持人或观众接入放映室。

- ``attach_host(player)``   → 自动回应 ``request-video-state``，并在加入后启动心跳
- ``attach_viewer(player)`` → 用 ``ViewerReconciler`` 应用同步事件
- ``on(event, handler)``    → 注册任意事件的回调
"""
from __future__ import annotations

import inspect
import json
from collections.abc import Awaitable, Callable
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from videosync.client.heartbeat import HEARTBEAT_INTERVAL, HostHeartbeat
from videosync.client.reconciler import Player, ViewerReconciler
from videosync.core.logging import get_logger
from videosync.schemas import events

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[None] | None]


class SyncClient:
    """放映室 WebSocket 客户端。

    Attributes:
        url: 服务端 WebSocket 地址，例如 ``ws://127.0.0.1:4000/ws``。
        connection_id: ``join-success`` 后由服务端分配的连接 ID。
        reconciler: 作为观众接入时的对齐器。
        heartbeat: 作为主持人接入时的心跳。
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self.connection_id: str | None = None
        self.reconciler: ViewerReconciler | None = None
        self.heartbeat: HostHeartbeat | None = None
        self._ws: ClientConnection | None = None
        self._handlers: dict[str, list[Handler]] = {}

    # ── 连接 ──────────────────────────────────────────────────────────

    async def connect(self) -> None:
        self._ws = await connect(self.url)

    async def close(self) -> None:
        if self.heartbeat is not None:
            await self.heartbeat.stop()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def __aenter__(self) -> SyncClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── 出站 ──────────────────────────────────────────────────────────

    async def send(self, event: str, data: dict[str, Any]) -> None:
        if self._ws is None:
            raise RuntimeError("SyncClient 尚未连接，请先调用 connect()")
        await self._ws.send(json.dumps({"event": event, "data": data}))

    async def join(
        self,
        room_id: str,
        role: str,
        display_name: str,
        user_id: str | None = None,
        video_url: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {"roomId": room_id, "role": role, "displayName": display_name}
        if user_id is not None:
            payload["userId"] = user_id
        if video_url is not None:
            payload["videoUrl"] = video_url
        await self.send(events.JOIN, payload)

    async def sync(self, sync_type: str, current_time: float) -> None:
        await self.send(events.SYNC_EVENT, {"type": sync_type, "currentTime": current_time})

    async def send_chat(self, message: str, username: str, user_id: str | None = None) -> None:
        await self.send(
            events.SEND_CHAT_MESSAGE,
            {"message": message, "username": username, "userId": user_id},
        )

    # ── 入站 ──────────────────────────────────────────────────────────

    def on(self, event: str, handler: Handler) -> None:
        """注册事件回调，同一事件可以注册多个，按注册顺序调用。"""
        self._handlers.setdefault(event, []).append(handler)

    def attach_viewer(self, player: Player) -> ViewerReconciler:
        """以观众身份把同步事件应用到 ``player``。"""
        reconciler = ViewerReconciler(player)

        async def on_sync(data: dict[str, Any]) -> None:
            await reconciler.apply_sync_event(data.get("type", ""), float(data.get("currentTime", 0.0)))

        async def on_url(data: dict[str, Any]) -> None:
            reconciler.video_url = data.get("videoUrl")

        self.on(events.SYNC_EVENT, on_sync)
        self.on(events.INITIAL_SYNC, reconciler.apply_initial_sync)
        self.on(events.VIDEO_URL_UPDATE, on_url)
        self.reconciler = reconciler
        return reconciler

    def attach_host(self, player: Player, interval: float = HEARTBEAT_INTERVAL) -> HostHeartbeat:
        """以主持人身份回应 host-pull，并在加入成功后启动心跳。"""
        heartbeat = HostHeartbeat(player, self.send, interval=interval)

        async def on_request_state(data: dict[str, Any]) -> None:
            await self.send(
                events.SEND_VIDEO_STATE,
                {
                    "viewerId": data["viewerId"],
                    "isPlaying": not player.paused,
                    "currentTime": player.current_time,
                },
            )

        async def on_joined(data: dict[str, Any]) -> None:
            if data.get("role") == "host":
                heartbeat.start()

        self.on(events.REQUEST_VIDEO_STATE, on_request_state)
        self.on(events.JOIN_SUCCESS, on_joined)
        self.heartbeat = heartbeat
        return heartbeat

    async def handle_frame(self, raw: str | bytes) -> None:
        """解析一帧消息并分发给已注册的回调。"""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("收到无法解析的消息: %r", raw[:80])
            return
        if not isinstance(frame, dict):
            logger.warning("忽略非对象消息: %r", raw[:80])
            return
        event = frame.get("event")
        data = frame.get("data") or {}

        if event == events.JOIN_SUCCESS:
            self.connection_id = data.get("connectionId")

        for handler in self._handlers.get(event, []):
            result = handler(data)
            if inspect.isawaitable(result):
                await result

    async def listen(self) -> None:
        """持续接收消息直到连接关闭。"""
        if self._ws is None:
            raise RuntimeError("SyncClient 尚未连接，请先调用 connect()")
        try:
            async for raw in self._ws:
                await self.handle_frame(raw)
        except ConnectionClosed:
            logger.info("连接已关闭")
        finally:
            if self.heartbeat is not None:
                await self.heartbeat.stop()
