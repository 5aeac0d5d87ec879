"""
videosync.client.heartbeat
~~~~~~~~~~~~~~~~~~~~~~~~~~

主持人端心跳：播放期间每隔约 5 秒重发一次当前状态，用于纠正观众端的漂移。

尽力而为，不保证送达；发送失败只记日志，下一轮继续。
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from videosync.client.reconciler import Player
from videosync.core.logging import get_logger
from videosync.schemas import events

logger = get_logger(__name__)

HEARTBEAT_INTERVAL: float = 5.0

Emitter = Callable[[str, dict[str, Any]], Awaitable[None]]


class HostHeartbeat:
    """主持人播放心跳。

    Attributes:
        player: 主持人本地播放器。
        emit: 发送事件的协程函数 ``emit(event, data)``。
        interval: 心跳间隔（秒）。
    """

    def __init__(self, player: Player, emit: Emitter, interval: float = HEARTBEAT_INTERVAL) -> None:
        self.player = player
        self.emit = emit
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def beat(self) -> bool:
        """暂停中不发送；播放中重发一次 ``play``。返回是否发送。"""
        if self.player.paused:
            return False
        await self.emit(
            events.SYNC_EVENT,
            {"type": "play", "currentTime": self.player.current_time},
        )
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.beat()
            except Exception as e:
                logger.warning("心跳发送失败: %s", e)

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
