"""
videosync.client.reconciler
~~~~~~~~~~~~~~~~~~~~~~~~~~~

观众端播放对齐逻辑，必须与 Web 前端保持一致才能互通:

  - ``play(t)``  → 本地位置与 t 相差超过 0.5 秒时先跳转再播放，否则直接播放
  - ``pause(t)`` → 立即暂停，忽略偏差
  - ``seek(t)``  → 跳到 t 并强制暂停（不管之前是否在播放）
  - ``initial-sync`` → 跳到 currentTime，按 isPlaying 播放或暂停

播放器还没加载出元数据时，只记录最近一次目标，等 ``on_loaded`` 时再应用。
``initial-sync`` 可能收到两次（缓存快照 + 主持人回应），重复应用是安全的。
"""
from __future__ import annotations

from typing import Any, Protocol

from videosync.core.logging import get_logger

logger = get_logger(__name__)

DRIFT_TOLERANCE: float = 0.5


class Player(Protocol):
    """观众端播放器需要提供的最小接口。"""

    @property
    def current_time(self) -> float: ...

    @property
    def paused(self) -> bool: ...

    @property
    def ready(self) -> bool:
        """元数据是否已加载，可以跳转。"""
        ...

    def seek(self, position: float) -> None: ...

    async def play(self) -> None: ...

    def pause(self) -> None: ...


class PendingSeek:
    """播放器就绪前暂存的对齐目标。"""

    def __init__(self, position: float, play: bool) -> None:
        self.position = position
        self.play = play

    def __repr__(self) -> str:
        return f"<PendingSeek {self.position:.2f}s play={self.play}>"


class ViewerReconciler:
    """把主持人的同步事件应用到本地播放器。

    Attributes:
        player: 本地播放器。
        pending: 播放器就绪前暂存的目标。
        video_url: 最近一次收到的视频地址。
    """

    def __init__(self, player: Player) -> None:
        self.player = player
        self.pending: PendingSeek | None = None
        self.video_url: str | None = None

    async def _resume(self) -> None:
        try:
            await self.player.play()
        except Exception as e:
            # 浏览器自动播放策略等原因导致失败时，只记录不中断
            logger.warning("自动播放失败，需要用户交互: %s", e)

    async def _seek_to(self, position: float, play: bool) -> None:
        if not self.player.ready:
            self.pending = PendingSeek(position, play)
            return
        self.player.seek(position)
        if play:
            await self._resume()
        else:
            self.player.pause()

    async def apply_sync_event(self, sync_type: str, position: float) -> None:
        """应用一条 ``sync-event``。"""
        if sync_type == "play":
            if abs(self.player.current_time - position) > DRIFT_TOLERANCE:
                await self._seek_to(position, play=True)
            else:
                await self._resume()
        elif sync_type == "pause":
            self.player.pause()
        elif sync_type == "seek":
            await self._seek_to(position, play=False)
        else:
            logger.debug("忽略未知同步类型: %s", sync_type)

    async def apply_initial_sync(self, data: dict[str, Any]) -> None:
        """应用 ``initial-sync``（缓存快照或主持人实时状态）。"""
        if data.get("videoUrl"):
            self.video_url = data["videoUrl"]
        await self._seek_to(float(data.get("currentTime", 0.0)), play=bool(data.get("isPlaying")))

    async def on_loaded(self) -> None:
        """播放器加载完成后应用暂存的目标。"""
        pending, self.pending = self.pending, None
        if pending is None:
            return
        self.player.seek(pending.position)
        if pending.play:
            await self._resume()
        else:
            self.player.pause()
