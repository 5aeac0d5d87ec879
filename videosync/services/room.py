"""
videosync.services.room
~~~~~~~~~~~~~~~~~~~~~~~

放映室领域模型 —— 主持人槽位、观众名单和播放快照。

``Room`` 只保存连接 ID，不持有连接对象；连接销毁时不需要深入房间内部。
所有修改都必须在 ``room.lock`` 内完成（见 ``RoomRegistry.acquire``）。
"""
from __future__ import annotations

import asyncio

from videosync.schemas.events import PlaybackSnapshot, RoomInfoData, ViewerInfo


class Room:
    """一个放映室实体。

    Attributes:
        room_id: 房间唯一标识（由调用方提供）。
        host_id: 当前主持人的连接 ID，没有主持人时为 None。
        viewers: 观众连接 ID → 显示名称（保持加入顺序）。
        snapshot: 缓存的播放快照。
        lock: 单写者临界区。
        closed: 已被注册表删除，持锁方应放弃并重新获取。
    """

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        self.host_id: str | None = None
        self.host_name: str | None = None
        self.viewers: dict[str, str] = {}
        self.snapshot = PlaybackSnapshot()
        self.lock = asyncio.Lock()
        self.closed = False

    def __repr__(self) -> str:
        return f"<Room {self.room_id} host={self.host_id} viewers={len(self.viewers)}>"

    @property
    def is_empty(self) -> bool:
        """既没有主持人也没有观众。"""
        return self.host_id is None and not self.viewers

    def is_host(self, connection_id: str) -> bool:
        return self.host_id is not None and self.host_id == connection_id

    def has_viewer(self, connection_id: str) -> bool:
        return connection_id in self.viewers

    # ── 成员变更 ──────────────────────────────────────────────────────

    def set_host(self, connection_id: str, display_name: str) -> str | None:
        """占据主持人槽位，无条件覆盖原主持人。

        Returns:
            被顶替的原主持人连接 ID（没有或就是自己时为 None）。
        """
        previous = self.host_id if self.host_id != connection_id else None
        self.host_id = connection_id
        self.host_name = display_name
        return previous

    def clear_host(self, connection_id: str) -> bool:
        """仅当 ``connection_id`` 是当前主持人时清空槽位。"""
        if not self.is_host(connection_id):
            return False
        self.host_id = None
        self.host_name = None
        return True

    def add_viewer(self, connection_id: str, display_name: str) -> None:
        """加入观众名单（同一 ID 重复加入只更新名称）。"""
        self.viewers[connection_id] = display_name

    def remove_viewer(self, connection_id: str) -> bool:
        return self.viewers.pop(connection_id, None) is not None

    # ── 播放快照 ──────────────────────────────────────────────────────

    def play(self, position: float) -> None:
        self.snapshot.is_playing = True
        self.snapshot.current_time = position

    def pause(self, position: float) -> None:
        self.snapshot.is_playing = False
        self.snapshot.current_time = position

    def seek(self, position: float) -> None:
        """只移动位置，播放/暂停状态保持不变。"""
        self.snapshot.current_time = position

    def set_video_url(self, video_url: str) -> bool:
        """更新视频地址，返回是否发生了变化。"""
        if self.snapshot.video_url == video_url:
            return False
        self.snapshot.video_url = video_url
        return True

    # ── 查询 ──────────────────────────────────────────────────────────

    def roster(self) -> list[ViewerInfo]:
        """完整观众名单（按加入顺序）。"""
        return [ViewerInfo(id=vid, username=name) for vid, name in self.viewers.items()]

    def info(self) -> RoomInfoData:
        """返回房间摘要信息。"""
        return RoomInfoData(
            room_id=self.room_id,
            has_host=self.host_id is not None,
            viewer_count=len(self.viewers),
            snapshot=self.snapshot.model_copy(),
        )
