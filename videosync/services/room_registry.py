"""
videosync.services.room_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间注册表 —— 独占所有 ``Room`` 实例，负责创建与删除。

注册表在 FastAPI lifespan 中显式创建并挂载到 ``app.state``，
不作为模块级全局变量存在。
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from videosync.core.exceptions import RoomNotEmptyError
from videosync.core.logging import get_logger
from videosync.schemas.events import RoomInfoData
from videosync.services.room import Room

logger = get_logger(__name__)


class RoomRegistry:
    """房间 ID → ``Room`` 的内存映射。

    不变量：注册表中不存在既无主持人又无观众的房间（持锁修改期间除外）。
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> Room:
        """获取指定房间，不存在则创建一个空房间（暂停、位置 0）。"""
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id)
            self._rooms[room_id] = room
            logger.info("房间已创建 | room=%s | 当前房间数: %d", room_id, len(self._rooms))
        return room

    def remove(self, room_id: str) -> bool:
        """删除空房间。

        Returns:
            是否真的删除了房间；房间不存在时返回 False。

        Raises:
            RoomNotEmptyError: 房间仍有主持人或观众。
        """
        room = self._rooms.get(room_id)
        if room is None:
            return False
        if not room.is_empty:
            raise RoomNotEmptyError(f"room {room_id!r} still has members")
        del self._rooms[room_id]
        room.closed = True
        logger.info("房间已删除 | room=%s | 当前房间数: %d", room_id, len(self._rooms))
        return True

    def discard_if_empty(self, room: Room) -> bool:
        """房间为空时删除它。调用方必须持有 ``room.lock``。"""
        if not room.is_empty or self._rooms.get(room.room_id) is not room:
            return False
        return self.remove(room.room_id)

    async def _lock(self, room_id: str, create: bool) -> Room | None:
        # 等锁期间房间可能已被删除，此时重新获取新的房间实例
        while True:
            room = self.get_or_create(room_id) if create else self._rooms.get(room_id)
            if room is None:
                return None
            await room.lock.acquire()
            if not room.closed:
                return room
            room.lock.release()

    @asynccontextmanager
    async def acquire(self, room_id: str) -> AsyncIterator[Room]:
        """进入指定房间的单写者临界区（不存在则创建）。"""
        room = await self._lock(room_id, create=True)
        assert room is not None
        try:
            yield room
        finally:
            room.lock.release()

    @asynccontextmanager
    async def acquire_existing(self, room_id: str) -> AsyncIterator[Room | None]:
        """进入已存在房间的临界区；房间不存在时得到 None，不会创建。"""
        room = await self._lock(room_id, create=False)
        try:
            yield room
        finally:
            if room is not None:
                room.lock.release()

    def list_rooms(self) -> list[RoomInfoData]:
        """列出所有房间的摘要信息。"""
        return [room.info() for room in self._rooms.values()]
