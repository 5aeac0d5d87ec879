"""
videosync.api.rooms
~~~~~~~~~~~~~~~~~~~

放映室 REST 接口 —— 只读的房间查询。

路由前缀 ``/api``。

端点:
  - ``GET /rooms``             → 获取活跃房间列表
  - ``GET /rooms/{room_id}``   → 获取房间详情（不存在时 404，不会创建房间）
"""
from fastapi import APIRouter, Depends, Request

from videosync.api.deps import get_registry
from videosync.core.rate_limit import limiter
from videosync.schemas.api_response import ApiResponse
from videosync.schemas.events import RoomInfoData
from videosync.services.room_registry import RoomRegistry

router: APIRouter = APIRouter()


@router.get("/rooms", summary="获取活跃房间列表", response_model=ApiResponse[list[RoomInfoData]])
@limiter.limit("10/second")
async def list_rooms(request: Request, registry: RoomRegistry = Depends(get_registry)):
    """返回所有活跃放映室的摘要（主持人是否在线、观众数、播放快照）。"""
    return ApiResponse.ok(data=registry.list_rooms())


@router.get("/rooms/{room_id}", summary="获取房间详情", response_model=ApiResponse[RoomInfoData])
@limiter.limit("5/second")
async def room_info(request: Request, room_id: str, registry: RoomRegistry = Depends(get_registry)):
    """返回指定放映室的详细信息。

    房间只能通过 WebSocket ``join`` 创建，这里查不到就返回 404。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        room_id: 房间唯一标识。
    """
    room = registry.get(room_id)
    if room is None:
        return ApiResponse.fail(msg="Room not found", code=404).as_json_response()
    return ApiResponse.ok(data=room.info())
