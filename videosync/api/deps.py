from fastapi import Request

from videosync.services.room_registry import RoomRegistry


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry
