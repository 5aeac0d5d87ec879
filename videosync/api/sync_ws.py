"""
videosync.api.sync_ws
~~~~~~~~~~~~~~~~~~~~~

WebSocket 同步接口 —— 主持人与观众共用的 ``/ws`` 端点。

每一帧都是 ``{"event": "<事件名>", "data": {...}}`` 形式的 JSON 文本。
接收与处理拆成两个协程，中间用队列衔接：同一连接的事件严格按到达顺序处理，
聊天限流按实际到达时间判断，不受处理速度影响。
"""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from videosync.core.logging import connection_id_ctx_var, get_logger
from videosync.core.rate_limit import WebSocketRateLimiter
from videosync.core.settings import settings
from videosync.schemas import events
from videosync.schemas.events import WireMessage
from videosync.services.gateway import ConnectionGateway
from videosync.services.room_session import RoomSessionService

logger = get_logger(__name__)

router: APIRouter = APIRouter()

# 单个连接待处理入站事件的上限，满了以后暂停读取
_INBOUND_QUEUE_SIZE = 100


@router.websocket("/ws")
async def websocket_sync_endpoint(websocket: WebSocket) -> None:
    """WebSocket 同步端点。

    连接建立后分配连接 ID，客户端随后发送 ``join`` 加入房间。
    传输层断开（无论正常或异常）都会走一遍离开清理流程，
    离开者本人不会收到任何错误，房间内其他成员会收到通知。

    Args:
        websocket: FastAPI WebSocket 连接对象。
    """
    gateway: ConnectionGateway = websocket.app.state.gateway
    service: RoomSessionService = websocket.app.state.session_service

    connection = await gateway.connect(websocket)
    token = connection_id_ctx_var.set(connection.id)
    logger.info("连接建立 | 在线: %d", gateway.online_count)

    # 当前连接专用的聊天限流器
    chat_limiter = WebSocketRateLimiter(interval_seconds=settings.CHAT_RATE_LIMIT_INTERVAL)
    queue: asyncio.Queue[WireMessage | None] = asyncio.Queue(maxsize=_INBOUND_QUEUE_SIZE)

    async def receive_loop() -> None:
        try:
            while True:
                raw: str = await websocket.receive_text()
                try:
                    message = WireMessage.model_validate_json(raw)
                except PydanticValidationError:
                    gateway.emit(
                        connection.id, events.ERROR, {"event": None, "message": "Malformed frame"},
                    )
                    continue

                # 限流检查：按实际到达时间，过快的聊天消息直接丢弃
                if message.event == events.SEND_CHAT_MESSAGE and not chat_limiter.is_allowed(connection.id):
                    gateway.emit(
                        connection.id,
                        events.ERROR,
                        {"event": events.SEND_CHAT_MESSAGE, "message": "You are sending messages too fast"},
                    )
                    continue

                await queue.put(message)
        except WebSocketDisconnect:
            pass  # 正常断开
        except Exception as e:
            logger.error("WebSocket 接收异常: %s", e, exc_info=True)
        finally:
            await queue.put(None)  # 发送结束信号给处理协程

    async def process_loop() -> None:
        try:
            while True:
                message = await queue.get()
                if message is None:
                    break
                await service.dispatch(connection, message.event, message.data)
        except Exception as e:
            logger.error("WebSocket 处理异常: %s", e, exc_info=True)

    try:
        await asyncio.gather(receive_loop(), process_loop())
    finally:
        await service.disconnect(connection)
        await gateway.disconnect(connection)
        chat_limiter.remove_client(connection.id)
        logger.info("连接断开 | 在线: %d", gateway.online_count)
        connection_id_ctx_var.reset(token)
