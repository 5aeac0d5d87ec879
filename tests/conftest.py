"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 不依赖真实网络连接，直接用内存中的 ``Connection``
和它的出站队列来观察服务端发出的事件。
"""
from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ.setdefault("CHAT_RATE_LIMIT_INTERVAL", "0")

from videosync.services.gateway import Connection, ConnectionGateway  # noqa: E402
from videosync.services.room_registry import RoomRegistry  # noqa: E402
from videosync.services.room_session import RoomSessionService  # noqa: E402

Sent = list[tuple[str, dict[str, Any]]]


@pytest.fixture()
def gateway() -> ConnectionGateway:
    return ConnectionGateway(queue_size=64)


@pytest.fixture()
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture()
def service(registry: RoomRegistry, gateway: ConnectionGateway) -> RoomSessionService:
    return RoomSessionService(registry, gateway, chat_max_length=20)


@pytest.fixture()
def open_connection(gateway: ConnectionGateway) -> Callable[[str], Connection]:
    """创建一个不带 WebSocket 的连接并注册到网关（出站消息留在 outbox 里）。"""

    def _open(connection_id: str) -> Connection:
        connection = Connection(connection_id=connection_id)
        gateway.add(connection)
        return connection

    return _open


@pytest.fixture()
def drain() -> Callable[[Connection], Sent]:
    """取出连接 outbox 中的全部消息，返回 ``[(event, data), ...]``。"""

    def _drain(connection: Connection) -> Sent:
        sent: Sent = []
        while not connection.outbox.empty():
            message = connection.outbox.get_nowait()
            sent.append((message["event"], message["data"]))
        return sent

    return _drain


@pytest.fixture()
def join(service: RoomSessionService) -> Callable[..., Any]:
    """快捷加入房间：``await join(conn, "R1", "host", "Alice")``。"""

    async def _join(connection: Connection, room_id: str, role: str, name: str, **extra: Any) -> None:
        data = {"roomId": room_id, "role": role, "displayName": name, **extra}
        await service.dispatch(connection, "join", data)

    return _join
