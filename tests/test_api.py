"""
tests.test_api
~~~~~~~~~~~~~~

HTTP / WebSocket 集成测试：通过 TestClient 走完整的应用生命周期。
"""
from __future__ import annotations

import time
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from videosync.core.rate_limit import WebSocketRateLimiter, limiter
from videosync.core.settings import settings
from videosync.main import app


@pytest.fixture()
def client() -> Iterator[TestClient]:
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client


def frame(event: str, **data) -> dict:
    return {"event": event, "data": data}


# ==============================================================================
# 单元测试: WebSocketRateLimiter
# ==============================================================================
def test_websocket_rate_limiter_unit():
    """测试 WebSocket 内存限流器的基础逻辑"""
    chat_limiter = WebSocketRateLimiter(interval_seconds=0.2)
    client_id = "c-999"

    # 第一次发消息应该允许，立刻发第二次应该被拦截
    assert chat_limiter.is_allowed(client_id) is True
    assert chat_limiter.is_allowed(client_id) is False

    # 等待超过间隔时间后应该放行
    time.sleep(0.25)
    assert chat_limiter.is_allowed(client_id) is True

    chat_limiter.remove_client(client_id)
    assert client_id not in chat_limiter._last_message_time


def test_websocket_rate_limiter_disabled():
    chat_limiter = WebSocketRateLimiter(interval_seconds=0)

    assert all(chat_limiter.is_allowed("c") for _ in range(5))


# ==============================================================================
# REST 接口
# ==============================================================================
class TestRest:
    """测试健康检查与房间查询接口。"""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"
        assert body["rooms"] == 0
        assert body["connections"] == 0

    def test_room_not_found_does_not_create(self, client: TestClient) -> None:
        response = client.get("/api/rooms/nope")

        assert response.status_code == 404
        assert response.json() == {"code": 404, "data": None, "msg": "Room not found"}
        assert client.get("/api/rooms").json()["data"] == []

    def test_room_listing_and_detail(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as host:
            host.send_json(frame("join", roomId="R1", role="host", displayName="Alice"))
            assert host.receive_json()["event"] == "viewers-list"
            assert host.receive_json()["event"] == "join-success"
            host.send_json(frame("sync-event", type="pause", currentTime=12.5))
            # 未知事件与前面的事件走同一个处理队列，收到回应说明前面的事件已处理完毕
            host.send_json(frame("ping"))
            assert host.receive_json()["data"]["event"] == "ping"

            rooms = client.get("/api/rooms").json()
            assert rooms["code"] == 200
            assert [r["roomId"] for r in rooms["data"]] == ["R1"]

            detail = client.get("/api/rooms/R1").json()["data"]
            assert detail == {
                "roomId": "R1",
                "hasHost": True,
                "viewerCount": 0,
                "snapshot": {"isPlaying": False, "currentTime": 12.5, "videoUrl": None},
            }


# ==============================================================================
# WebSocket 同步端点
# ==============================================================================
class TestSyncSocket:
    """测试 /ws 端点的完整事件流。"""

    def test_malformed_frames_get_error(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("{broken")
            assert ws.receive_json() == {
                "event": "error",
                "data": {"event": None, "message": "Malformed frame"},
            }

            ws.send_json({"event": "", "data": {}})
            assert ws.receive_json()["data"]["message"] == "Malformed frame"

            ws.send_json(frame("join", role="host"))
            assert ws.receive_json() == {
                "event": "join-error",
                "data": {"message": "Missing roomId or role"},
            }

    def test_host_and_viewer_flow(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as host:
            host.send_json(frame("join", roomId="R1", role="host", displayName="Alice"))
            assert host.receive_json() == {"event": "viewers-list", "data": {"viewers": []}}
            joined = host.receive_json()
            assert joined["event"] == "join-success"
            assert joined["data"]["role"] == "host"

            host.send_json(frame("sync-event", type="play", currentTime=30.0))
            host.send_json(frame("ping"))
            assert host.receive_json()["event"] == "error"

            with client.websocket_connect("/ws") as viewer:
                viewer.send_json(frame("join", roomId="R1", role="viewer", displayName="Bob"))
                assert viewer.receive_json() == {
                    "event": "initial-sync",
                    "data": {"isPlaying": True, "currentTime": 30.0},
                }
                viewer_id = viewer.receive_json()["data"]["connectionId"]

                assert host.receive_json()["event"] == "viewer-joined"
                assert host.receive_json()["data"] == {
                    "viewers": [{"id": viewer_id, "username": "Bob"}],
                }
                assert host.receive_json() == {
                    "event": "request-video-state",
                    "data": {"viewerId": viewer_id},
                }
                assert host.receive_json()["event"] == "user-joined-chat"

                host.send_json(
                    frame("send-video-state", viewerId=viewer_id, isPlaying=True, currentTime=31.0),
                )
                assert viewer.receive_json() == {
                    "event": "initial-sync",
                    "data": {"isPlaying": True, "currentTime": 31.0},
                }

                host.send_json(frame("sync-event", type="seek", currentTime=100.0))
                assert viewer.receive_json() == {
                    "event": "sync-event",
                    "data": {"type": "seek", "currentTime": 100.0},
                }

                viewer.send_json(frame("send-chat-message", message="hi all"))
                chat = viewer.receive_json()
                assert chat["event"] == "chat-message"
                assert chat["data"]["username"] == "Bob"
                assert host.receive_json()["data"]["message"] == "hi all"

            # 观众断开：主持人收到离开通知与新名单
            assert host.receive_json() == {
                "event": "user-left",
                "data": {"role": "viewer", "connectionId": viewer_id},
            }
            assert host.receive_json() == {"event": "viewers-list", "data": {"viewers": []}}

    def test_host_disconnect_notifies_viewers(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as viewer:
            viewer.send_json(frame("join", roomId="R2", role="viewer"))
            assert viewer.receive_json()["event"] == "initial-sync"
            assert viewer.receive_json()["event"] == "join-success"

            with client.websocket_connect("/ws") as host:
                host.send_json(frame("join", roomId="R2", role="host"))
                assert host.receive_json()["event"] == "viewers-list"
                host_id = host.receive_json()["data"]["connectionId"]
                assert viewer.receive_json()["event"] == "user-joined-chat"

            assert viewer.receive_json() == {
                "event": "user-left",
                "data": {"role": "host", "connectionId": host_id},
            }
            assert viewer.receive_json()["event"] == "user-left-chat"

    def test_chat_flood_is_throttled(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings, "CHAT_RATE_LIMIT_INTERVAL", 60.0)

        with client.websocket_connect("/ws") as viewer:
            viewer.send_json(frame("join", roomId="R3", role="viewer", displayName="Bob"))
            viewer.receive_json()
            viewer.receive_json()

            viewer.send_json(frame("send-chat-message", message="one"))
            viewer.send_json(frame("send-chat-message", message="two"))

            received = [viewer.receive_json(), viewer.receive_json()]
            events = sorted(message["event"] for message in received)
            assert events == ["chat-message", "error"]
            error = next(m for m in received if m["event"] == "error")
            assert error["data"] == {
                "event": "send-chat-message",
                "message": "You are sending messages too fast",
            }
