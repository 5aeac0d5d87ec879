"""
tests.test_client
~~~~~~~~~~~~~~~~~

Python 客户端测试：观众端对齐、主持人心跳与帧分发。不连接真实服务端。
"""
from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from videosync.client import HostHeartbeat, SyncClient, ViewerReconciler


class FakePlayer:
    """记录调用序列的内存播放器。"""

    def __init__(self, current_time: float = 0.0, paused: bool = True, ready: bool = True) -> None:
        self.current_time = current_time
        self.paused = paused
        self.ready = ready
        self.calls: list[tuple] = []
        self.fail_play = False

    def seek(self, position: float) -> None:
        self.current_time = position
        self.calls.append(("seek", position))

    async def play(self) -> None:
        if self.fail_play:
            raise RuntimeError("autoplay blocked")
        self.paused = False
        self.calls.append(("play",))

    def pause(self) -> None:
        self.paused = True
        self.calls.append(("pause",))


# ── 观众端对齐 ────────────────────────────────────────────────────────

class TestViewerReconciler:
    """测试 play / pause / seek / initial-sync 的对齐规则。"""

    @pytest.mark.asyncio
    async def test_play_within_tolerance_does_not_seek(self) -> None:
        player = FakePlayer(current_time=10.3)

        await ViewerReconciler(player).apply_sync_event("play", 10.0)

        assert player.calls == [("play",)]

    @pytest.mark.asyncio
    async def test_play_with_drift_seeks_first(self) -> None:
        player = FakePlayer(current_time=8.0)

        await ViewerReconciler(player).apply_sync_event("play", 10.0)

        assert player.calls == [("seek", 10.0), ("play",)]

    @pytest.mark.asyncio
    async def test_pause_ignores_drift(self) -> None:
        player = FakePlayer(current_time=50.0, paused=False)

        await ViewerReconciler(player).apply_sync_event("pause", 10.0)

        assert player.calls == [("pause",)]
        assert player.current_time == 50.0

    @pytest.mark.asyncio
    async def test_seek_forces_pause(self) -> None:
        """seek 在观众端总是跳转并暂停，不管之前是否在播放。"""
        player = FakePlayer(current_time=5.0, paused=False)

        await ViewerReconciler(player).apply_sync_event("seek", 60.0)

        assert player.calls == [("seek", 60.0), ("pause",)]
        assert player.paused is True

    @pytest.mark.asyncio
    async def test_initial_sync_applies_snapshot(self) -> None:
        player = FakePlayer()
        reconciler = ViewerReconciler(player)

        await reconciler.apply_initial_sync(
            {"isPlaying": True, "currentTime": 31.2, "videoUrl": "https://cdn/a.mp4"},
        )

        assert player.calls == [("seek", 31.2), ("play",)]
        assert reconciler.video_url == "https://cdn/a.mp4"

    @pytest.mark.asyncio
    async def test_pending_seek_applied_when_loaded(self) -> None:
        """播放器未就绪时只保留最近一次目标。"""
        player = FakePlayer(ready=False)
        reconciler = ViewerReconciler(player)

        await reconciler.apply_initial_sync({"isPlaying": False, "currentTime": 30.0})
        await reconciler.apply_initial_sync({"isPlaying": True, "currentTime": 31.0})
        assert player.calls == []

        player.ready = True
        await reconciler.on_loaded()
        await reconciler.on_loaded()

        assert player.calls == [("seek", 31.0), ("play",)]
        assert reconciler.pending is None

    @pytest.mark.asyncio
    async def test_autoplay_failure_is_swallowed(self) -> None:
        player = FakePlayer(current_time=0.0)
        player.fail_play = True

        await ViewerReconciler(player).apply_sync_event("play", 0.2)

        assert player.paused is True


# ── 主持人心跳 ────────────────────────────────────────────────────────

class TestHostHeartbeat:
    """测试心跳只在播放中发送。"""

    @pytest.mark.asyncio
    async def test_beat_skips_when_paused(self) -> None:
        emit = AsyncMock()
        heartbeat = HostHeartbeat(FakePlayer(paused=True), emit)

        assert await heartbeat.beat() is False
        emit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_beat_resends_play(self) -> None:
        emit = AsyncMock()
        heartbeat = HostHeartbeat(FakePlayer(current_time=42.0, paused=False), emit)

        assert await heartbeat.beat() is True
        emit.assert_awaited_once_with("sync-event", {"type": "play", "currentTime": 42.0})

    @pytest.mark.asyncio
    async def test_loop_survives_send_failure(self) -> None:
        failures = [ConnectionError("down")]

        async def flaky_emit(event: str, data: dict) -> None:
            if failures:
                raise failures.pop()

        emit = AsyncMock(side_effect=flaky_emit)
        heartbeat = HostHeartbeat(FakePlayer(paused=False), emit, interval=0.01)

        heartbeat.start()
        await asyncio.sleep(0.05)
        assert heartbeat.running
        await heartbeat.stop()

        assert not heartbeat.running
        assert emit.await_count >= 2


# ── 帧分发 ────────────────────────────────────────────────────────────

class TestSyncClient:
    """测试客户端的帧解析与回调分发。"""

    @pytest.mark.asyncio
    async def test_send_requires_connection(self) -> None:
        client = SyncClient("ws://localhost:4000/ws")

        with pytest.raises(RuntimeError):
            await client.sync("play", 1.0)

    @pytest.mark.asyncio
    async def test_join_sends_camel_case_frame(self) -> None:
        client = SyncClient("ws://localhost:4000/ws")
        client._ws = AsyncMock()

        await client.join("R1", "viewer", "Bob", video_url="https://cdn/a.mp4")

        sent = json.loads(client._ws.send.await_args.args[0])
        assert sent == {
            "event": "join",
            "data": {
                "roomId": "R1",
                "role": "viewer",
                "displayName": "Bob",
                "videoUrl": "https://cdn/a.mp4",
            },
        }

    @pytest.mark.asyncio
    async def test_viewer_frames_drive_reconciler(self) -> None:
        client = SyncClient("ws://localhost:4000/ws")
        player = FakePlayer(current_time=0.0)
        client.attach_viewer(player)

        await client.handle_frame(json.dumps(
            {"event": "join-success", "data": {"roomId": "R1", "role": "viewer", "connectionId": "v1"}},
        ))
        await client.handle_frame(json.dumps(
            {"event": "sync-event", "data": {"type": "seek", "currentTime": 12.0}},
        ))
        await client.handle_frame(json.dumps(
            {"event": "video-url-update", "data": {"videoUrl": "https://cdn/b.mp4"}},
        ))
        await client.handle_frame("not json")
        await client.handle_frame("[1, 2]")

        assert client.connection_id == "v1"
        assert player.calls == [("seek", 12.0), ("pause",)]
        assert client.reconciler.video_url == "https://cdn/b.mp4"

    @pytest.mark.asyncio
    async def test_host_answers_state_request_and_starts_heartbeat(self) -> None:
        client = SyncClient("ws://localhost:4000/ws")
        client._ws = AsyncMock()
        heartbeat = client.attach_host(FakePlayer(current_time=7.5, paused=False), interval=60)

        await client.handle_frame(json.dumps(
            {"event": "request-video-state", "data": {"viewerId": "v9"}},
        ))
        sent = json.loads(client._ws.send.await_args.args[0])
        assert sent == {
            "event": "send-video-state",
            "data": {"viewerId": "v9", "isPlaying": True, "currentTime": 7.5},
        }

        await client.handle_frame(json.dumps(
            {"event": "join-success", "data": {"roomId": "R1", "role": "host", "connectionId": "h1"}},
        ))
        assert heartbeat.running
        await client.close()
        assert not heartbeat.running

    @pytest.mark.asyncio
    async def test_sync_handlers_are_supported(self) -> None:
        client = SyncClient("ws://localhost:4000/ws")
        seen: list[dict] = []
        client.on("chat-message", seen.append)

        await client.handle_frame(json.dumps({"event": "chat-message", "data": {"message": "hi"}}))

        assert seen == [{"message": "hi"}]
