"""
videosync.client
~~~~~~~~~~~~~~~~

放映室的 Python 客户端：观众端对齐、主持人心跳与 WebSocket 客户端。
"""
from videosync.client.heartbeat import HostHeartbeat
from videosync.client.reconciler import DRIFT_TOLERANCE, Player, ViewerReconciler
from videosync.client.sync_client import SyncClient

__all__ = ["DRIFT_TOLERANCE", "HostHeartbeat", "Player", "SyncClient", "ViewerReconciler"]
