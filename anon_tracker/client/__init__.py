from anon_tracker.client.api import SessionTrackerClient
from anon_tracker.client.config import TrackerConfig
from anon_tracker.client.heartbeat import HeartbeatScheduler
from anon_tracker.client.identity import IdentityManager, get_or_create_identity
from anon_tracker.client.storage import JSONFileStorage, MemoryStorage
from anon_tracker.client.tracker import SessionTracker

__all__ = [
    "HeartbeatScheduler",
    "IdentityManager",
    "JSONFileStorage",
    "MemoryStorage",
    "SessionTracker",
    "SessionTrackerClient",
    "TrackerConfig",
    "get_or_create_identity",
]
