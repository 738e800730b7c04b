# anon_tracker/client/tracker.py

import logging

from anon_tracker.client.api import SessionTrackerClient
from anon_tracker.client.config import TrackerConfig
from anon_tracker.client.heartbeat import HeartbeatScheduler
from anon_tracker.client.identity import IdentityManager
from anon_tracker.client.storage import JSONFileStorage

logger = logging.getLogger(__name__)


class SessionTracker:
    """
    Ties identity, heartbeat and API client to one owner's lifetime.

        with SessionTracker(client, config) as tracker:
            tracker.track_action("button_click", metadata={"buttonId": "submit"})

    The heartbeat is stopped on every exit path of the with-block.
    """

    def __init__(self, client, config=None, storage=None, scheduler=None):
        self.client = client
        self.config = config or TrackerConfig()
        if storage is None:
            storage = JSONFileStorage(self.config.storage_path)
        self.identity = IdentityManager(storage)
        self.scheduler = scheduler or HeartbeatScheduler()
        self.anonymous_id = None

    @classmethod
    def from_config(cls, config):
        client = SessionTrackerClient(config.base_url, timeout=config.timeout)
        return cls(client, config)

    def start(self):
        """
        Resolve the anonymous id and begin heartbeats. Returns the id,
        or None when no storage is available (nothing is tracked then).
        """
        self.anonymous_id = self.identity.get_or_create_identity(self.config.storage_key)
        if self.anonymous_id is None:
            logger.info("[Session] No anonymous id available; tracking disabled")
            return None

        self.scheduler.start(
            self.anonymous_id,
            self.config.heartbeat_interval_ms,
            self.client.track_session,
        )
        return self.anonymous_id

    def stop(self):
        self.scheduler.stop()

    def track_action(self, action, resource_id=None, metadata=None):
        """
        Record an action for this client. Failures propagate to the caller.
        """
        if self.anonymous_id is None:
            raise RuntimeError("SessionTracker has no anonymous id; call start() first")
        self.client.track_user_action(
            self.anonymous_id, action, resource_id=resource_id, metadata=metadata
        )

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
