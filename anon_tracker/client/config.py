# anon_tracker/client/config.py

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HEARTBEAT_INTERVAL_MS = 5 * 60 * 1000
DEFAULT_STORAGE_KEY = "anonymousUserId"
DEFAULT_STORAGE_PATH = Path.home() / ".anon_tracker" / "storage.json"


@dataclass
class TrackerConfig:
    base_url: str = "http://localhost:5000"
    heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS
    storage_key: str = DEFAULT_STORAGE_KEY
    storage_path: Path = DEFAULT_STORAGE_PATH
    timeout: float = 10.0

    def __post_init__(self):
        if self.heartbeat_interval_ms <= 0:
            raise ValueError("heartbeat_interval_ms must be positive")
        if not self.storage_key:
            raise ValueError("storage_key must not be empty")
        self.storage_path = Path(self.storage_path).expanduser()

    @classmethod
    def from_env(cls, environ=None):
        """
        Build a config from ANON_TRACKER_* variables, falling back to defaults.
        """
        env = os.environ if environ is None else environ
        return cls(
            base_url=env.get("ANON_TRACKER_URL", cls.base_url),
            heartbeat_interval_ms=int(env.get("ANON_TRACKER_HEARTBEAT_MS", DEFAULT_HEARTBEAT_INTERVAL_MS)),
            storage_key=env.get("ANON_TRACKER_STORAGE_KEY", DEFAULT_STORAGE_KEY),
            storage_path=Path(env.get("ANON_TRACKER_STORAGE_PATH", str(DEFAULT_STORAGE_PATH))),
            timeout=float(env.get("ANON_TRACKER_TIMEOUT", cls.timeout)),
        )
