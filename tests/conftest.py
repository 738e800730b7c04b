from __future__ import annotations

from urllib.parse import urlsplit

import pytest
import requests

from anon_tracker.app import create_app
from anon_tracker.client.api import SessionTrackerClient
from anon_tracker.services.session_store import MemorySessionStore

T0 = 1_700_000_000_000
MINUTE = 60 * 1000
DAY = 24 * 60 * MINUTE


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def app(store):
    app = create_app(
        {
            "TESTING": True,
            "SESSION_BACKEND": "memory",
            "SESSION_STORE": store,
            "CLEANUP_SCHEDULE_ENABLED": False,
        }
    )
    yield app
    app.extensions["cleanup_scheduler"].stop()


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch):
    """Pin the server clock used by request handlers; set clock.now to move it."""

    class _Clock:
        now = T0

    c = _Clock()
    monkeypatch.setattr("anon_tracker.services.session_store.now_ms", lambda: c.now)
    return c


# ---------------------------------------------------------------------------
# requests.Session stand-in that routes calls into the Flask test client
# ---------------------------------------------------------------------------


class BridgeResponse:
    def __init__(self, response):
        self.status_code = response.status_code
        self._response = response

    def json(self):
        data = self._response.get_json(silent=True)
        if data is None:
            raise ValueError("response is not JSON")
        return data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FlaskBridgeSession:
    def __init__(self, test_client):
        self.test_client = test_client
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def request(self, method, url, json=None, params=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path))
        response = self.test_client.open(path, method=method, json=json, query_string=params)
        return BridgeResponse(response)

    def close(self):
        self.closed = True


@pytest.fixture
def bridge(http) -> FlaskBridgeSession:
    return FlaskBridgeSession(http)


@pytest.fixture
def api_client(bridge) -> SessionTrackerClient:
    return SessionTrackerClient("http://tracker.test", session=bridge, timeout=1.0)
