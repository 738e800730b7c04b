# anon_tracker/client/api.py

import logging

import requests

from anon_tracker.services.errors import InvalidRequest, SessionNotFound

logger = logging.getLogger(__name__)


class SessionTrackerClient:
    """
    HTTP client for the session tracker API. Pass one instance explicitly
    to whatever needs to talk to the server.
    """

    def __init__(self, base_url, session=None, timeout=10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, path):
        return f"{self.base_url}/api{path}"

    def _request(self, method, path, **kwargs):
        r = self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        if r.status_code == 400:
            raise InvalidRequest(self._error_message(r))
        r.raise_for_status()
        return r.json()

    @staticmethod
    def _error_message(r):
        try:
            return r.json().get("error") or f"HTTP {r.status_code}"
        except ValueError:
            return f"HTTP {r.status_code}"

    # ===============================
    # Operations
    # ===============================
    def track_session(self, anonymous_id):
        """Heartbeat: create or refresh the session. Returns the session reference."""
        data = self._request("POST", "/sessions/track", json={"anonymousId": anonymous_id})
        return data["sessionId"]

    def track_user_action(self, anonymous_id, action, resource_id=None, metadata=None):
        """
        Record an action. Raises SessionNotFound when the server has no
        session for `anonymous_id`; transport errors propagate unchanged.
        """
        payload = {"anonymousId": anonymous_id, "action": action}
        if resource_id is not None:
            payload["resourceId"] = resource_id
        if metadata is not None:
            payload["metadata"] = metadata

        r = self.session.request(
            "POST", self._url("/sessions/actions"), json=payload, timeout=self.timeout
        )
        if r.status_code == 404:
            raise SessionNotFound(anonymous_id)
        if r.status_code == 400:
            raise InvalidRequest(self._error_message(r))
        r.raise_for_status()

    def get_active_sessions(self, minutes_active=None):
        params = {}
        if minutes_active is not None:
            params["minutesActive"] = minutes_active
        data = self._request("GET", "/sessions/active", params=params)
        return data["sessions"]

    def cleanup_old_sessions(self, days_inactive=None):
        payload = {}
        if days_inactive is not None:
            payload["daysInactive"] = days_inactive
        return self._request("POST", "/sessions/cleanup", json=payload)

    def close(self):
        self.session.close()
