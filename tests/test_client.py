from __future__ import annotations

import json
import threading
import time
import uuid
from pathlib import Path

import pytest
import requests

from anon_tracker.client import (
    HeartbeatScheduler,
    IdentityManager,
    JSONFileStorage,
    MemoryStorage,
    SessionTracker,
    SessionTrackerClient,
    TrackerConfig,
    get_or_create_identity,
)
from anon_tracker.services.errors import InvalidRequest, SessionNotFound, StorageUnavailable
from anon_tracker.services.session_store import MemorySessionStore


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class BrokenStorage:
    def get_item(self, key):
        raise StorageUnavailable("no storage in this context")

    def set_item(self, key, value):
        raise StorageUnavailable("no storage in this context")


class SlowStorage(MemoryStorage):
    """Widens the read-check-write window so racing callers would collide."""

    def get_item(self, key):
        value = super().get_item(key)
        time.sleep(0.01)
        return value


def test_identity_is_created_once_and_reused() -> None:
    storage = MemoryStorage()
    manager = IdentityManager(storage)

    first = manager.get_or_create_identity()
    second = manager.get_or_create_identity()

    assert first == second
    assert uuid.UUID(first).version == 4
    assert storage.get_item("anonymousUserId") == first


def test_existing_identity_is_returned_unchanged() -> None:
    storage = MemoryStorage({"myAppUserId": "legacy-id"})

    assert get_or_create_identity(storage, "myAppUserId") == "legacy-id"
    assert get_or_create_identity(storage, "anonymousUserId") != "legacy-id"


def test_identity_without_storage_is_none() -> None:
    assert IdentityManager(None).get_or_create_identity() is None
    assert IdentityManager(BrokenStorage()).get_or_create_identity() is None


def test_identity_persists_across_file_storage_instances(tmp_path: Path) -> None:
    path = tmp_path / "state" / "storage.json"

    first = get_or_create_identity(JSONFileStorage(path))
    second = get_or_create_identity(JSONFileStorage(path))

    assert first == second
    assert json.loads(path.read_text()) == {"anonymousUserId": first}


def test_file_storage_keeps_other_keys(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    path.write_text(json.dumps({"theme": "dark"}))

    identity = get_or_create_identity(JSONFileStorage(path))

    assert json.loads(path.read_text()) == {"theme": "dark", "anonymousUserId": identity}


def test_corrupt_file_storage_degrades_to_no_identity(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    path.write_text("{not json")

    assert get_or_create_identity(JSONFileStorage(path)) is None
    assert path.read_text() == "{not json"


def test_concurrent_first_calls_agree_on_one_identity() -> None:
    manager = IdentityManager(SlowStorage())
    barrier = threading.Barrier(8)
    seen: list[str] = []

    def _resolve() -> None:
        barrier.wait()
        seen.append(manager.get_or_create_identity())

    threads = [threading.Thread(target=_resolve) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(set(seen)) == 1


# ---------------------------------------------------------------------------
# Heartbeat scheduler
# ---------------------------------------------------------------------------


def test_heartbeat_ticks_immediately_then_on_interval() -> None:
    ticks: list[str] = []
    enough = threading.Event()

    def _tick(identifier: str) -> None:
        ticks.append(identifier)
        if len(ticks) >= 3:
            enough.set()

    with HeartbeatScheduler() as scheduler:
        scheduler.start("abc", interval_ms=10, on_tick=_tick)
        assert ticks[:1] == ["abc"]
        assert enough.wait(2.0)

    assert set(ticks) == {"abc"}


def test_heartbeat_stop_prevents_further_ticks() -> None:
    ticks: list[str] = []
    scheduler = HeartbeatScheduler()
    scheduler.start("abc", interval_ms=5, on_tick=ticks.append)
    time.sleep(0.05)

    scheduler.stop()
    count = len(ticks)
    time.sleep(0.05)

    assert scheduler.running is False
    assert len(ticks) == count
    scheduler.stop()  # second stop is a no-op


def test_heartbeat_swallows_transport_errors_and_keeps_ticking() -> None:
    calls: list[str] = []
    retried = threading.Event()

    def _tick(identifier: str) -> None:
        calls.append(identifier)
        if len(calls) >= 2:
            retried.set()
        raise requests.ConnectionError("server unreachable")

    scheduler = HeartbeatScheduler()
    try:
        scheduler.start("abc", interval_ms=10, on_tick=_tick)
        assert retried.wait(2.0)
    finally:
        scheduler.stop()


def test_heartbeat_restart_replaces_previous_schedule() -> None:
    ticks: list[str] = []
    scheduler = HeartbeatScheduler()
    try:
        scheduler.start("first", interval_ms=60_000, on_tick=ticks.append)
        scheduler.start("second", interval_ms=60_000, on_tick=ticks.append)

        assert ticks == ["first", "second"]
        assert scheduler.identifier == "second"
        names = {t.name for t in threading.enumerate()}
        assert "heartbeat-first" not in names
        assert "heartbeat-second" in names
    finally:
        scheduler.stop()


def test_heartbeat_stops_when_owner_raises() -> None:
    scheduler = HeartbeatScheduler()
    with pytest.raises(RuntimeError):
        with scheduler:
            scheduler.start("abc", interval_ms=60_000, on_tick=lambda _id: None)
            raise RuntimeError("component torn down")

    assert scheduler.running is False


def test_heartbeat_rejects_bad_arguments() -> None:
    scheduler = HeartbeatScheduler()
    with pytest.raises(ValueError):
        scheduler.start("abc", interval_ms=0, on_tick=lambda _id: None)
    with pytest.raises(ValueError):
        scheduler.start("abc", interval_ms=1000)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def test_client_round_trip(api_client: SessionTrackerClient, store: MemorySessionStore) -> None:
    assert api_client.track_session("abc") == "abc"
    api_client.track_user_action("abc", "page_view", resource_id="/home", metadata={"ref": "mail"})

    sessions = api_client.get_active_sessions(minutes_active=60)
    assert [s["anonymousId"] for s in sessions] == ["abc"]
    assert sessions[0]["actions"][0]["resourceId"] == "/home"
    assert sessions[0]["actions"][0]["metadata"] == {"ref": "mail"}

    result = api_client.cleanup_old_sessions(days_inactive=30)
    assert result["deletedCount"] == 0
    assert store.get("abc") is not None


def test_client_raises_not_found_for_unknown_session(api_client: SessionTrackerClient) -> None:
    with pytest.raises(SessionNotFound):
        api_client.track_user_action("nobody", "click")


def test_client_raises_invalid_request(api_client: SessionTrackerClient) -> None:
    api_client.track_session("abc")
    with pytest.raises(InvalidRequest, match="action"):
        api_client.track_user_action("abc", "")


def test_client_builds_urls_from_base(bridge) -> None:
    client = SessionTrackerClient("http://tracker.test/", session=bridge)
    client.track_session("abc")
    client.close()

    assert bridge.calls == [("POST", "/api/sessions/track")]
    assert bridge.closed is True


# ---------------------------------------------------------------------------
# SessionTracker
# ---------------------------------------------------------------------------


def test_tracker_establishes_session_before_actions(
    api_client: SessionTrackerClient, store: MemorySessionStore, tmp_path: Path
) -> None:
    config = TrackerConfig(storage_path=tmp_path / "storage.json", heartbeat_interval_ms=60_000)

    with SessionTracker(api_client, config) as tracker:
        anonymous_id = tracker.anonymous_id
        assert anonymous_id is not None
        tracker.track_action("button_click", metadata={"buttonId": "submit"})

    assert tracker.scheduler.running is False
    session = store.get(anonymous_id)
    assert [a.action for a in session.actions] == ["button_click"]

    # same storage scope on the next run, same identity
    with SessionTracker(api_client, config) as again:
        assert again.anonymous_id == anonymous_id


def test_tracker_without_storage_tracks_nothing(api_client: SessionTrackerClient, store) -> None:
    tracker = SessionTracker(api_client, TrackerConfig(), storage=BrokenStorage())

    assert tracker.start() is None
    assert tracker.scheduler.running is False
    assert len(store) == 0
    with pytest.raises(RuntimeError):
        tracker.track_action("click")
    tracker.stop()


def test_tracker_config_from_env(tmp_path: Path) -> None:
    config = TrackerConfig.from_env(
        {
            "ANON_TRACKER_URL": "https://analytics.example",
            "ANON_TRACKER_HEARTBEAT_MS": "60000",
            "ANON_TRACKER_STORAGE_KEY": "myAppUserId",
            "ANON_TRACKER_STORAGE_PATH": str(tmp_path / "s.json"),
        }
    )

    assert config.base_url == "https://analytics.example"
    assert config.heartbeat_interval_ms == 60_000
    assert config.storage_key == "myAppUserId"
    assert config.storage_path == tmp_path / "s.json"
    assert config.timeout == 10.0


def test_tracker_config_defaults_and_validation() -> None:
    config = TrackerConfig()
    assert config.heartbeat_interval_ms == 300_000
    assert config.storage_key == "anonymousUserId"

    with pytest.raises(ValueError):
        TrackerConfig(heartbeat_interval_ms=0)
