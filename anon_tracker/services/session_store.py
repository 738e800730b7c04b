# anon_tracker/services/session_store.py

import copy
import logging
import math
import threading
from abc import ABC, abstractmethod

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from anon_tracker.services.errors import SessionNotFound
from anon_tracker.services.models import (
    Action,
    EvictionResult,
    Session,
    decode_metadata,
    encode_metadata,
    validate_action_name,
    validate_anonymous_id,
    validate_metadata,
    validate_non_negative,
    validate_optional_string,
)
from anon_tracker.utils.time import MS_PER_DAY, MS_PER_MINUTE, now_ms

logger = logging.getLogger(__name__)

DEFAULT_ACTIVE_WINDOW_MINUTES = 15
DEFAULT_INACTIVE_DAYS = 30

# Firestore caps a single transaction/batch at 500 writes.
DELETE_CHUNK_SIZE = 500

# Longest window honoured; larger ones reach back to the same far-past cutoff
# and keep it inside Firestore's int64 range.
MAX_WINDOW_MS = 2 ** 62


def _window_ms(value, unit_ms):
    span = value * unit_ms
    if not math.isfinite(span) or span > MAX_WINDOW_MS:
        return MAX_WINDOW_MS
    return int(span)


class SessionStore(ABC):
    """
    Owns the Session entity. Subclasses provide the storage-specific
    primitives; argument checking and cutoff arithmetic live here.
    """

    name = "abstract"

    # ===============================
    # Upsert
    # ===============================
    def upsert(self, anonymous_id, now=None):
        """
        Find-or-create the session for `anonymous_id` in one atomic step.
        Returns the session reference (its document id).
        """
        validate_anonymous_id(anonymous_id)
        now = now_ms() if now is None else int(now)
        return self._upsert(anonymous_id, now)

    # ===============================
    # Append Action
    # ===============================
    def append_action(self, anonymous_id, action, resource_id=None, metadata=None, now=None):
        """
        Append one action and bump lastActive.
        Raises SessionNotFound if no session exists; nothing is created.
        """
        validate_anonymous_id(anonymous_id)
        validate_action_name(action)
        validate_optional_string("resourceId", resource_id)
        metadata = validate_metadata(metadata)
        now = now_ms() if now is None else int(now)

        entry = Action(action=action, timestamp=now, resource_id=resource_id, metadata=metadata)
        self._append_action(anonymous_id, entry, now)

    # ===============================
    # Active Sessions
    # ===============================
    def query_active(self, window_minutes=DEFAULT_ACTIVE_WINDOW_MINUTES, now=None):
        """
        Sessions with lastActive >= now - window. The boundary is inclusive.
        Order is whatever the backend yields.
        """
        validate_non_negative("minutesActive", window_minutes)
        now = now_ms() if now is None else int(now)
        cutoff = now - _window_ms(window_minutes, MS_PER_MINUTE)
        return self._active_since(cutoff)

    # ===============================
    # Eviction
    # ===============================
    def evict(self, inactive_for_days=DEFAULT_INACTIVE_DAYS, now=None):
        """
        Delete every session with lastActive < now - days. The boundary is exclusive.
        """
        validate_non_negative("daysInactive", inactive_for_days)
        now = now_ms() if now is None else int(now)
        cutoff = now - _window_ms(inactive_for_days, MS_PER_DAY)

        deleted = self._delete_stale(cutoff)
        if deleted:
            logger.info("[Cleanup] Deleted %d sessions inactive since %d", deleted, cutoff)
        return EvictionResult(deleted_count=deleted, cutoff_timestamp=cutoff)

    def get(self, anonymous_id):
        """Return the Session for `anonymous_id`, or None."""
        validate_anonymous_id(anonymous_id)
        return self._get(anonymous_id)

    @abstractmethod
    def _upsert(self, anonymous_id, now): ...

    @abstractmethod
    def _append_action(self, anonymous_id, entry, now): ...

    @abstractmethod
    def _active_since(self, cutoff): ...

    @abstractmethod
    def _delete_stale(self, cutoff): ...

    @abstractmethod
    def _get(self, anonymous_id): ...


# ===============================
# In-memory backend
# ===============================
class MemorySessionStore(SessionStore):
    """
    Process-local store for tests and local development.
    A single lock serializes every read-modify-write.
    """

    name = "memory"

    def __init__(self):
        self._sessions = {}
        self._lock = threading.Lock()

    def _upsert(self, anonymous_id, now):
        with self._lock:
            session = self._sessions.get(anonymous_id)
            if session is None:
                self._sessions[anonymous_id] = Session(
                    anonymous_id=anonymous_id, created_at=now, last_active=now
                )
                logger.debug("[Session] Created %s", anonymous_id)
            else:
                session.last_active = max(session.last_active, now)
        return anonymous_id

    def _append_action(self, anonymous_id, entry, now):
        with self._lock:
            session = self._sessions.get(anonymous_id)
            if session is None:
                raise SessionNotFound(anonymous_id)
            session.actions.append(copy.deepcopy(entry))
            session.last_active = max(session.last_active, now)

    def _active_since(self, cutoff):
        with self._lock:
            return [
                copy.deepcopy(s) for s in self._sessions.values() if s.last_active >= cutoff
            ]

    def _delete_stale(self, cutoff):
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.last_active < cutoff]
            for sid in stale:
                del self._sessions[sid]
            return len(stale)

    def _get(self, anonymous_id):
        with self._lock:
            session = self._sessions.get(anonymous_id)
            return copy.deepcopy(session) if session else None

    def __len__(self):
        with self._lock:
            return len(self._sessions)


# ===============================
# Firestore backend
# ===============================
@firestore.transactional
def _upsert_in_transaction(transaction, ref, anonymous_id, now):
    snapshot = ref.get(transaction=transaction)
    if snapshot.exists:
        last_active = snapshot.get("lastActive") or 0
        transaction.update(ref, {"lastActive": max(last_active, now)})
        return False

    transaction.create(
        ref,
        {
            "anonymousId": anonymous_id,
            "createdAt": now,
            "lastActive": now,
            "actions": [],
        },
    )
    return True


@firestore.transactional
def _append_in_transaction(transaction, ref, anonymous_id, stored_action, now):
    snapshot = ref.get(transaction=transaction)
    if not snapshot.exists:
        raise SessionNotFound(anonymous_id)

    data = snapshot.to_dict()
    actions = list(data.get("actions") or [])
    actions.append(stored_action)
    transaction.update(
        ref,
        {
            "actions": actions,
            "lastActive": max(data.get("lastActive") or 0, now),
        },
    )


def _delete_still_stale(transaction, refs, cutoff):
    # Re-read inside the transaction: a heartbeat may have landed since the query.
    snapshots = list(transaction.get_all(refs))
    deleted = 0
    for snapshot in snapshots:
        if not snapshot.exists:
            continue
        if (snapshot.get("lastActive") or 0) >= cutoff:
            continue
        transaction.delete(snapshot.reference)
        deleted += 1
    return deleted


_delete_chunk_in_transaction = firestore.transactional(_delete_still_stale)


class FirestoreSessionStore(SessionStore):
    """
    Sessions stored one document per anonymous id; the document id is the
    uniqueness constraint and transactions serialize find-or-create.
    """

    name = "firestore"

    def __init__(self, client, collection="sessions"):
        self._db = client
        self._collection_name = collection

    @property
    def collection(self):
        return self._db.collection(self._collection_name)

    def _upsert(self, anonymous_id, now):
        ref = self.collection.document(anonymous_id)
        created = _upsert_in_transaction(self._db.transaction(), ref, anonymous_id, now)
        if created:
            logger.debug("[Session] Created %s", anonymous_id)
        return ref.id

    def _append_action(self, anonymous_id, entry, now):
        stored = {"action": entry.action, "timestamp": entry.timestamp}
        if entry.resource_id is not None:
            stored["resourceId"] = entry.resource_id
        if entry.metadata is not None:
            # Stored as JSON text so nested lists survive Firestore's array rules.
            stored["metadata"] = encode_metadata(entry.metadata)

        ref = self.collection.document(anonymous_id)
        _append_in_transaction(self._db.transaction(), ref, anonymous_id, stored, now)

    def _active_since(self, cutoff):
        query = self.collection.where(filter=FieldFilter("lastActive", ">=", cutoff))
        return [self._to_session(doc.to_dict()) for doc in query.stream()]

    def _delete_stale(self, cutoff):
        query = self.collection.where(filter=FieldFilter("lastActive", "<", cutoff)).select(
            ["lastActive"]
        )
        refs = [doc.reference for doc in query.stream()]

        deleted = 0
        for start in range(0, len(refs), DELETE_CHUNK_SIZE):
            chunk = refs[start:start + DELETE_CHUNK_SIZE]
            try:
                deleted += _delete_chunk_in_transaction(self._db.transaction(), chunk, cutoff)
            except (google_exceptions.GoogleAPIError, ValueError) as e:
                # ValueError: the transaction ran out of retry attempts.
                logger.error(
                    "[Cleanup] Stopped after %d deletions, chunk of %d failed: %s",
                    deleted,
                    len(chunk),
                    e,
                )
                break
        return deleted

    def _get(self, anonymous_id):
        snapshot = self.collection.document(anonymous_id).get()
        if not snapshot.exists:
            return None
        return self._to_session(snapshot.to_dict())

    @staticmethod
    def _to_session(data):
        actions = []
        for raw in data.get("actions") or []:
            raw = dict(raw)
            raw["metadata"] = decode_metadata(raw.get("metadata"))
            actions.append(raw)
        data = dict(data, actions=actions)
        return Session.from_dict(data)


# ===============================
# Factory
# ===============================
def build_session_store(config):
    """
    Pick the backend named by SESSION_BACKEND.
    """
    backend = (config.get("SESSION_BACKEND") or "firestore").lower()

    if backend == "memory":
        return MemorySessionStore()

    if backend == "firestore":
        from anon_tracker.services.firebase import init_firebase

        client = init_firebase()
        return FirestoreSessionStore(client, collection=config.get("SESSIONS_COLLECTION", "sessions"))

    raise ValueError(f"Unknown SESSION_BACKEND {backend!r}; expected 'firestore' or 'memory'")
