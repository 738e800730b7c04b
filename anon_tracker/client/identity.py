# anon_tracker/client/identity.py

import logging
import threading
import uuid

from anon_tracker.client.config import DEFAULT_STORAGE_KEY
from anon_tracker.services.errors import StorageUnavailable

logger = logging.getLogger(__name__)


def generate_identity():
    """128-bit random identifier."""
    return str(uuid.uuid4())


class IdentityManager:
    """
    Issues and persists the anonymous id for one storage scope.
    """

    def __init__(self, storage):
        self.storage = storage
        self._lock = threading.Lock()

    def get_or_create_identity(self, storage_key=DEFAULT_STORAGE_KEY):
        """
        Return the id stored under `storage_key`, creating and persisting one
        if absent. Returns None when there is no usable storage.
        """
        if self.storage is None:
            return None

        # Read-check-write under one lock so concurrent first calls agree.
        with self._lock:
            try:
                stored = self.storage.get_item(storage_key)
                if stored:
                    return stored

                identity = generate_identity()
                self.storage.set_item(storage_key, identity)
            except StorageUnavailable as e:
                logger.warning("[Identity] Storage unavailable, continuing without id: %s", e)
                return None

        logger.debug("[Identity] Issued new anonymous id %s", identity)
        return identity


def get_or_create_identity(storage, storage_key=DEFAULT_STORAGE_KEY):
    return IdentityManager(storage).get_or_create_identity(storage_key)
