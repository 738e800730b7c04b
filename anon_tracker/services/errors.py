# anon_tracker/services/errors.py


class SessionTrackerError(Exception):
    """Base class for every failure raised by the session tracker."""


class SessionNotFound(SessionTrackerError):
    """
    Raised when an action is tracked for an anonymous id that has no session.
    Callers must establish the session with trackSession first.
    """

    def __init__(self, anonymous_id):
        super().__init__(f"Session not found: {anonymous_id}")
        self.anonymous_id = anonymous_id


class InvalidRequest(SessionTrackerError, ValueError):
    """Malformed input: missing ids, bad numbers, or metadata that is not plain JSON."""


class StorageUnavailable(SessionTrackerError):
    """The client-side key-value storage could not be read or written."""
