# anon_tracker/services/models.py

import json
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from anon_tracker.services.errors import InvalidRequest

# Opaque, caller-defined action payload. Only its shape is checked.
Metadata = Union[None, bool, int, float, str, List["Metadata"], Dict[str, "Metadata"]]

MAX_METADATA_DEPTH = 32
MAX_ANONYMOUS_ID_LENGTH = 512


# ===============================
# Identifiers
# ===============================
def validate_anonymous_id(value):
    """
    Anonymous ids are opaque, but they double as Firestore document ids,
    so a few shapes are refused.
    """
    if not isinstance(value, str) or not value:
        raise InvalidRequest("anonymousId must be a non-empty string")
    if len(value) > MAX_ANONYMOUS_ID_LENGTH:
        raise InvalidRequest("anonymousId is too long")
    if "/" in value or value in (".", "..") or (value.startswith("__") and value.endswith("__")):
        raise InvalidRequest(f"anonymousId {value!r} is not a valid identifier")
    return value


def validate_action_name(value):
    if not isinstance(value, str) or not value:
        raise InvalidRequest("action must be a non-empty string")
    return value


def validate_optional_string(name, value):
    if value is not None and not isinstance(value, str):
        raise InvalidRequest(f"{name} must be a string")
    return value


def validate_non_negative(name, value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequest(f"{name} must be a number")
    if not math.isfinite(value) or value < 0:
        raise InvalidRequest(f"{name} must be a non-negative number")
    return value


# ===============================
# Metadata
# ===============================
def validate_metadata(value, _depth=0):
    """
    Ensure `value` is a plain JSON value (null, bool, number, string,
    list or string-keyed object). The contents are never interpreted.
    """
    if _depth > MAX_METADATA_DEPTH:
        raise InvalidRequest("metadata is nested too deeply")

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidRequest("metadata numbers must be finite")
        return value
    if isinstance(value, (list, tuple)):
        return [validate_metadata(item, _depth + 1) for item in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidRequest("metadata object keys must be strings")
            out[key] = validate_metadata(item, _depth + 1)
        return out

    raise InvalidRequest(f"metadata of type {type(value).__name__} is not JSON-serializable")


def encode_metadata(value):
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def decode_metadata(raw):
    if raw is None:
        return None
    return json.loads(raw)


# ===============================
# Entities
# ===============================
@dataclass
class Action:
    action: str
    timestamp: int
    resource_id: Optional[str] = None
    metadata: Metadata = None

    def to_dict(self):
        data = {"action": self.action, "timestamp": self.timestamp}
        if self.resource_id is not None:
            data["resourceId"] = self.resource_id
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            action=data["action"],
            timestamp=int(data["timestamp"]),
            resource_id=data.get("resourceId"),
            metadata=data.get("metadata"),
        )


@dataclass
class Session:
    anonymous_id: str
    created_at: int
    last_active: int
    actions: List[Action] = field(default_factory=list)

    def to_dict(self):
        return {
            "anonymousId": self.anonymous_id,
            "createdAt": self.created_at,
            "lastActive": self.last_active,
            "actions": [a.to_dict() for a in self.actions],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            anonymous_id=data["anonymousId"],
            created_at=int(data["createdAt"]),
            last_active=int(data["lastActive"]),
            actions=[Action.from_dict(a) for a in data.get("actions") or []],
        )


@dataclass(frozen=True)
class EvictionResult:
    deleted_count: int
    cutoff_timestamp: int

    def to_dict(self):
        return {
            "deletedCount": self.deleted_count,
            "cutoffTimestamp": self.cutoff_timestamp,
        }
