# anon_tracker/routes/api.py

import logging

from flask import Blueprint, current_app, jsonify, request

from anon_tracker.services.errors import InvalidRequest, SessionNotFound
from anon_tracker.services.session_store import (
    DEFAULT_ACTIVE_WINDOW_MINUTES,
    DEFAULT_INACTIVE_DAYS,
)

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


def get_session_store():
    return current_app.extensions["session_store"]


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return data


def _number(value, name):
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRequest(f"{name} must be a number")
    try:
        return float(value) if isinstance(value, str) else value
    except ValueError:
        raise InvalidRequest(f"{name} must be a number") from None


# ===============================
# Errors
# ===============================
@api_bp.errorhandler(SessionNotFound)
def handle_session_not_found(e):
    return jsonify({"error": "Session not found", "anonymousId": e.anonymous_id}), 404


@api_bp.errorhandler(InvalidRequest)
def handle_invalid_request(e):
    return jsonify({"error": str(e)}), 400


# ===============================
# POST: Heartbeat / Session Upsert
# ===============================
@api_bp.route("/sessions/track", methods=["POST"])
def track_session():
    """
    Create the session on first contact, otherwise bump lastActive
    """
    data = _json_body()
    session_id = get_session_store().upsert(data.get("anonymousId"))
    return jsonify({"sessionId": session_id})


# ===============================
# POST: User Action
# ===============================
@api_bp.route("/sessions/actions", methods=["POST"])
def track_user_action():
    """
    Record a discrete action. The session must already exist.
    """
    data = _json_body()
    get_session_store().append_action(
        data.get("anonymousId"),
        data.get("action"),
        resource_id=data.get("resourceId"),
        metadata=data.get("metadata"),
    )
    return jsonify({"status": "OK"})


# ===============================
# GET: Active Sessions
# ===============================
@api_bp.route("/sessions/active", methods=["GET"])
def get_active_sessions():
    minutes = _number(request.args.get("minutesActive"), "minutesActive")
    if minutes is None:
        minutes = DEFAULT_ACTIVE_WINDOW_MINUTES

    sessions = get_session_store().query_active(window_minutes=minutes)
    return jsonify({"sessions": [s.to_dict() for s in sessions]})


# ===============================
# POST: Manual Cleanup
# ===============================
@api_bp.route("/sessions/cleanup", methods=["POST"])
def cleanup_old_sessions():
    """
    Remove sessions idle for longer than daysInactive (default 30)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")

    days = _number(data.get("daysInactive"), "daysInactive")
    if days is None:
        days = DEFAULT_INACTIVE_DAYS

    result = get_session_store().evict(inactive_for_days=days)
    logger.info("[Cleanup] Manual cleanup removed %d sessions", result.deleted_count)
    return jsonify(result.to_dict())
