# anon_tracker/app.py

import logging
import os

import click
from dotenv import load_dotenv
from flask import Flask

from anon_tracker.routes.api import api_bp
from anon_tracker.services.cleanup import (
    DEFAULT_DAYS_INACTIVE,
    DEFAULT_HOUR_UTC,
    DEFAULT_MINUTE_UTC,
    CleanupScheduler,
)
from anon_tracker.services.session_store import DEFAULT_INACTIVE_DAYS, build_session_store


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def create_app(test_config=None):
    # Load environment variables from .env file
    load_dotenv()

    app = Flask(__name__)

    # ===============================
    # Config
    # ===============================
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SESSION_BACKEND"] = os.getenv("SESSION_BACKEND", "firestore")
    app.config["SESSIONS_COLLECTION"] = os.getenv("SESSIONS_COLLECTION", "sessions")
    app.config["CLEANUP_SCHEDULE_ENABLED"] = _env_flag("CLEANUP_SCHEDULE_ENABLED", True)
    app.config["CLEANUP_HOUR_UTC"] = int(os.getenv("CLEANUP_HOUR_UTC", DEFAULT_HOUR_UTC))
    app.config["CLEANUP_MINUTE_UTC"] = int(os.getenv("CLEANUP_MINUTE_UTC", DEFAULT_MINUTE_UTC))
    app.config["CLEANUP_DAYS_INACTIVE"] = float(os.getenv("CLEANUP_DAYS_INACTIVE", DEFAULT_DAYS_INACTIVE))
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # ===============================
    # Session Store
    # ===============================
    store = app.config.get("SESSION_STORE")
    if store is None:
        store = build_session_store(app.config)
    app.extensions["session_store"] = store
    app.logger.info("Session store ready (%s)", store.name)

    # ===============================
    # Register Blueprints
    # ===============================
    app.register_blueprint(api_bp, url_prefix="/api")

    # ===============================
    # Health Check
    # ===============================
    @app.route("/health")
    def health():
        return {
            "status": "RUNNING",
            "service": "Anonymous Session Tracker",
            "backend": store.name,
        }

    # ===============================
    # Manual Cleanup Command
    # ===============================
    @app.cli.command("cleanup-sessions")
    @click.option("--days-inactive", type=float, default=DEFAULT_INACTIVE_DAYS, show_default=True,
                  help="Delete sessions idle for longer than this many days.")
    def cleanup_sessions_command(days_inactive):
        """Delete idle sessions now, using the same cutoff as the daily job."""
        result = store.evict(inactive_for_days=days_inactive)
        click.echo(f"Deleted {result.deleted_count} sessions (cutoff {result.cutoff_timestamp})")

    # ===============================
    # Background Session Cleanup
    # ===============================
    scheduler = CleanupScheduler(
        store,
        days_inactive=app.config["CLEANUP_DAYS_INACTIVE"],
        hour_utc=app.config["CLEANUP_HOUR_UTC"],
        minute_utc=app.config["CLEANUP_MINUTE_UTC"],
    )
    app.extensions["cleanup_scheduler"] = scheduler
    if app.config["CLEANUP_SCHEDULE_ENABLED"]:
        scheduler.start()

    return app
