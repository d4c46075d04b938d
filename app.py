"""
AutoDash - TeamGantt time-tracking dashboard.

Caches a full TeamGantt project snapshot (project, tasks, groups and every
time entry) in a single JSON file and serves derived views from it:
team hours, leaderboards, overdue tasks, weekly windows and weekly pivots.
Page loads never wait on TeamGantt; only POST /api/refresh (or the optional
daily scheduled refresh) talks to the upstream API.
"""

import atexit
import json
import logging
import sys
import threading

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Blueprint, Flask, Response, current_app, jsonify, request

from aggregator import MAX_WEEK_OFFSET, DashboardModel
from config import load_settings
from errors import ConfigError, ConflictError
from fetcher import fetch_snapshot
from snapshot_cache import RefreshCoordinator, SnapshotCache
from teamgantt_client import TeamGanttClient

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

EXTENSION_KEY = "autodash"


class Dashboard:
    """Everything a request needs: upstream client, cache and refresh flag."""

    def __init__(self, settings, client=None, cache=None, coordinator=None):
        self.settings = settings
        self.client = client or TeamGanttClient(settings.api_token, settings.base_url)
        self.cache = cache or SnapshotCache(settings.cache_file)
        self.coordinator = coordinator or RefreshCoordinator()
        self._model = None
        self._model_lock = threading.Lock()

    def refresh(self) -> dict:
        """Re-fetch everything from TeamGantt and replace the cache.

        Raises ConflictError if a refresh is already running; upstream
        failures propagate and leave the previous cache untouched.
        """
        with self.coordinator.refresh_slot():
            logger.info("--- Starting data refresh ---")
            snapshot = fetch_snapshot(
                self.client,
                self.settings.project_id,
                progress=lambda msg: logger.info(f"  {msg}"),
            )
            self.cache.write(snapshot)
            self._swap_model(DashboardModel(snapshot))
            logger.info(f"--- Refresh complete: {len(snapshot['tasks'])} tasks, "
                        f"{len(snapshot['timeEntries'])} time entries ---")
            return snapshot

    def scheduled_refresh(self):
        """Scheduler entry point - never raises."""
        try:
            self.refresh()
        except ConflictError:
            logger.info("Scheduled refresh skipped - a refresh is already running")
        except Exception as e:
            logger.error(f"Scheduled refresh failed: {e}", exc_info=True)

    def _swap_model(self, model):
        with self._model_lock:
            self._model = model

    def model(self):
        """DashboardModel for the current snapshot, or None if never refreshed.

        The cache file is only read until a model exists; after that the
        in-memory model is replaced by refresh().
        """
        with self._model_lock:
            if self._model is None:
                snapshot = self.cache.read()
                if snapshot is None:
                    return None
                self._model = DashboardModel(snapshot)
            return self._model


def _dashboard() -> Dashboard:
    return current_app.extensions[EXTENSION_KEY]


def _no_cache():
    return jsonify({"error": "No cached data - POST /api/refresh to fetch from TeamGantt"}), 404


# =============================================================================
# Routes
# =============================================================================

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/config.js")
def config_js():
    """Public runtime config for the frontend (the token stays server-side)."""
    payload = json.dumps({"PROJECT_ID": _dashboard().settings.project_id})
    return Response(f"window.__CONFIG = {payload};", mimetype="application/javascript")


@dashboard_bp.route("/health")
def health():
    """Liveness plus cache/refresh state."""
    dash = _dashboard()
    snapshot = dash.cache.read()
    return jsonify({
        "status": "ok",
        "project_id": dash.settings.project_id,
        "cached": snapshot is not None,
        "fetchedAt": snapshot.get("fetchedAt") if snapshot else None,
        "refresh_in_progress": dash.coordinator.in_progress,
    })


@dashboard_bp.route("/api/data")
def api_data():
    """Return the cached snapshot. A missing cache is not an error."""
    snapshot = _dashboard().cache.read()
    if snapshot is None:
        return jsonify({"cached": False, "data": None})
    return jsonify({"cached": True, "data": snapshot})


@dashboard_bp.route("/api/refresh", methods=["POST"])
def api_refresh():
    """Re-fetch everything from TeamGantt and update the cache."""
    logger.info("Manual refresh triggered")
    try:
        data = _dashboard().refresh()
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception as e:
        logger.error(f"Refresh failed: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "data": data})


@dashboard_bp.route("/api/refresh/status")
def api_refresh_status():
    return jsonify({"inProgress": _dashboard().coordinator.in_progress})


@dashboard_bp.route("/api/summary")
def api_summary():
    """Task counts, team hours, member leaderboard and overdue spotlight."""
    try:
        model = _dashboard().model()
        if model is None:
            return _no_cache()
        return jsonify(model.summary())
    except Exception as e:
        logger.error(f"Error in api_summary: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@dashboard_bp.route("/api/tasks")
def api_tasks():
    """Classified task lists, optionally filtered by ?search= and ?team=."""
    try:
        model = _dashboard().model()
        if model is None:
            return _no_cache()
        return jsonify(model.task_lists(
            search=request.args.get("search"),
            team=request.args.get("team"),
        ))
    except Exception as e:
        logger.error(f"Error in api_tasks: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@dashboard_bp.route("/api/members")
def api_members():
    """Member directory, excluded teams included."""
    try:
        model = _dashboard().model()
        if model is None:
            return _no_cache()
        return jsonify(model.member_list())
    except Exception as e:
        logger.error(f"Error in api_members: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@dashboard_bp.route("/api/week")
def api_week():
    """Weekly window; ?offset=0 is this week, negative values go back."""
    try:
        offset = int(request.args.get("offset", 0))
    except ValueError:
        return jsonify({"error": "offset must be an integer"}), 400
    if abs(offset) > MAX_WEEK_OFFSET:
        return jsonify({"error": f"offset must be between -{MAX_WEEK_OFFSET} and {MAX_WEEK_OFFSET}"}), 400

    try:
        model = _dashboard().model()
        if model is None:
            return _no_cache()
        return jsonify(model.week_view(offset=offset))
    except Exception as e:
        logger.error(f"Error in api_week: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@dashboard_bp.route("/api/hours")
def api_hours():
    """Member, team and task hours pivoted by ISO week."""
    try:
        model = _dashboard().model()
        if model is None:
            return _no_cache()
        return jsonify(model.pivots())
    except Exception as e:
        logger.error(f"Error in api_hours: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


# ============================================================================
# Scheduler Setup - optional daily refresh
# ============================================================================

def init_scheduler(dashboard: Dashboard):
    """Start a background scheduler refreshing daily at the configured hour."""
    settings = dashboard.settings
    scheduler = BackgroundScheduler(daemon=True)
    tz = pytz.timezone(settings.timezone)
    trigger = CronTrigger(hour=settings.refresh_hour, minute=0, timezone=tz)

    scheduler.add_job(
        func=dashboard.scheduled_refresh,
        trigger=trigger,
        id="daily_snapshot_refresh",
        name=f"Refresh TeamGantt snapshot daily at {settings.refresh_hour}:00 {settings.timezone}",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started - snapshot refresh daily at {settings.refresh_hour}:00 {settings.timezone}")

    # Ensure scheduler shuts down cleanly
    atexit.register(lambda: scheduler.shutdown(wait=False))
    return scheduler


def create_app(settings=None, client=None, cache=None, coordinator=None, start_scheduler: bool = True):
    """Application factory (gunicorn: "app:create_app()").

    Raises ConfigError when credentials are missing, so the server never
    starts serving without them.
    """
    if settings is None:
        settings = load_settings()

    app = Flask(__name__)
    app.json.sort_keys = False

    dashboard = Dashboard(settings, client=client, cache=cache, coordinator=coordinator)
    app.extensions[EXTENSION_KEY] = dashboard
    app.register_blueprint(dashboard_bp)

    logger.info(f"AutoDash configured for project {settings.project_id}")
    snapshot = dashboard.cache.read()
    if snapshot:
        logger.info(f"Cache found (fetched at {snapshot.get('fetchedAt')})")
    else:
        logger.info("No cache - POST /api/refresh to fetch data")

    if start_scheduler and settings.refresh_hour is not None:
        app.extensions["autodash_scheduler"] = init_scheduler(dashboard)

    return app


if __name__ == "__main__":
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Startup aborted: {e}")
        sys.exit(1)
    app = create_app(settings)
    app.run(host="0.0.0.0", port=settings.port)
