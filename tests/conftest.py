"""Shared fixtures: a fake TeamGantt upstream, sample snapshots, Flask client."""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

REPO_DIR = Path(__file__).resolve().parent.parent
if str(REPO_DIR) not in sys.path:
    sys.path.insert(0, str(REPO_DIR))

from config import Settings  # noqa: E402
from errors import UpstreamError  # noqa: E402

PROJECT_ID = "4242"


class FakeTeamGantt:
    """Stands in for TeamGanttClient; records every request it receives."""

    def __init__(self, project=None, items=None, times_by_date=None,
                 fail_dates=(), fail_paths=()):
        self.project = project if project is not None else {}
        self.items = items if items is not None else []
        self.times_by_date = times_by_date or {}
        self.fail_dates = set(fail_dates)
        self.fail_paths = set(fail_paths)
        self.calls = []
        self._lock = threading.Lock()

    def request(self, path, params=None):
        with self._lock:
            self.calls.append((path, dict(params or {})))
        if path in self.fail_paths:
            raise UpstreamError(f"API 500: Internal Server Error - {path}", status=500, path=path)
        if path.startswith("/projects/"):
            return self.project
        if path == "/tasks":
            return self.items
        if path == "/times":
            day = params["date"]
            if day in self.fail_dates:
                raise UpstreamError(f"API 502: Bad Gateway - {path}", status=502, path=path)
            return [dict(e) for e in self.times_by_date.get(day, [])]
        raise UpstreamError(f"API 404: Not Found - {path}", status=404, path=path)

    def paths(self, path):
        return [c for c in self.calls if c[0] == path]


def _resource(rid, name, assignment_id=None):
    return {"id": assignment_id or rid + 900, "type": "user", "type_id": rid, "name": name}


def sample_snapshot() -> dict:
    """Small project spanning three ISO weeks of January 2024."""
    jane = _resource(1, "ENG - Jane Doe - LEAD")
    sam = _resource(2, "PLAN - Sam Park - MEMBER")
    ria = _resource(3, "RESEARCH - Ria Sen - MEM")
    return {
        "project": {"id": 4242, "name": "Apollo", "start_date": "2024-01-01", "end_date": "2024-03-01"},
        "tasks": [
            {"id": 11, "type": "task", "name": "Design review", "start_date": "2024-01-01",
             "end_date": "2024-01-10", "percent_complete": 100, "parent_group_id": 50,
             "resources": [jane]},
            {"id": 12, "type": "task", "name": "Build API", "start_date": "2024-01-02",
             "end_date": "2024-01-05", "percent_complete": 40, "parent_group_id": 50,
             "resources": [sam, jane]},
            {"id": 13, "type": "milestone", "name": "Launch", "start_date": None,
             "end_date": "2024-01-20", "percent_complete": 0, "resources": []},
            {"id": 14, "type": "task", "name": "Lit survey", "start_date": "2024-01-03",
             "end_date": "2024-02-15", "percent_complete": 10, "resources": [ria]},
        ],
        "groups": [{"id": 50, "type": "group", "name": "Phase 1"}],
        "timeEntries": [
            {"id": 101, "user_id": 1, "task_id": 11, "project_id": 4242, "date": "2024-01-01", "hours": 3,
             "user": {"first_name": "OPS", "last_name": "- Somebody Else - MEM"}},
            {"id": 102, "user_id": 2, "task_id": 12, "project_id": 4242, "date": "2024-01-02", "hours": 2},
            {"id": 103, "user_id": 1, "task_id": 12, "project_id": 4242,
             "start_time": "2024-01-08T09:00:00Z", "end_time": "2024-01-08T13:30:00Z"},
            {"id": 104, "user_id": 3, "task_id": 14, "project_id": 4242, "date": "2024-01-03", "hours": 5},
            {"id": 105, "user_id": 4, "task_id": 12, "project_id": 4242, "date": "2024-01-09", "hours": 1.5,
             "user": {"first_name": "!Alex", "last_name": "- EXEC"}},
            {"id": 106, "user_id": 2, "task_id": 11, "project_id": 4242, "date": "2024-01-15", "hours": 0},
            {"id": 107, "user_id": 1, "task_id": 11, "project_id": 4242, "hours": 2},
        ],
        "fetchedAt": "2024-01-10T12:00:00+00:00",
    }


@pytest.fixture()
def snapshot():
    return sample_snapshot()


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        api_token="tg-test-token",
        project_id=PROJECT_ID,
        cache_file=str(tmp_path / "cache.json"),
    )


@pytest.fixture()
def upstream():
    """Three-day project with one duplicated entry and one foreign entry."""
    return FakeTeamGantt(
        project={"id": int(PROJECT_ID), "name": "Apollo",
                 "start_date": "2024-01-01", "end_date": "2024-01-03"},
        items=[
            {"id": 11, "type": "task", "name": "Design review", "end_date": "2024-01-10",
             "resources": [_resource(1, "ENG - Jane Doe - LEAD")]},
            {"id": 50, "type": "group", "name": "Phase 1"},
            {"id": 60, "type": "folder", "name": "Ignored"},
        ],
        times_by_date={
            "2024-01-01": [{"id": 1, "user_id": 1, "task_id": 11, "project_id": 4242, "hours": 2,
                            "date": "2024-01-01"}],
            "2024-01-02": [{"id": 1, "user_id": 1, "task_id": 11, "project_id": 4242, "hours": 2,
                            "date": "2024-01-01"},
                           {"id": 2, "user_id": 1, "task_id": 11, "project_id": 4242, "hours": 1,
                            "date": "2024-01-02"}],
        },
    )


@pytest.fixture()
def app(settings, upstream):
    from app import create_app

    return create_app(settings, client=upstream, start_scheduler=False)


@pytest.fixture()
def client(app):
    return app.test_client()
