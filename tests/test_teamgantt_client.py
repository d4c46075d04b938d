"""Upstream REST client error mapping."""

import io
import json
import urllib.error

import pytest

import teamgantt_client
from errors import UpstreamError
from teamgantt_client import TeamGanttClient


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def test_build_url_skips_empty_params():
    client = TeamGanttClient("tok", base_url="https://example.test/v1/")
    assert client.build_url("/times", {"date": "2024-01-01", "user_ids": ""}) == \
        "https://example.test/v1/times?date=2024-01-01"
    assert client.build_url("/projects/1") == "https://example.test/v1/projects/1"


def test_request_sends_bearer_token(monkeypatch):
    seen = {}

    def fake_urlopen(req, timeout):
        seen["url"] = req.full_url
        seen["auth"] = req.get_header("Authorization")
        return _Response(json.dumps([{"id": 1}]).encode())

    monkeypatch.setattr(teamgantt_client.urllib.request, "urlopen", fake_urlopen)
    result = TeamGanttClient("tok").request("/tasks", {"project_ids": "4242"})

    assert result == [{"id": 1}]
    assert seen["auth"] == "Bearer tok"
    assert seen["url"] == "https://api.teamgantt.com/v1/tasks?project_ids=4242"


def test_non_2xx_raises_upstream_error(monkeypatch):
    def fake_urlopen(req, timeout):
        raise urllib.error.HTTPError(req.full_url, 404, "Not Found", {}, io.BytesIO(b"missing"))

    monkeypatch.setattr(teamgantt_client.urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(UpstreamError) as exc:
        TeamGanttClient("tok").request("/projects/1")
    assert exc.value.status == 404
    assert exc.value.path == "/projects/1"


@pytest.mark.parametrize("error", [urllib.error.URLError("connection refused"), TimeoutError("timed out")])
def test_transport_failure_raises_upstream_error(monkeypatch, error):
    def fake_urlopen(req, timeout):
        raise error

    monkeypatch.setattr(teamgantt_client.urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(UpstreamError):
        TeamGanttClient("tok").request("/tasks")


def test_bad_json_raises_upstream_error(monkeypatch):
    monkeypatch.setattr(teamgantt_client.urllib.request, "urlopen",
                        lambda req, timeout: _Response(b"<html>"))
    with pytest.raises(UpstreamError):
        TeamGanttClient("tok").request("/tasks")
