"""Tests for the read-only dashboard JSON API."""

import json
import urllib.error
import urllib.request

import pytest

from infra.dashboard_api import ACTIVITY_FEED_LIMIT, DashboardServer


@pytest.fixture
def server():
    calls = {"activity_limits": []}

    def activity(limit):
        calls["activity_limits"].append(limit)
        return [{"type": "info", "message": "hello"}]

    def dashboard():
        if calls.get("fail"):
            raise RuntimeError("rpc unavailable")
        return {"stats": {"open_count": 0}}

    srv = DashboardServer(0, dashboard, activity, host="127.0.0.1")
    srv.calls = calls
    srv.start()
    yield srv
    srv.stop()


def _get(server, path, method="GET"):
    request = urllib.request.Request(f"http://127.0.0.1:{server.port}{path}", method=method)
    try:
        with urllib.request.urlopen(request, timeout=5) as response:
            return response.status, dict(response.headers), response.read()
    except urllib.error.HTTPError as e:
        return e.code, dict(e.headers), e.read()


def test_dashboard_route(server):
    status, headers, body = _get(server, "/api/dashboard")
    assert status == 200
    assert json.loads(body) == {"stats": {"open_count": 0}}
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert headers["Content-Type"] == "application/json"


def test_activity_route_uses_feed_limit(server):
    status, _, body = _get(server, "/api/activity?limit=5")
    assert status == 200
    assert json.loads(body)[0]["message"] == "hello"
    assert server.calls["activity_limits"] == [ACTIVITY_FEED_LIMIT]


def test_health(server):
    status, _, body = _get(server, "/api/health")
    assert status == 200
    assert json.loads(body)["status"] == "ok"


def test_unknown_route(server):
    status, _, body = _get(server, "/api/secrets")
    assert status == 404
    assert json.loads(body) == {"error": "Not found"}


def test_provider_error_is_500(server):
    server.calls["fail"] = True
    status, _, body = _get(server, "/api/dashboard")
    assert status == 500
    assert "rpc unavailable" in json.loads(body)["error"]


def test_cors_preflight(server):
    status, headers, _ = _get(server, "/api/dashboard", method="OPTIONS")
    assert status == 200
    assert "GET" in headers["Access-Control-Allow-Methods"]


def test_stop_is_idempotent():
    srv = DashboardServer(0, dict, lambda limit: [], host="127.0.0.1")
    assert srv.port is None
    srv.start()
    assert srv.port > 0
    srv.stop()
    srv.stop()
    assert srv.port is None
