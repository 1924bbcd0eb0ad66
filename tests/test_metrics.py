"""Tests for Prometheus metrics middleware."""
from types import SimpleNamespace

import pytest
from starlette.requests import Request

from roomwatch.middleware.metrics import _normalize_path, _route_path, metrics
from tests.factories import user


@pytest.mark.asyncio
async def test_metrics_endpoint_returns_prometheus_format(client):
    await client.get("/health")
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "text/plain" in resp.headers["content-type"]
    body = resp.text
    assert "roomwatch_http_requests_total" in body
    assert "roomwatch_uptime_seconds" in body
    assert "roomwatch_active_requests" in body


@pytest.mark.asyncio
async def test_metrics_label_by_route_template(client, seed):
    await seed(user("u1"), user("u2"))
    await client.get("/api/users/u1")
    await client.get("/api/users/u2")
    body = (await client.get("/metrics")).text
    assert 'path="/api/users/{user_id}",status="200"} 2' in body


@pytest.mark.asyncio
async def test_metrics_tracks_status_codes(client):
    await client.get("/api/rooms/does-not-exist")
    body = (await client.get("/metrics")).text
    assert 'status="404"' in body


@pytest.mark.asyncio
async def test_metrics_duration_recorded(client):
    await client.get("/health")
    body = (await client.get("/metrics")).text
    assert 'roomwatch_http_request_duration_seconds_sum{method="GET",path="/health"}' in body
    assert 'roomwatch_http_request_duration_seconds_count{method="GET",path="/health"} 1' in body


def test_reset_clears_counters():
    metrics.record("GET", "/x", 200, 0.1)
    metrics.reset()
    assert not metrics.request_count
    assert metrics.active_requests == 0


def test_normalize_path_collapses_ids():
    assert _normalize_path("/api/rooms/12345") == "/api/rooms/:id"
    assert _normalize_path("/api/users/abc123def456abc123def456") == "/api/users/:id"
    assert _normalize_path("/api/stats") == "/api/stats"
    assert _normalize_path("/health") == "/health"


def _request(path, template=None):
    scope = {"type": "http", "method": "GET", "path": path, "query_string": b"", "headers": []}
    if template is not None:
        scope["route"] = SimpleNamespace(path_format=template)
    return Request(scope)


@pytest.mark.parametrize("path,template,expected", [
    ("/api/users/u1", "/api/users/{user_id}", "/api/users/{user_id}"),
    # Template recorded without the router's include prefix
    ("/api/users/u1", "/users/{user_id}", "/api/users/{user_id}"),
    ("/api/stats/", "/stats", "/api/stats"),
    ("/health", "/health", "/health"),
    ("/api/rooms/12345", None, "/api/rooms/:id"),
])
def test_route_label_keeps_include_prefix(path, template, expected):
    assert _route_path(_request(path, template)) == expected
