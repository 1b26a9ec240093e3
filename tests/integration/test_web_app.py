"""Integration tests for the FastAPI host application.

These tests spin up a TestClient (which runs the application lifespan,
i.e. install and activate) with the upstream replaced by a fake network or
by respx routes behind a real ``HttpxNetwork``.
"""

import gzip

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from ocp.core.models import ProxyResponse
from ocp.io.cache import InMemoryCacheStorage
from ocp.net.fetcher import HttpxNetwork
from ocp.web.app import create_app

from tests.helpers import MANIFEST, FakeNetwork, make_settings, url


@pytest.fixture
def upstream() -> FakeNetwork:
    net = FakeNetwork()
    for path in MANIFEST:
        net.serve(url(path), f"upstream {path}".encode(), **{"content-type": "text/plain"})
    return net


@pytest.fixture
def client(upstream):
    """Return a TestClient for an app whose install succeeded."""
    app = create_app(settings=make_settings(), network=upstream, storage=InMemoryCacheStorage())
    with TestClient(app) as test_client:
        yield test_client


def test_status_after_startup(client):
    response = client.get("/_ocp/status")
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "active"
    assert data["generation_tag"] == "v1"
    assert data["buckets"] == ["v1"]
    assert data["manifest"] == MANIFEST


def test_requests_are_forwarded_upstream(client, upstream):
    upstream.serve(url("/api/members?workspace=7"), b'{"members": []}', **{"content-type": "application/json"})
    response = client.get("/api/members", params={"workspace": "7"})
    assert response.status_code == 200
    assert response.json() == {"members": []}
    assert upstream.calls[-1].url == url("/api/members?workspace=7")


def test_upstream_errors_pass_through(client, upstream):
    upstream.serve(url("/missing"), b"nope", status=404)
    response = client.get("/missing")
    assert response.status_code == 404
    assert response.content == b"nope"


def test_offline_serves_cached_assets(client, upstream):
    upstream.offline = True
    response = client.get("/css/style.css")
    assert response.status_code == 200
    assert response.content == b"upstream /css/style.css"


def test_offline_navigation_gets_app_shell(client, upstream):
    upstream.offline = True
    response = client.get("/workspace/42", headers={"Accept": "text/html"})
    assert response.status_code == 200
    assert response.content == b"upstream /index.html"


def test_offline_miss_is_bad_gateway(client, upstream):
    upstream.offline = True
    response = client.get("/api/profile", headers={"Accept": "application/json"})
    assert response.status_code == 502


def test_push_then_click(client):
    response = client.post("/_ocp/push", content=b'{"title": "X"}')
    assert response.status_code == 200
    notification = response.json()
    assert notification["title"] == "X"
    assert notification["body"] == "New notification"
    assert notification["data"] == {"url": "/"}

    listed = client.get("/_ocp/notifications").json()
    assert [n["notification_id"] for n in listed] == [notification["notification_id"]]

    click = client.post(f"/_ocp/notifications/{notification['notification_id']}/click")
    assert click.status_code == 200
    assert click.json()["url"] == url("/")
    assert client.get("/_ocp/notifications").json() == []


def test_click_unknown_notification(client):
    assert client.post("/_ocp/notifications/nope/click").status_code == 404


def test_failed_install_starts_in_passthrough_mode():
    upstream = FakeNetwork()
    upstream.serve(url("/hello"), b"hi")
    app = create_app(settings=make_settings(), network=upstream, storage=InMemoryCacheStorage())
    with TestClient(app) as client:
        status = client.get("/_ocp/status").json()
        assert status["state"] is None
        assert status["buckets"] == []
        assert client.get("/hello").content == b"hi"
        assert client.post("/_ocp/push", content=b"{}").status_code == 503


def test_repeated_response_headers_reach_the_client(client, upstream):
    upstream.routes[url("/session")] = ProxyResponse(
        status=200,
        headers=[("content-type", "text/plain"), ("set-cookie", "a=1"), ("set-cookie", "b=2")],
        body=b"ok",
    )
    response = client.get("/session")
    assert response.headers.get_list("set-cookie") == ["a=1", "b=2"]


def test_compressed_upstream_body_is_served_decoded():
    """The browser's Accept-Encoding stays with the proxy; httpx decodes what it negotiated."""
    script = b"console.log('offline ready');"
    with respx.mock(assert_all_called=False) as upstream:
        for path in MANIFEST:
            upstream.get(url(path)).mock(return_value=httpx.Response(200, content=path.encode()))
        route = upstream.get(url("/app.js")).mock(
            return_value=httpx.Response(
                200,
                headers={"content-type": "text/javascript", "content-encoding": "gzip"},
                content=gzip.compress(script),
            )
        )
        app = create_app(settings=make_settings(), network=HttpxNetwork(), storage=InMemoryCacheStorage())
        with TestClient(app) as client:
            response = client.get("/app.js", headers={"accept-encoding": "gzip, deflate, br, sdch"})

    assert response.status_code == 200
    assert response.content == script
    assert "content-encoding" not in response.headers
    assert "sdch" not in route.calls.last.request.headers.get("accept-encoding", "")
