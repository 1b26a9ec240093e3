"""Test doubles and builders shared across the test suite."""

from typing import Dict, List, Optional, Union

from ocp.config.settings import Settings
from ocp.core.models import ProxyRequest, ProxyResponse
from ocp.errors import NetworkError
from ocp.net.fetcher import Network

ORIGIN = "http://app.test"

MANIFEST = ["/", "/index.html", "/css/style.css", "/js/app.js"]


class FakeNetwork(Network):
    """
    Network double driven by a URL -> response table.

    Unknown URLs and URLs mapped to an exception raise ``NetworkError``;
    ``offline = True`` makes every request fail.
    """

    def __init__(self, routes: Optional[Dict[str, Union[ProxyResponse, Exception]]] = None) -> None:
        self.routes: Dict[str, Union[ProxyResponse, Exception]] = dict(routes or {})
        self.offline = False
        self.calls: List[ProxyRequest] = []
        self.closed = False

    def serve(self, url: str, body: bytes = b"", status: int = 200, **headers: str) -> ProxyResponse:
        response = ProxyResponse(status=status, headers=dict(headers), body=body, url=url)
        self.routes[url] = response
        return response

    async def fetch(self, request: ProxyRequest) -> ProxyResponse:
        self.calls.append(request)
        if self.offline:
            raise NetworkError("offline", url=request.url)
        route = self.routes.get(request.url)
        if route is None:
            raise NetworkError(f"no route to {request.url}", url=request.url)
        if isinstance(route, Exception):
            raise route
        return route.model_copy(deep=True)

    async def close(self) -> None:
        self.closed = True


def url(path: str) -> str:
    return ORIGIN + path


def make_settings(**overrides) -> Settings:
    values = dict(
        generation_tag="v1",
        app_origin=ORIGIN,
        manifest=list(MANIFEST),
        precache_attempts=1,
        cache_backend="memory",
        log_format="text",
    )
    values.update(overrides)
    return Settings(**values)
