"""API routes for the proxy host.

The ``/_ocp`` endpoints expose the worker state and let operators deliver
push payloads and notification clicks.  Everything else falls through to
``proxy_router`` which forwards the request to the upstream origin via the
active worker.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel

from ..core.models import Notification, ProxyRequest, ProxyResponse
from ..errors import LifecycleError, NetworkError
from ..worker.runtime import ServiceWorkerRuntime

router = APIRouter(prefix="/_ocp")
proxy_router = APIRouter()

# Not replayed to the client: the body has already been decoded and re-framed.
STRIPPED_RESPONSE_HEADERS = {"content-encoding", "content-length", "transfer-encoding", "connection"}


class StatusResponse(BaseModel):
    """Worker and cache status."""

    state: Optional[str]
    worker_id: Optional[str]
    generation_tag: Optional[str]
    manifest: List[str]
    buckets: List[str]
    waiting: Optional[str]
    pending_background_tasks: int
    clients: int


class ClickResponse(BaseModel):
    client_id: str
    url: str


def get_runtime(request: Request) -> ServiceWorkerRuntime:
    return request.app.state.runtime


def to_http_response(response: ProxyResponse) -> Response:
    http_response = Response(content=response.body, status_code=response.status)
    for name, value in response.headers:
        if name.lower() not in STRIPPED_RESPONSE_HEADERS:
            http_response.headers.append(name, value)
    return http_response


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    """Return the controller's lifecycle state and the bucket tags on disk."""
    runtime = get_runtime(request)
    controller = runtime.controller
    settings = request.app.state.settings
    return StatusResponse(
        state=controller.state.value if controller else None,
        worker_id=controller.worker_id if controller else None,
        generation_tag=controller.cache_name if controller else None,
        manifest=list(settings.manifest),
        buckets=await runtime.storage.keys(),
        waiting=runtime.waiting.worker_id if runtime.waiting else None,
        pending_background_tasks=runtime.background.pending,
        clients=len(runtime.clients.clients),
    )


@router.post("/push", response_model=Notification)
async def push(request: Request) -> Notification:
    """Deliver the raw request body as a push payload."""
    runtime = get_runtime(request)
    body = await request.body()
    try:
        return await runtime.push(body or None)
    except LifecycleError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/notifications", response_model=List[Notification])
async def list_notifications(request: Request) -> List[Notification]:
    return get_runtime(request).notifications.active


@router.post("/notifications/{notification_id}/click", response_model=ClickResponse)
async def click_notification(request: Request, notification_id: str) -> ClickResponse:
    """Simulate a click on a displayed notification."""
    runtime = get_runtime(request)
    try:
        client = await runtime.notification_click(notification_id)
    except LifecycleError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if client is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return ClickResponse(client_id=client.client_id, url=client.url)


@proxy_router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def forward(request: Request, path: str) -> Response:
    """Forward a request to the upstream origin through the active worker."""
    runtime = get_runtime(request)
    settings = request.app.state.settings
    url = f"{settings.app_origin}/{path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    proxy_request = ProxyRequest(
        url=url,
        method=request.method,
        headers=dict(request.headers),
        body=await request.body(),
    )
    try:
        response = await runtime.fetch(proxy_request)
    except NetworkError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return to_http_response(response)
