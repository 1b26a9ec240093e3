"""FastAPI application hosting the offline cache proxy.

The application lifespan plays the part of the hosting runtime: on start
it installs and activates a proxy instance for the configured generation
tag, and on shutdown it waits for background cache writes and closes the
network client and cache storage.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .. import __version__
from ..config.settings import Settings, settings as default_settings
from ..io.cache import CacheStorage, create_storage
from ..net.fetcher import HttpxNetwork, Network
from ..utils.logging import get_logger
from ..worker.runtime import ServiceWorkerRuntime
from .routes import proxy_router, router

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    network: Optional[Network] = None,
    storage: Optional[CacheStorage] = None,
) -> FastAPI:
    """Build the proxy host application.

    Parameters
    ----------
    settings: Settings
        Proxy configuration. Defaults to the environment-loaded settings.
    network: Network
        Upstream network access. Defaults to an ``HttpxNetwork``.
    storage: CacheStorage
        Cache storage. Defaults to the backend named in the settings.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = ServiceWorkerRuntime(
            storage=storage
            or create_storage(settings.cache_backend, settings.cache_dir, origin=settings.app_origin),
            network=network or HttpxNetwork(timeout=settings.request_timeout, user_agent=settings.user_agent),
        )
        app.state.runtime = runtime
        if not await runtime.register(runtime.create_worker(settings)):
            logger.warning("Starting without an active worker; requests pass straight through")
        try:
            yield
        finally:
            await runtime.close()

    app = FastAPI(
        title="Offline Cache Proxy",
        description="Network-first proxy with an offline cache fallback",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.include_router(router)
    # Must stay last: it matches every path.
    app.include_router(proxy_router)
    return app


def start_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    """Start the Uvicorn web server.

    Parameters
    ----------
    host: str
        Host to bind the server to.
    port: int
        Port to listen on. Defaults to 8000.
    reload: bool
        Whether to enable auto-reload. Useful during development.
    """
    uvicorn.run(
        "ocp.web.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


if __name__ == "__main__":
    start_server()
