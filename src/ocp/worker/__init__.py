"""Offline cache proxy worker.

The worker package contains the proxy instance itself (install, activate,
fetch, push and notification-click handlers), the lifecycle state machine
that orders those phases, the event router used to dispatch them and the
runtime that decides which instance controls the open pages.

Basic Usage:
    >>> from ocp.worker import OfflineCacheProxy, ServiceWorkerRuntime
    >>>
    >>> runtime = ServiceWorkerRuntime(storage, network)
    >>> await runtime.register(runtime.create_worker(settings))
    >>> response = await runtime.fetch(ProxyRequest(url="http://localhost:8080/"))
"""

from .clients import ClientRegistry, NotificationCenter, WindowClient
from .lifecycle import Lifecycle
from .proxy import NotificationClickEvent, OfflineCacheProxy
from .router import EVENT_NAMES, EventRouter
from .runtime import ServiceWorkerRuntime

__all__ = [
    "ClientRegistry",
    "NotificationCenter",
    "WindowClient",
    "Lifecycle",
    "NotificationClickEvent",
    "OfflineCacheProxy",
    "EVENT_NAMES",
    "EventRouter",
    "ServiceWorkerRuntime",
]
