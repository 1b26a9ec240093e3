"""Offline cache proxy: install, activate, fetch, push and notification-click handlers."""

import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..config.settings import Settings
from ..core.models import (
    Notification,
    NotificationPayload,
    ProxyRequest,
    ProxyResponse,
    WorkerState,
)
from ..errors import InstallError, NetworkError
from ..io.cache import CacheStorage
from ..net.fetcher import Network, precache_fetch
from ..utils.logging import get_logger
from ..utils.tasks import DetachedTasks
from .clients import ClientRegistry, NotificationCenter, WindowClient
from .lifecycle import Lifecycle

logger = get_logger(__name__)

PushData = Union[bytes, str, Dict[str, Any], None]


@dataclass
class NotificationClickEvent:
    """A click on a displayed notification."""
    notification: Notification
    action: str = ""


class OfflineCacheProxy:
    """
    One worker instance bound to one generation tag.

    The instance owns no global state: the cache storage, the network, the
    open pages and the notification surface are all injected so that a test
    can drive every handler with in-memory fakes.

    Attributes:
        worker_id: Identifier used when claiming pages
        settings: Generation tag, manifest, excluded origins and defaults
        storage: Cache storage holding every generation's bucket
        network: Where live requests go
        clients: Open pages
        notifications: Displayed notifications
        background: Detached cache-refresh writes
        lifecycle: Current phase of this instance
    """

    def __init__(
        self,
        settings: Settings,
        storage: CacheStorage,
        network: Network,
        clients: Optional[ClientRegistry] = None,
        notifications: Optional[NotificationCenter] = None,
        background: Optional[DetachedTasks] = None,
        worker_id: Optional[str] = None,
    ) -> None:
        self.worker_id = worker_id or f"{settings.generation_tag}#{uuid.uuid4().hex[:8]}"
        self.settings = settings
        self.storage = storage
        self.network = network
        self.clients = clients or ClientRegistry(settings.app_origin)
        self.notifications = notifications or NotificationCenter()
        self.background = background or DetachedTasks()
        self.lifecycle = Lifecycle(self.worker_id)

    @property
    def cache_name(self) -> str:
        return self.settings.generation_tag

    @property
    def state(self) -> WorkerState:
        return self.lifecycle.state

    def _manifest_requests(self) -> List[ProxyRequest]:
        return [ProxyRequest.for_path(self.settings.app_origin, path) for path in self.settings.manifest]

    def _root_document_url(self) -> str:
        return ProxyRequest.for_path(self.settings.app_origin, self.settings.root_document).url

    # ------------------------------------------------------------------
    # install / activate
    # ------------------------------------------------------------------

    async def handle_install(self) -> List[str]:
        """
        Pre-populate the bucket for the current generation tag.

        Every manifest resource is fetched before anything is written, then
        all of them are stored in a single transaction.  If one resource
        cannot be fetched the bucket is left untouched.

        Returns:
            The cached URLs, in manifest order

        Raises:
            InstallError: if any manifest resource could not be fetched
        """
        self.lifecycle.require(WorkerState.INSTALLING)
        requests = self._manifest_requests()
        logger.info(
            f"Installing {self.cache_name}: caching {len(requests)} resources",
            extra={"worker_id": self.worker_id, "bucket": self.cache_name},
        )
        results = await asyncio.gather(
            *(precache_fetch(self.network, r, self.settings.precache_attempts) for r in requests),
            return_exceptions=True,
        )
        for res in results:
            if isinstance(res, BaseException) and not isinstance(res, Exception):
                raise res
        failed = [req.url for req, res in zip(requests, results) if isinstance(res, Exception)]
        if failed:
            logger.error(
                f"Install of {self.cache_name} failed: {len(failed)} resource(s) unavailable",
                extra={"worker_id": self.worker_id, "failed_urls": failed},
            )
            self.lifecycle.transition(WorkerState.FAILED)
            raise InstallError(f"Could not cache {', '.join(failed)}", failed_urls=failed)

        existed = await self.storage.has(self.cache_name)
        try:
            bucket = await self.storage.open(self.cache_name)
            await bucket.put_all(zip(requests, results))
        except Exception as e:
            logger.error(f"Install of {self.cache_name} failed while storing: {e}", exc_info=True)
            if not existed:
                await self.storage.delete(self.cache_name)
            self.lifecycle.transition(WorkerState.FAILED)
            raise InstallError(f"Could not store manifest in {self.cache_name}: {e}") from e

        self.lifecycle.transition(WorkerState.INSTALLED)
        logger.info(f"Cached {len(requests)} resources in {self.cache_name}")
        return [r.url for r in requests]

    async def _delete_bucket(self, name: str) -> bool:
        logger.info(f"Deleting stale cache {name}", extra={"bucket": name})
        return await self.storage.delete(name)

    async def handle_activate(self) -> List[str]:
        """
        Drop every bucket from other generations and take over open pages.

        Deletions run concurrently and independently; all of them settle
        before pages are claimed.

        Returns:
            Names of the buckets that were deleted
        """
        self.lifecycle.transition(WorkerState.ACTIVATING)
        stale = [name for name in await self.storage.keys() if name != self.cache_name]
        results = await asyncio.gather(*(self._delete_bucket(n) for n in stale), return_exceptions=True)
        deleted: List[str] = []
        for name, result in zip(stale, results):
            if isinstance(result, Exception):
                logger.warning(f"Could not delete stale cache {name}: {result}", extra={"bucket": name})
            elif isinstance(result, BaseException):
                raise result
            else:
                deleted.append(name)
        self.clients.claim(self.worker_id)
        self.lifecycle.transition(WorkerState.ACTIVATED)
        self.lifecycle.transition(WorkerState.ACTIVE)
        return deleted

    # ------------------------------------------------------------------
    # fetch
    # ------------------------------------------------------------------

    def is_excluded(self, request: ProxyRequest) -> bool:
        origin = request.origin
        return any(fragment in origin for fragment in self.settings.excluded_origins)

    async def _store(self, request: ProxyRequest, response: ProxyResponse) -> None:
        # A replaced worker's bucket is gone; writing would recreate it.
        if self.lifecycle.state == WorkerState.REDUNDANT:
            logger.debug(f"Skipping cache write for {request.url}: {self.worker_id} is redundant")
            return
        bucket = await self.storage.open(self.cache_name)
        await bucket.put(request, response)

    async def handle_fetch(self, request: ProxyRequest) -> ProxyResponse:
        """
        Network-first with cache fallback and opportunistic cache refresh.

        Raises:
            NetworkError: when the network failed and no cached response
                (nor the application shell, for HTML requests) was found
        """
        if self.is_excluded(request):
            return await self.network.fetch(request)

        try:
            response = await self.network.fetch(request)
        except NetworkError as error:
            return await self._fallback(request, error)

        if response.status == 200:
            self.background.spawn(
                self._store(request, response.model_copy(deep=True)),
                name=f"cache-put {request.method} {request.url}",
            )
        return response

    async def _fallback(self, request: ProxyRequest, error: NetworkError) -> ProxyResponse:
        cached = await self.storage.match(request)
        if cached is not None:
            logger.info(f"Network failed, serving {request.url} from cache")
            return cached
        if request.accepts_html():
            shell = await self.storage.match(self._root_document_url())
            if shell is not None:
                logger.info(f"Network failed, serving application shell for {request.url}")
                return shell
        logger.warning(f"Network failed and no cached copy of {request.url}")
        raise error

    # ------------------------------------------------------------------
    # push / notificationclick
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_payload(data: PushData) -> NotificationPayload:
        if data is None or data == b"" or data == "":
            return NotificationPayload()
        try:
            if isinstance(data, (bytes, str)):
                data = json.loads(data)
            if not isinstance(data, dict):
                raise ValueError(f"payload must be a JSON object, got {type(data).__name__}")
            return NotificationPayload.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring malformed push payload: {e}")
            return NotificationPayload()

    async def handle_push(self, data: PushData = None) -> Notification:
        """Display a notification built from the push payload."""
        payload = self._parse_payload(data)
        notification = Notification(
            title=payload.title or self.settings.notification_title,
            body=payload.body or self.settings.notification_body,
            icon=self.settings.notification_icon,
            badge=self.settings.notification_badge,
            vibrate=list(self.settings.notification_vibrate),
            data={"url": payload.url or self.settings.root_path},
        )
        return await self.notifications.show(notification)

    async def handle_notification_click(self, event: NotificationClickEvent) -> WindowClient:
        """Dismiss the notification and open its target URL."""
        self.notifications.close(event.notification.notification_id)
        return self.clients.open_window(event.notification.target_url)
