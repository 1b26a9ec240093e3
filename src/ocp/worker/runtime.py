"""Hosting runtime: drives proxy instances through their lifecycle and routes events."""

from typing import Dict, Optional

from ..config.settings import Settings
from ..core.models import Notification, ProxyRequest, ProxyResponse, WorkerState
from ..errors import InstallError, LifecycleError
from ..io.cache import CacheStorage
from ..net.fetcher import Network
from ..utils.logging import get_logger
from ..utils.tasks import DetachedTasks
from .clients import ClientRegistry, NotificationCenter, WindowClient
from .proxy import NotificationClickEvent, OfflineCacheProxy, PushData
from .router import ACTIVATE, FETCH, INSTALL, NOTIFICATION_CLICK, PUSH, EventRouter

logger = get_logger(__name__)


class ServiceWorkerRuntime:
    """
    Owns the shared resources and decides which proxy instance is in control.

    Install always completes before activate; a failed install leaves the
    previous controller serving. With ``skip_waiting`` a freshly installed
    instance is activated at once, otherwise it waits until no open page is
    controlled by the old instance.
    """

    def __init__(
        self,
        storage: CacheStorage,
        network: Network,
        clients: Optional[ClientRegistry] = None,
        notifications: Optional[NotificationCenter] = None,
    ) -> None:
        self.storage = storage
        self.network = network
        self.clients = clients or ClientRegistry()
        self.notifications = notifications or NotificationCenter()
        self.background = DetachedTasks()
        self.controller: Optional[OfflineCacheProxy] = None
        self.waiting: Optional[OfflineCacheProxy] = None
        self._routers: Dict[str, EventRouter] = {}

    def create_worker(self, settings: Settings) -> OfflineCacheProxy:
        if not self.clients.origin:
            self.clients.origin = settings.app_origin
        return OfflineCacheProxy(
            settings=settings,
            storage=self.storage,
            network=self.network,
            clients=self.clients,
            notifications=self.notifications,
            background=self.background,
        )

    def router_for(self, proxy: OfflineCacheProxy) -> EventRouter:
        if proxy.worker_id not in self._routers:
            self._routers[proxy.worker_id] = EventRouter.for_proxy(proxy)
        return self._routers[proxy.worker_id]

    async def register(self, proxy: OfflineCacheProxy) -> bool:
        """
        Install ``proxy`` and activate it when allowed.

        Returns:
            False if install failed and the previous controller was kept
        """
        router = self.router_for(proxy)
        try:
            await router.dispatch(INSTALL)
        except InstallError as e:
            logger.error(
                f"Discarding worker {proxy.worker_id}: {e}",
                extra={"kept_controller": self.controller.worker_id if self.controller else None},
            )
            self._routers.pop(proxy.worker_id, None)
            return False

        if self.waiting is not None:
            self.waiting.lifecycle.transition(WorkerState.REDUNDANT)
            self._routers.pop(self.waiting.worker_id, None)
        self.waiting = proxy

        if proxy.settings.skip_waiting or self.controller is None:
            await self._activate_waiting()
        else:
            logger.info(f"Worker {proxy.worker_id} installed and waiting")
            await self.update()
        return True

    async def update(self) -> bool:
        """Activate the waiting worker once the old one controls no pages."""
        if self.waiting is None:
            return False
        if self.controller is not None and self.clients.controlled_by(self.controller.worker_id):
            return False
        await self._activate_waiting()
        return True

    async def _activate_waiting(self) -> None:
        proxy, self.waiting = self.waiting, None
        previous = self.controller
        await self.router_for(proxy).dispatch(ACTIVATE)
        self.controller = proxy
        if previous is not None:
            previous.lifecycle.transition(WorkerState.REDUNDANT)
            self._routers.pop(previous.worker_id, None)

    def close_client(self, client_id: str) -> bool:
        return self.clients.close(client_id)

    def _active_router(self) -> EventRouter:
        if self.controller is None:
            raise LifecycleError("No active worker")
        return self.router_for(self.controller)

    async def fetch(self, request: ProxyRequest) -> ProxyResponse:
        if self.controller is None:
            return await self.network.fetch(request)
        return await self._active_router().dispatch(FETCH, request)

    async def push(self, data: PushData = None) -> Notification:
        return await self._active_router().dispatch(PUSH, data)

    async def notification_click(self, notification_id: str) -> Optional[WindowClient]:
        notification = self.notifications.get(notification_id)
        if notification is None:
            return None
        return await self._active_router().dispatch(
            NOTIFICATION_CLICK, NotificationClickEvent(notification=notification)
        )

    async def close(self) -> None:
        await self.background.drain()
        await self.network.close()
        await self.storage.close()
