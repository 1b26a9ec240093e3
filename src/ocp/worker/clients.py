"""Controlled pages and displayed notifications."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from urllib.parse import urljoin

from ..core.models import Notification
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class WindowClient:
    """An open page (window or tab)."""

    url: str
    client_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    controller: Optional[str] = None
    focused: bool = False
    opened_at: datetime = field(default_factory=datetime.now)


class ClientRegistry:
    """Open pages and the worker instance controlling each of them."""

    def __init__(self, origin: str = "") -> None:
        self.origin = origin
        self.clients: Dict[str, WindowClient] = {}

    def add(self, url: str, controller: Optional[str] = None) -> WindowClient:
        client = WindowClient(url=self._resolve(url), controller=controller)
        self.clients[client.client_id] = client
        return client

    def _resolve(self, url: str) -> str:
        if self.origin and url.startswith("/"):
            return urljoin(self.origin.rstrip("/") + "/", url.lstrip("/"))
        return url

    def claim(self, worker_id: str) -> int:
        """Make ``worker_id`` the controller of every open page."""
        for client in self.clients.values():
            client.controller = worker_id
        logger.info(f"Worker {worker_id} claimed {len(self.clients)} clients")
        return len(self.clients)

    def open_window(self, url: str) -> WindowClient:
        for client in self.clients.values():
            client.focused = False
        client = self.add(url)
        client.focused = True
        logger.info(f"Opened window at {client.url}")
        return client

    def close(self, client_id: str) -> bool:
        return self.clients.pop(client_id, None) is not None

    def controlled_by(self, worker_id: str) -> List[WindowClient]:
        return [c for c in self.clients.values() if c.controller == worker_id]


class NotificationCenter:
    """Notifications currently on screen."""

    def __init__(self) -> None:
        self._active: Dict[str, Notification] = {}

    async def show(self, notification: Notification) -> Notification:
        self._active[notification.notification_id] = notification
        logger.info(
            f"Showing notification: {notification.title}",
            extra={"notification_id": notification.notification_id, "url": notification.target_url},
        )
        return notification

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._active.get(notification_id)

    def close(self, notification_id: str) -> bool:
        return self._active.pop(notification_id, None) is not None

    @property
    def active(self) -> List[Notification]:
        return list(self._active.values())
