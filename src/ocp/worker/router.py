"""Explicit dispatch table from lifecycle event names to handlers."""

from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping

from ..errors import UnknownEventError

Handler = Callable[..., Awaitable[Any]]

INSTALL = "install"
ACTIVATE = "activate"
FETCH = "fetch"
PUSH = "push"
NOTIFICATION_CLICK = "notificationclick"

EVENT_NAMES = (INSTALL, ACTIVATE, FETCH, PUSH, NOTIFICATION_CLICK)


class EventRouter:
    """
    Maps the fixed lifecycle event names to async handlers.

    Handlers are registered once at start-up; the table can be inspected
    through ``handlers`` and driven through ``dispatch`` without any real
    hosting runtime.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}

    def register(self, event: str, handler: Handler) -> None:
        if event not in EVENT_NAMES:
            raise UnknownEventError(f"Unsupported event: {event}")
        if event in self._handlers:
            raise ValueError(f"A handler for '{event}' is already registered")
        self._handlers[event] = handler

    @property
    def handlers(self) -> Mapping[str, Handler]:
        return MappingProxyType(self._handlers)

    async def dispatch(self, event: str, *args: Any) -> Any:
        try:
            handler = self._handlers[event]
        except KeyError:
            raise UnknownEventError(f"No handler registered for '{event}'") from None
        return await handler(*args)

    @classmethod
    def for_proxy(cls, proxy) -> "EventRouter":
        """Wire every handler of an ``OfflineCacheProxy``."""
        router = cls()
        router.register(INSTALL, proxy.handle_install)
        router.register(ACTIVATE, proxy.handle_activate)
        router.register(FETCH, proxy.handle_fetch)
        router.register(PUSH, proxy.handle_push)
        router.register(NOTIFICATION_CLICK, proxy.handle_notification_click)
        return router
