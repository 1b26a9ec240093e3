"""Exception hierarchy for the offline cache proxy."""

from typing import Optional


class ProxyError(Exception):
    """Base class for all proxy errors."""


class NetworkError(ProxyError):
    """The network could not produce a response (offline, DNS, timeout...)."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class InstallError(ProxyError):
    """Manifest population failed; nothing was written for the new generation."""

    def __init__(self, message: str, failed_urls: Optional[list] = None) -> None:
        super().__init__(message)
        self.failed_urls = failed_urls or []


class LifecycleError(ProxyError):
    """An illegal worker state transition was requested."""


class CacheWriteError(ProxyError):
    """A response could not be stored in a cache bucket."""


class UnknownEventError(ProxyError):
    """No handler is registered for the dispatched event name."""
