"""Core domain models for intercepted requests, stored responses and notifications."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Iterable, Mapping, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx
from pydantic import BaseModel, Field, field_validator


class WorkerState(Enum):
    """Lifecycle phases of one proxy instance."""
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    ACTIVE = "active"
    FAILED = "failed"
    REDUNDANT = "redundant"


_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """
    Canonical form of an absolute URL, used as the cache key.

    Scheme and host are lower-cased, a default port is dropped, an empty
    path becomes ``/`` and the fragment is removed.  Path and query are
    kept as given.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if parts.port is not None and parts.port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{parts.port}"
    userinfo = parts.netloc.rpartition("@")[0]
    if userinfo:
        host = f"{userinfo}@{host}"
    path = parts.path or ("/" if host else "")
    return urlunsplit((scheme, host, path, parts.query, ""))


def _header(headers: Iterable[Tuple[str, str]], name: str) -> Optional[str]:
    name = name.lower()
    for key, value in headers:
        if key.lower() == name:
            return value
    return None


class ProxyRequest(BaseModel):
    """An outbound request issued by a controlled page."""

    url: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @field_validator("method")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def for_path(cls, origin: str, path: str, **kwargs: Any) -> "ProxyRequest":
        """Build a request for a root-relative path under ``origin``."""
        return cls(url=urljoin(origin.rstrip("/") + "/", path.lstrip("/")), **kwargs)

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def cache_key(self) -> Tuple[str, str]:
        return self.method, normalize_url(self.url)

    def header(self, name: str) -> Optional[str]:
        return _header(self.headers.items(), name)

    def accepts_html(self) -> bool:
        accept = self.header("accept")
        return bool(accept) and "text/html" in accept


class ProxyResponse(BaseModel):
    """
    Full response snapshot: status, headers and body.

    Headers are kept as ordered ``(name, value)`` pairs so repeated fields
    such as ``Set-Cookie`` survive storage and replay.  A mapping is
    accepted on construction.
    """

    status: int
    headers: List[Tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""
    url: Optional[str] = None

    @field_validator("headers", mode="before")
    @classmethod
    def _header_pairs(cls, v: Any) -> Any:
        if isinstance(v, Mapping):
            return list(v.items())
        return v

    def header_values(self, name: str) -> List[str]:
        name = name.lower()
        return [value for key, value in self.headers if key.lower() == name]

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return _header(self.headers, name)

    @classmethod
    def from_httpx(cls, response: httpx.Response, url: Optional[str] = None) -> "ProxyResponse":
        return cls(
            status=response.status_code,
            headers=response.headers.multi_items(),
            body=response.content,
            url=url,
        )


class CachedEntry(BaseModel):
    """A response stored in a cache bucket."""
    bucket: str
    method: str
    url: str
    response: ProxyResponse
    stored_at: str


class NotificationPayload(BaseModel):
    """Push payload schema. Every field is optional."""
    title: Optional[str] = None
    body: Optional[str] = None
    url: Optional[str] = None

    model_config = {"extra": "ignore"}


class Notification(BaseModel):
    """A notification displayed to the user."""

    notification_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    vibrate: List[int] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)
    shown_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def target_url(self) -> str:
        return self.data.get("url") or "/"
