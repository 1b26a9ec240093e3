"""Versioned cache buckets holding full response snapshots.

A ``CacheStorage`` owns any number of named buckets (one per generation
tag).  Entries are keyed by request identity (method + absolute URL) and
hold the status, headers and body of a response.  Concurrent writes to the
same key simply overwrite each other.
"""

import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlsplit

from ..core.models import CachedEntry, ProxyRequest, ProxyResponse, normalize_url
from ..errors import CacheWriteError
from ..utils.logging import get_logger

logger = get_logger(__name__)

RequestLike = Union[ProxyRequest, str]


def _key(request: RequestLike, origin: Optional[str] = None) -> Tuple[str, str]:
    """
    Resolve ``request`` to its ``(method, url)`` identity.

    A bare string is a GET.  A root-relative string is resolved against
    ``origin``.

    Raises:
        ValueError: for a relative string when no origin is known
    """
    if isinstance(request, ProxyRequest):
        return request.cache_key
    if urlsplit(request).scheme:
        return "GET", normalize_url(request)
    if origin is None:
        raise ValueError(f"Cannot resolve relative URL {request!r} without an origin")
    return ProxyRequest.for_path(origin, request).cache_key


def _check_storable(key: Tuple[str, str]) -> None:
    method, url = key
    if method != "GET":
        raise CacheWriteError(f"Only GET requests can be cached, got {method} {url}")


class CacheBucket(ABC):
    """
    A single named bucket inside a ``CacheStorage``.

    Requests may be given as ``ProxyRequest`` objects, absolute URLs or
    paths relative to the storage origin.
    """

    def __init__(self, name: str, origin: Optional[str] = None) -> None:
        self.name = name
        self.origin = origin

    def _key(self, request: RequestLike) -> Tuple[str, str]:
        return _key(request, self.origin)

    @abstractmethod
    async def put(self, request: RequestLike, response: ProxyResponse) -> None:
        """Store ``response`` under the identity of ``request``."""
        raise NotImplementedError

    @abstractmethod
    async def put_all(self, pairs: Iterable[Tuple[RequestLike, ProxyResponse]]) -> None:
        """Store every pair in one transaction, or nothing at all."""
        raise NotImplementedError

    @abstractmethod
    async def match(self, request: RequestLike) -> Optional[ProxyResponse]:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, request: RequestLike) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def keys(self) -> List[Tuple[str, str]]:
        """Return ``(method, url)`` pairs in insertion order."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name}>"


class CacheStorage(ABC):
    """
    Abstract collection of cache buckets.

    ``origin`` is the application origin that root-relative lookups such as
    ``match("/index.html")`` resolve against.
    """

    def __init__(self, origin: Optional[str] = None) -> None:
        self.origin = origin.rstrip("/") if origin else None

    @abstractmethod
    async def open(self, name: str) -> CacheBucket:
        """Return the bucket called ``name``, creating it if absent."""
        raise NotImplementedError

    @abstractmethod
    async def has(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def keys(self) -> List[str]:
        """Return bucket names in creation order."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete a bucket and all of its entries. Returns False if absent."""
        raise NotImplementedError

    async def match(self, request: RequestLike, bucket: Optional[str] = None) -> Optional[ProxyResponse]:
        """Look ``request`` up in one bucket, or in every bucket in creation order."""
        names = [bucket] if bucket is not None else await self.keys()
        for name in names:
            if not await self.has(name):
                continue
            response = await (await self.open(name)).match(request)
            if response is not None:
                return response
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# ---------------------------------------------------------------------------
# In-memory storage
# ---------------------------------------------------------------------------


class InMemoryCacheBucket(CacheBucket):
    def __init__(self, name: str, origin: Optional[str] = None) -> None:
        super().__init__(name, origin)
        self.entries: Dict[Tuple[str, str], CachedEntry] = {}

    def _entry(self, key: Tuple[str, str], response: ProxyResponse) -> CachedEntry:
        method, url = key
        return CachedEntry(
            bucket=self.name,
            method=method,
            url=url,
            response=response.model_copy(deep=True),
            stored_at=datetime.utcnow().isoformat(),
        )

    async def put(self, request: RequestLike, response: ProxyResponse) -> None:
        key = self._key(request)
        _check_storable(key)
        self.entries[key] = self._entry(key, response)

    async def put_all(self, pairs: Iterable[Tuple[RequestLike, ProxyResponse]]) -> None:
        staged: Dict[Tuple[str, str], CachedEntry] = {}
        for request, response in pairs:
            key = self._key(request)
            _check_storable(key)
            staged[key] = self._entry(key, response)
        self.entries.update(staged)

    async def match(self, request: RequestLike) -> Optional[ProxyResponse]:
        entry = self.entries.get(self._key(request))
        return entry.response.model_copy(deep=True) if entry else None

    async def delete(self, request: RequestLike) -> bool:
        return self.entries.pop(self._key(request), None) is not None

    async def keys(self) -> List[Tuple[str, str]]:
        return list(self.entries)


class InMemoryCacheStorage(CacheStorage):
    """Dictionary-backed storage for tests and ephemeral runs."""

    def __init__(self, origin: Optional[str] = None) -> None:
        super().__init__(origin)
        self.buckets: Dict[str, InMemoryCacheBucket] = {}

    async def open(self, name: str) -> CacheBucket:
        if name not in self.buckets:
            logger.debug("Creating cache bucket", extra={"bucket": name})
            self.buckets[name] = InMemoryCacheBucket(name, self.origin)
        return self.buckets[name]

    async def has(self, name: str) -> bool:
        return name in self.buckets

    async def keys(self) -> List[str]:
        return list(self.buckets)

    async def delete(self, name: str) -> bool:
        return self.buckets.pop(name, None) is not None


# ---------------------------------------------------------------------------
# SQLite storage
# ---------------------------------------------------------------------------


class SQLiteCacheBucket(CacheBucket):
    def __init__(self, name: str, storage: "SQLiteCacheStorage") -> None:
        super().__init__(name, storage.origin)
        self.storage = storage

    @property
    def conn(self) -> sqlite3.Connection:
        return self.storage.conn

    def _row(self, key: Tuple[str, str], response: ProxyResponse) -> tuple:
        method, url = key
        return (
            self.name,
            method,
            url,
            response.status,
            json.dumps(response.headers),
            response.body,
            response.url,
            datetime.utcnow().isoformat(),
        )

    _INSERT = """INSERT OR REPLACE INTO cache_entries
        (bucket, method, url, status, headers, body, response_url, stored_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)"""

    async def put(self, request: RequestLike, response: ProxyResponse) -> None:
        key = self._key(request)
        _check_storable(key)
        async with self.storage.lock:
            try:
                self.conn.execute(self._INSERT, self._row(key, response))
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CacheWriteError(f"Failed to store {request}: {e}") from e

    async def put_all(self, pairs: Iterable[Tuple[RequestLike, ProxyResponse]]) -> None:
        rows = []
        for request, response in pairs:
            key = self._key(request)
            _check_storable(key)
            rows.append(self._row(key, response))
        async with self.storage.lock:
            try:
                with self.conn:
                    self.conn.executemany(self._INSERT, rows)
            except sqlite3.Error as e:
                raise CacheWriteError(f"Failed to populate bucket {self.name}: {e}") from e

    async def match(self, request: RequestLike) -> Optional[ProxyResponse]:
        method, url = self._key(request)
        cur = self.conn.execute(
            """SELECT status, headers, body, response_url FROM cache_entries
               WHERE bucket = ? AND method = ? AND url = ?""",
            (self.name, method, url),
        )
        row = cur.fetchone()
        if not row:
            return None
        return ProxyResponse(status=row[0], headers=json.loads(row[1]), body=bytes(row[2]), url=row[3])

    async def delete(self, request: RequestLike) -> bool:
        method, url = self._key(request)
        async with self.storage.lock:
            cur = self.conn.execute(
                "DELETE FROM cache_entries WHERE bucket = ? AND method = ? AND url = ?",
                (self.name, method, url),
            )
            self.conn.commit()
        return cur.rowcount > 0

    async def keys(self) -> List[Tuple[str, str]]:
        cur = self.conn.execute(
            "SELECT method, url FROM cache_entries WHERE bucket = ? ORDER BY rowid", (self.name,)
        )
        return [(row[0], row[1]) for row in cur]


class SQLiteCacheStorage(CacheStorage):
    """
    SQLite-backed bucket storage that survives restarts.

    Bucket creation is explicit (``open``) so an empty bucket still exists,
    mirroring the browser cache storage semantics.
    """

    def __init__(
        self, cache_dir: Path, filename: str = "offline_cache.db", origin: Optional[str] = None
    ) -> None:
        super().__init__(origin)
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / filename
        self.conn = sqlite3.connect(
            str(self.db_path), isolation_level="DEFERRED", check_same_thread=False
        )
        # Performance options
        self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.execute("PRAGMA synchronous = NORMAL")
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.lock = asyncio.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS cache_buckets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS cache_entries (
                bucket TEXT NOT NULL,
                method TEXT NOT NULL,
                url TEXT NOT NULL,
                status INTEGER NOT NULL,
                headers TEXT NOT NULL,
                body BLOB NOT NULL,
                response_url TEXT,
                stored_at TEXT NOT NULL,
                PRIMARY KEY (bucket, method, url),
                FOREIGN KEY (bucket) REFERENCES cache_buckets(name) ON DELETE CASCADE
            );
            """
        )
        self.conn.commit()

    async def open(self, name: str) -> CacheBucket:
        async with self.lock:
            cur = self.conn.execute(
                "INSERT OR IGNORE INTO cache_buckets (name, created_at) VALUES (?, ?)",
                (name, datetime.utcnow().isoformat()),
            )
            self.conn.commit()
        if cur.rowcount:
            logger.debug("Creating cache bucket", extra={"bucket": name})
        return SQLiteCacheBucket(name, self)

    async def has(self, name: str) -> bool:
        cur = self.conn.execute("SELECT 1 FROM cache_buckets WHERE name = ?", (name,))
        return cur.fetchone() is not None

    async def keys(self) -> List[str]:
        cur = self.conn.execute("SELECT name FROM cache_buckets ORDER BY id")
        return [row[0] for row in cur]

    async def delete(self, name: str) -> bool:
        async with self.lock:
            with self.conn:
                self.conn.execute("DELETE FROM cache_entries WHERE bucket = ?", (name,))
                cur = self.conn.execute("DELETE FROM cache_buckets WHERE name = ?", (name,))
        return cur.rowcount > 0

    async def close(self) -> None:
        self.conn.close()


def create_storage(
    backend: str, cache_dir: Optional[Path] = None, origin: Optional[str] = None
) -> CacheStorage:
    """Build the storage selected by ``settings.cache_backend``."""
    if backend == "memory":
        return InMemoryCacheStorage(origin=origin)
    if backend == "sqlite":
        return SQLiteCacheStorage(cache_dir or Path(".cache"), origin=origin)
    raise ValueError(f"Unknown cache backend: {backend}")
