"""Shared fixtures: settings, a scriptable fake network and cache storages."""

import pytest

from ocp.config.settings import Settings
from ocp.io.cache import InMemoryCacheStorage, SQLiteCacheStorage

from tests.helpers import MANIFEST, ORIGIN, FakeNetwork, make_settings, url


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def network() -> FakeNetwork:
    """Fake network serving every default manifest entry."""
    net = FakeNetwork()
    for path in MANIFEST:
        content_type = "text/html" if path in ("/", "/index.html") else "text/plain"
        net.serve(url(path), body=f"content of {path}".encode(), **{"content-type": content_type})
    return net


@pytest.fixture
def memory_storage() -> InMemoryCacheStorage:
    return InMemoryCacheStorage(origin=ORIGIN)


@pytest.fixture
def sqlite_storage(tmp_path):
    storage = SQLiteCacheStorage(tmp_path, origin=ORIGIN)
    yield storage
    storage.conn.close()


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Run a test against both storage backends."""
    if request.param == "memory":
        yield InMemoryCacheStorage(origin=ORIGIN)
    else:
        store = SQLiteCacheStorage(tmp_path, origin=ORIGIN)
        yield store
        store.conn.close()
