"""Unit tests for the hosting runtime: registration, skip-waiting and routing."""

import pytest

from ocp.core.models import ProxyRequest, WorkerState
from ocp.errors import LifecycleError, NetworkError
from ocp.worker.runtime import ServiceWorkerRuntime

from tests.helpers import make_settings, url


@pytest.fixture
def runtime(memory_storage, network):
    return ServiceWorkerRuntime(memory_storage, network)


class TestRegistration:
    """Tests for ServiceWorkerRuntime.register."""

    @pytest.mark.asyncio
    async def test_first_worker_takes_control(self, runtime) -> None:
        worker = runtime.create_worker(make_settings())
        assert await runtime.register(worker)
        assert runtime.controller is worker
        assert worker.state == WorkerState.ACTIVE

    @pytest.mark.asyncio
    async def test_failed_install_keeps_previous_controller(self, runtime, network) -> None:
        first = runtime.create_worker(make_settings())
        await runtime.register(first)

        network.routes.pop(url("/js/app.js"))
        second = runtime.create_worker(make_settings(generation_tag="v2"))
        assert not await runtime.register(second)
        assert runtime.controller is first
        assert second.state == WorkerState.FAILED
        assert await runtime.storage.keys() == ["v1"]

    @pytest.mark.asyncio
    async def test_skip_waiting_replaces_controller(self, runtime) -> None:
        first = runtime.create_worker(make_settings())
        await runtime.register(first)
        page = runtime.clients.add("/")
        second = runtime.create_worker(make_settings(generation_tag="v2"))
        await runtime.register(second)
        assert runtime.controller is second
        assert first.state == WorkerState.REDUNDANT
        assert page.controller == second.worker_id

    @pytest.mark.asyncio
    async def test_without_skip_waiting_new_worker_waits_for_pages(self, runtime) -> None:
        first = runtime.create_worker(make_settings())
        await runtime.register(first)
        page = runtime.clients.add("/", controller=first.worker_id)

        second = runtime.create_worker(make_settings(generation_tag="v2", skip_waiting=False))
        assert await runtime.register(second)
        assert runtime.controller is first
        assert runtime.waiting is second
        assert second.state == WorkerState.INSTALLED

        assert not await runtime.update()
        runtime.close_client(page.client_id)
        assert await runtime.update()
        assert runtime.controller is second
        assert runtime.waiting is None
        assert await runtime.storage.keys() == ["v2"]

    @pytest.mark.asyncio
    async def test_newer_waiting_worker_supersedes_older_one(self, runtime) -> None:
        first = runtime.create_worker(make_settings())
        await runtime.register(first)
        runtime.clients.add("/", controller=first.worker_id)
        second = runtime.create_worker(make_settings(generation_tag="v2", skip_waiting=False))
        third = runtime.create_worker(make_settings(generation_tag="v3", skip_waiting=False))
        await runtime.register(second)
        await runtime.register(third)
        assert runtime.waiting is third
        assert second.state == WorkerState.REDUNDANT


class TestRouting:
    """Tests for event routing through the runtime."""

    @pytest.mark.asyncio
    async def test_fetch_without_controller_goes_to_network(self, runtime, network) -> None:
        resp = await runtime.fetch(ProxyRequest(url=url("/css/style.css")))
        assert resp.status == 200
        assert await runtime.storage.keys() == []

    @pytest.mark.asyncio
    async def test_fetch_routes_to_controller(self, runtime, network) -> None:
        await runtime.register(runtime.create_worker(make_settings()))
        network.offline = True
        resp = await runtime.fetch(ProxyRequest(url=url("/"), headers={"Accept": "text/html"}))
        assert resp.body == b"content of /"

    @pytest.mark.asyncio
    async def test_fetch_without_controller_propagates_failure(self, runtime, network) -> None:
        network.offline = True
        with pytest.raises(NetworkError):
            await runtime.fetch(ProxyRequest(url=url("/")))

    @pytest.mark.asyncio
    async def test_push_requires_controller(self, runtime) -> None:
        with pytest.raises(LifecycleError):
            await runtime.push(b"{}")

    @pytest.mark.asyncio
    async def test_push_and_click(self, runtime) -> None:
        await runtime.register(runtime.create_worker(make_settings()))
        notification = await runtime.push(b'{"title": "New member", "url": "/members"}')
        client = await runtime.notification_click(notification.notification_id)
        assert client.url == url("/members")
        assert runtime.notifications.active == []

    @pytest.mark.asyncio
    async def test_click_on_unknown_notification(self, runtime) -> None:
        await runtime.register(runtime.create_worker(make_settings()))
        assert await runtime.notification_click("missing") is None

    @pytest.mark.asyncio
    async def test_close_drains_and_releases_resources(self, runtime, network) -> None:
        await runtime.register(runtime.create_worker(make_settings()))
        network.serve(url("/api/x"), b"x")
        await runtime.fetch(ProxyRequest(url=url("/api/x")))
        await runtime.close()
        assert runtime.background.pending == 0
        assert network.closed
