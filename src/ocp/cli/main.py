"""CLI application using Typer for the offline cache proxy."""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..config.settings import settings
from ..errors import InstallError
from ..io.cache import InMemoryCacheStorage, create_storage
from ..net.fetcher import HttpxNetwork, OfflineNetwork
from ..worker.proxy import OfflineCacheProxy
from ..worker.clients import NotificationCenter

app = typer.Typer(
    name="ocp",
    help="Offline Cache Proxy - network-first request interception with an offline cache",
    add_completion=False,
)

console = Console()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Hostname to bind the proxy to."),
    port: int = typer.Option(8000, "--port", help="Port for the proxy."),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Enable auto-reload (development only)."),
) -> None:
    """Start the proxy in front of the configured application origin."""
    from ..web.app import start_server

    console.print(f"[bold blue]Starting proxy[/bold blue] at http://{host}:{port} -> {settings.app_origin}")
    console.print(f"Generation: [cyan]{settings.generation_tag}[/cyan]")
    start_server(host=host, port=port, reload=reload)


@app.command()
def install(
    origin: Optional[str] = typer.Option(None, "--origin", help="Application origin (default: OCP_APP_ORIGIN)"),
    tag: Optional[str] = typer.Option(None, "--tag", help="Generation tag (default: OCP_GENERATION_TAG)"),
) -> None:
    """Install the manifest into a fresh bucket and drop stale generations."""
    overrides = {}
    if origin:
        overrides["app_origin"] = origin.rstrip("/")
    if tag:
        overrides["generation_tag"] = tag
    config = settings.model_copy(update=overrides)
    console.print(f"[bold blue]Installing[/bold blue] {config.generation_tag} from {config.app_origin}")
    try:
        cached, deleted = asyncio.run(_run_install(config))
    except InstallError as e:
        console.print(f"[red]Install failed: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Cached resources ({config.generation_tag})")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("URL", style="white")
    for i, url in enumerate(cached, 1):
        table.add_row(str(i), url)
    console.print(table)
    for name in deleted:
        console.print(f"[yellow]Deleted stale cache {name}[/yellow]")
    console.print("[bold green]✓ Installed and activated[/bold green]")


async def _run_install(config):
    storage = create_storage(config.cache_backend, config.cache_dir, origin=config.app_origin)
    network = HttpxNetwork(timeout=config.request_timeout, user_agent=config.user_agent)
    proxy = OfflineCacheProxy(config, storage, network)
    try:
        cached = await proxy.handle_install()
        deleted = await proxy.handle_activate()
        return cached, deleted
    finally:
        await network.close()
        await storage.close()


@app.command()
def buckets() -> None:
    """List cache buckets and how many entries each holds."""
    rows = asyncio.run(_list_buckets())
    if not rows:
        console.print("[yellow]No cache buckets[/yellow]")
        return
    table = Table(title="Cache Buckets")
    table.add_column("Bucket", style="cyan")
    table.add_column("Entries", style="green", justify="right")
    table.add_column("Current", justify="center")
    for name, count in rows:
        current = "[bold green]✓[/bold green]" if name == settings.generation_tag else ""
        table.add_row(name, str(count), current)
    console.print(table)


async def _list_buckets():
    rows = []
    storage = create_storage(settings.cache_backend, settings.cache_dir, origin=settings.app_origin)
    async with storage:
        for name in await storage.keys():
            bucket = await storage.open(name)
            rows.append((name, len(await bucket.keys())))
    return rows


@app.command()
def push(
    payload: Optional[str] = typer.Argument(None, help='JSON payload, e.g. \'{"title": "Hi"}\''),
) -> None:
    """Show the notification a push payload would produce."""
    notification = asyncio.run(_build_notification(payload))
    console.print(f"[bold]{notification.title}[/bold]")
    console.print(notification.body)
    console.print(json.dumps(notification.model_dump(mode="json"), indent=2))


async def _build_notification(payload: Optional[str]):
    proxy = OfflineCacheProxy(settings, InMemoryCacheStorage(), OfflineNetwork(), notifications=NotificationCenter())
    return await proxy.handle_push(payload)


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__
    console.print(f"Offline Cache Proxy v{__version__}")


if __name__ == "__main__":
    app()
