"""relaycache CLI — run the server and drive the catalog from a terminal.

Usage:
    relaycache serve                                  # Run the API + WebSocket server
    relaycache health                                 # Store / cache / bus status
    relaycache products                               # List products (cache-aside read)
    relaycache add "Laptop Pro" -d "14-inch, 32GB"    # Add a product (invalidates + broadcasts)
    relaycache publish alerts "disk almost full"      # Publish on a custom topic
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from relaycache import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:5000"


def _api_url() -> str:
    return os.environ.get("RELAYCACHE_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the relaycache server."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _fail(resp: httpx.Response) -> None:
    """Print the server's error detail and exit non-zero."""
    try:
        detail = resp.json().get("detail", resp.text)
    except ValueError:
        detail = resp.text
    click.secho(f"Error ({resp.status_code}): {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k) or "—")[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="relaycache")
def main():
    """relaycache — cached product catalog with real-time change fan-out."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: RELAYCACHE_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: RELAYCACHE_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP + WebSocket server with uvicorn."""
    import uvicorn

    from relaycache.config import settings

    uvicorn.run(
        "relaycache.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@main.command()
def health():
    """Show record store, cache and bus connectivity."""
    _run(_health_impl())


async def _health_impl():
    async with _client() as c:
        try:
            r = await c.get("/health")
        except httpx.ConnectError:
            click.secho(f"Server not reachable at {_api_url()}", fg="red", err=True)
            sys.exit(1)
        data = r.json()

    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"Status: {data.get('status')}", fg=color, bold=True)
    for key in ("store", "cache", "bus"):
        value = data.get(key, "—")
        click.echo(f"  {key:8s} " + click.style(str(value), fg="green" if value == "ok" else "red"))
    click.echo(f"  sessions {data.get('sessions', 0)}")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def products(as_json: bool):
    """List all products."""
    _run(_products_impl(as_json))


async def _products_impl(as_json: bool):
    async with _client() as c:
        r = await c.get("/products")
    if r.status_code != 200:
        _fail(r)

    rows = r.json()
    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        click.echo("No products found.")
        return

    click.secho(f"Products ({len(rows)}):", bold=True)
    _print_table(rows, [("ID", "id", 6), ("NAME", "name", 30), ("DESCRIPTION", "description", 50)])


@main.command()
@click.argument("name")
@click.option("--description", "-d", default=None, help="Optional product description")
def add(name: str, description: Optional[str]):
    """Add a product named NAME."""
    _run(_add_impl(name, description))


async def _add_impl(name: str, description: Optional[str]):
    body: dict = {"name": name}
    if description is not None:
        body["description"] = description

    async with _client() as c:
        r = await c.post("/product", json=body)
    if r.status_code != 201:
        _fail(r)

    data = r.json()
    click.secho(f"Product #{data['productId']} added", fg="green")
    click.echo(data["message"])


@main.command()
@click.argument("channel")
@click.argument("message")
def publish(channel: str, message: str):
    """Publish MESSAGE on custom topic CHANNEL."""
    _run(_publish_impl(channel, message))


async def _publish_impl(channel: str, message: str):
    async with _client() as c:
        r = await c.post("/publish", json={"channel": channel, "message": message})
    if r.status_code != 200:
        _fail(r)
    click.secho(f"Published to '{channel}'", fg="green")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
