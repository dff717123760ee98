"""CLI tests — commands talk to a mocked HTTP backend.

Learn: _client() is patched to return an httpx.AsyncClient backed by
MockTransport, so the click commands run end-to-end without a server.
"""

import json

import httpx
import pytest
from click.testing import CliRunner

from relaycache.cli import main as cli


@pytest.fixture()
def backend(monkeypatch):
    """Route CLI requests to a handler; returns the list of seen requests."""
    seen: list[httpx.Request] = []
    responses: dict[tuple[str, str], httpx.Response] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses[(request.method, request.url.path)]

    monkeypatch.setattr(
        cli,
        "_client",
        lambda: httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://test"
        ),
    )
    return seen, responses


def test_products_table(backend):
    seen, responses = backend
    responses[("GET", "/products")] = httpx.Response(
        200, json=[{"id": 1, "name": "Laptop Pro", "description": None}]
    )

    result = CliRunner().invoke(cli.main, ["products"])

    assert result.exit_code == 0, result.output
    assert "Products (1)" in result.output
    assert "Laptop Pro" in result.output


def test_products_empty(backend):
    _, responses = backend
    responses[("GET", "/products")] = httpx.Response(200, json=[])
    result = CliRunner().invoke(cli.main, ["products"])
    assert "No products found." in result.output


def test_add_sends_name_and_description(backend):
    seen, responses = backend
    responses[("POST", "/product")] = httpx.Response(
        201,
        json={"message": "Product added successfully and cache invalidated", "productId": 7},
    )

    result = CliRunner().invoke(cli.main, ["add", "Laptop Pro", "-d", "14-inch"])

    assert result.exit_code == 0, result.output
    assert "Product #7 added" in result.output
    assert json.loads(seen[0].content) == {"name": "Laptop Pro", "description": "14-inch"}


def test_add_reports_server_error(backend):
    _, responses = backend
    responses[("POST", "/product")] = httpx.Response(
        500, json={"detail": "Failed to add product to database"}
    )
    result = CliRunner().invoke(cli.main, ["add", "Laptop Pro"])
    assert result.exit_code == 1
    assert "Failed to add product to database" in result.output


def test_publish(backend):
    seen, responses = backend
    responses[("POST", "/publish")] = httpx.Response(
        200, json={"message": "Message published successfully"}
    )
    result = CliRunner().invoke(cli.main, ["publish", "alerts", "disk full"])
    assert result.exit_code == 0, result.output
    assert json.loads(seen[0].content) == {"channel": "alerts", "message": "disk full"}


def test_health(backend):
    _, responses = backend
    responses[("GET", "/health")] = httpx.Response(
        200,
        json={"status": "degraded", "store": "ok", "cache": "error: down", "bus": "ok", "sessions": 2},
    )
    result = CliRunner().invoke(cli.main, ["health"])
    assert result.exit_code == 0, result.output
    assert "degraded" in result.output
    assert "error: down" in result.output
