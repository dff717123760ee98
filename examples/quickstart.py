#!/usr/bin/env python3
"""
relaycache Quickstart — the cache-aside read and invalidating write in one script.

Lists products twice (miss then hit), adds a product (invalidate + broadcast),
lists again, then publishes a custom message.
Run with: python examples/quickstart.py

Requires: pip install httpx
Backend must be running: http://localhost:5000
Watch the server log for catalog.cache_miss / catalog.cache_hit entries.
"""

import time
import uuid

from _common import create_client


def timed_get(client, path):
    started = time.perf_counter()
    resp = client.get(path)
    return resp, (time.perf_counter() - started) * 1000


def main():
    run_id = uuid.uuid4().hex[:6]
    client = create_client()

    # ── Cold read, then warm read ─────────────────────────────────
    print("\n1. Listing products (first read may miss the cache)...")
    resp, ms = timed_get(client, "/products")
    assert resp.status_code == 200, f"Failed: {resp.text}"
    print(f"   {len(resp.json())} products in {ms:.1f} ms")

    resp, ms = timed_get(client, "/products")
    print(f"   {len(resp.json())} products in {ms:.1f} ms (served from cache)")

    # ── Write: insert, invalidate, broadcast ──────────────────────
    print("\n2. Adding a product...")
    resp = client.post("/product", json={
        "name": f"Laptop Pro {run_id}",
        "description": "14-inch, 32GB RAM",
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"
    product_id = resp.json()["productId"]
    print(f"   {resp.json()['message']} (id={product_id})")

    # ── Read after write sees the new product ─────────────────────
    print("\n3. Listing products again...")
    resp, ms = timed_get(client, "/products")
    names = [p["name"] for p in resp.json()]
    assert f"Laptop Pro {run_id}" in names, "new product missing after invalidation"
    print(f"   {len(names)} products in {ms:.1f} ms (cache repopulated)")

    # ── Validation ────────────────────────────────────────────────
    print("\n4. Adding a product without a name...")
    resp = client.post("/product", json={"description": "nameless"})
    print(f"   → {resp.status_code} {resp.json()['detail']}")

    # ── Custom publish ────────────────────────────────────────────
    print("\n5. Publishing to custom_channel...")
    resp = client.post("/publish", json={"channel": "custom_channel", "message": f"hello {run_id}"})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    print(f"   {resp.json()['message']}")

    print("\nDone. Connected WebSocket clients on /ws received both events.")


if __name__ == "__main__":
    main()
