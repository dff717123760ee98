"""
Shared helpers for relaycache examples.

Checks the backend is up so each example can focus on its workflow.
"""

import sys

import httpx

BASE = "http://localhost:5000"


def check_backend() -> dict:
    """Verify the backend is reachable and print dependency status."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Backend not reachable at {BASE}")
        print("Start it with:  relaycache serve --reload")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Health check returned {resp.status_code}")
        sys.exit(1)

    health = resp.json()
    print(f"Backend health: {health['status']}")
    for key in ("store", "cache", "bus"):
        mark = "✓" if health[key] == "ok" else "✗"
        print(f"  {key:6s} {mark}")

    if health["store"] != "ok":
        print("\nERROR: Record store is not reachable. Check RELAYCACHE_DATABASE_URL.")
        sys.exit(1)
    return health


def create_client() -> httpx.Client:
    """Check backend and return an httpx Client pointed at it."""
    check_backend()
    return httpx.Client(base_url=BASE, timeout=10)
