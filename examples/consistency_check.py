#!/usr/bin/env python3
"""
Read-after-write consistency check against a running backend.

Fires concurrent readers while adding products and verifies that, after
each write returns, at most one further read can be stale before the
new product shows up (a racing reader may repopulate the cache with a
scan taken just before the insert became visible).
Run with: python examples/consistency_check.py [--writes 20] [--readers 8]

Requires: pip install httpx
Backend must be running: http://localhost:5000
"""

import argparse
import asyncio
import uuid

import httpx

from _common import BASE, check_backend


async def reader(client: httpx.AsyncClient, stop: asyncio.Event) -> int:
    reads = 0
    while not stop.is_set():
        resp = await client.get("/products")
        resp.raise_for_status()
        reads += 1
    return reads


async def run(writes: int, readers: int) -> None:
    run_id = uuid.uuid4().hex[:6]
    stale_reads = 0

    async with httpx.AsyncClient(base_url=BASE, timeout=10) as client:
        stop = asyncio.Event()
        tasks = [asyncio.create_task(reader(client, stop)) for _ in range(readers)]

        for i in range(writes):
            name = f"consistency-{run_id}-{i}"
            resp = await client.post("/product", json={"name": name})
            resp.raise_for_status()

            # First read after the write may be stale; the second must not be
            for _ in range(2):
                names = {p["name"] for p in (await client.get("/products")).json()}
                if name in names:
                    break
                stale_reads += 1
            else:
                raise SystemExit(f"FAIL: {name} still missing after two reads")

        stop.set()
        total_reads = sum(await asyncio.gather(*tasks))

    print(f"{writes} writes, {total_reads} background reads, {stale_reads} transitional stale reads")
    print("OK")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--writes", type=int, default=20)
    parser.add_argument("--readers", type=int, default=8)
    args = parser.parse_args()

    check_backend()
    asyncio.run(run(args.writes, args.readers))


if __name__ == "__main__":
    main()
