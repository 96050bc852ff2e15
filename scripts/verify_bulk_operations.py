#!/usr/bin/env python3
import asyncio
import sys

from queue_manager_client import QueueManagerClient

API_URL = "http://localhost:8000"


async def verify_bulk_operations():
    client = QueueManagerClient(API_URL)

    print("1. Reading current metrics...")
    metrics = await client.metrics()
    if not metrics or not metrics.get("success"):
        print(f"   FAILURE: Could not read metrics: {metrics}")
        await client.close()
        sys.exit(1)
    queues = metrics["data"]["queues"]
    critical = [name for name, q in queues.items() if q["critical"]]
    print(f"   Queues: {sorted(queues)} (critical: {critical})")

    print("2. Pausing all queues...")
    paused = await client.pause_all()
    print(f"   {paused['message']}")
    if paused["data"]["skipped"] != len(critical):
        print("   FAILURE: Critical queues should be skipped")

    metrics = await client.metrics()
    still_active = [
        name for name, q in metrics["data"]["queues"].items()
        if not q["critical"] and not q["paused"]
    ]
    if still_active:
        print(f"   FAILURE: Queues still active after pause_all: {still_active}")
    else:
        print("   All non-critical queues paused.")

    print("3. Resuming all queues...")
    resumed = await client.resume_all()
    print(f"   {resumed['message']}")

    metrics = await client.metrics()
    still_paused = [name for name, q in metrics["data"]["queues"].items() if q["paused"]]
    if still_paused:
        print(f"   FAILURE: Queues still paused after resume_all: {still_paused}")
    else:
        print("SUCCESS: Bulk pause/resume round trip restored every queue.")

    await client.close()


if __name__ == "__main__":
    asyncio.run(verify_bulk_operations())
