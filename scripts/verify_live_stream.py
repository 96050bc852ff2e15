#!/usr/bin/env python3
import asyncio
import logging

from queue_manager_client import LiveWatcher, QueueManagerClient

logging.basicConfig(level=logging.INFO)

API_URL = "http://localhost:8000"
EXPECTED_EVENTS = 3


async def verify_live_stream():
    client = QueueManagerClient(API_URL)
    received = []

    async def on_event(event):
        received.append(event)
        if event.event == "metrics":
            stats = event.data["global_stats"]
            print(f"   metrics: enqueued={stats['enqueued']} busy={stats['busy']} retry={stats['retry_size']}")
        else:
            print(f"   {event.event}: {event.data}")
        if len(received) >= EXPECTED_EVENTS:
            watcher.stop()

    watcher = LiveWatcher(client, on_event, reconnect_delay=1.0)

    print(f"Waiting for {EXPECTED_EVENTS} live events...")
    try:
        await asyncio.wait_for(watcher.run(), timeout=60)
    except asyncio.TimeoutError:
        print(f"FAILURE: Only {len(received)} events received in 60s")
    else:
        print("SUCCESS: Live stream delivered periodic snapshots.")
    finally:
        await client.close()


if __name__ == "__main__":
    asyncio.run(verify_live_stream())
