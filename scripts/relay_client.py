#!/usr/bin/env python3
"""Minimal client for poking a running relay.

Lists the channels, subscribes to one and prints the first few records.

    python scripts/relay_client.py ws://localhost:8087 NL.HGN --records 5
"""

import argparse
import asyncio
import json

from websockets.asyncio.client import connect


async def watch(url: str, channel: str | None, records: int) -> None:
    async with connect(url) as websocket:
        print(json.loads(await websocket.recv()))

        await websocket.send(json.dumps({"channels": True}))
        reply = json.loads(await websocket.recv())
        print(f"Channels: {reply.get('success', reply)}")

        if channel is None:
            return

        await websocket.send(json.dumps({"subscribe": channel, "info": channel}))
        received = 0
        while received < records:
            message = json.loads(await asyncio.wait_for(websocket.recv(), timeout=30.0))
            if "data" in message:
                received += 1
                print(f"{message['id']} start={message['start']} samples={len(message['data'])}")
            else:
                print(message)

        await websocket.send(json.dumps({"unsubscribe": channel}))


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("url", nargs="?", default="ws://localhost:8087")
    parser.add_argument("channel", nargs="?", default=None)
    parser.add_argument("--records", type=int, default=5)
    args = parser.parse_args()

    asyncio.run(watch(args.url, args.channel, args.records))


if __name__ == "__main__":
    main()
