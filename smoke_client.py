import asyncio
import base64
import json
import sys

import websockets


async def smoke(session_id: str, ws_url: str = "ws://localhost:5000/ws"):
    # sessionId comes from POST /start-session (or the QR payload)
    async with websockets.connect(ws_url) as ws:
        await ws.send(json.dumps({"type": "init", "sessionId": session_id}))
        print(f"Init: {await ws.recv()}")

        await ws.send(json.dumps({"type": "client-connected"}))
        print(f"Ready: {await ws.recv()}")

        # Upload a file, expect the refreshed listing
        await ws.send(json.dumps({
            "type": "upload",
            "name": "hello.txt",
            "content": base64.b64encode(b"Hello from Python!").decode("ascii"),
        }))
        print(f"Listing: {await ws.recv()}")

        await ws.send(json.dumps({"type": "download", "file": "hello.txt"}))
        reply = json.loads(await ws.recv())
        print(f"Downloaded {reply.get('name')}: {base64.b64decode(reply.get('content', ''))!r}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        sys.exit("usage: python smoke_client.py <sessionId> [wsUrl]")
    asyncio.run(smoke(*sys.argv[1:3]))
