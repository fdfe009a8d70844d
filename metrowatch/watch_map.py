import asyncio
import json
import sys

import websockets


def describe_command(message: dict) -> str:
    msg_type = message.get("type")
    if msg_type == "setView":
        lat, lng = message["center"]
        return f"setView  ({lat:.5f}, {lng:.5f}) zoom {message['zoom']}"
    if msg_type == "fitBounds":
        (south, west), (north, east) = message["bounds"]
        return f"fitBounds ({south:.5f}, {west:.5f}) - ({north:.5f}, {east:.5f})"
    if msg_type == "reports_changed":
        return f"reports changed (version {message['version']})"
    return json.dumps(message)


async def watch_map(uri: str):
    try:
        async with websockets.connect(uri) as websocket:
            await websocket.send(json.dumps({"type": "ping"}))
            async for raw in websocket:
                print(describe_command(json.loads(raw)))
    except Exception as e:
        print(f"Error connecting to WebSocket: {e}")


if __name__ == "__main__":
    asyncio.run(watch_map(sys.argv[1] if len(sys.argv) > 1 else "ws://127.0.0.1:8000/ws"))
