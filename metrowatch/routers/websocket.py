from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from metrowatch.config import logger

router = APIRouter()


async def message_handler(message: Dict[str, Any], websocket: WebSocket):
    """Handle messages sent by a map client."""
    msg_type = message.get("type")

    if msg_type == "ping":
        await websocket.send_json({"type": "pong"})

    elif msg_type == "viewport":
        # A client asking for the current viewport, e.g. after a reload.
        manager = websocket.app.state.map_clients
        if manager.last_command is not None:
            await websocket.send_json(manager.last_command)

    else:
        logger.warning(f"Unknown map client message type: {msg_type}")
        await websocket.send_json({"type": "error", "message": "Unknown message type"})


@router.websocket("")  # This will match /ws when mounted with prefix
async def map_client_endpoint(websocket: WebSocket):
    manager = websocket.app.state.map_clients
    client_id = await manager.connect(websocket)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                logger.warning(f"Received non-JSON message from map client {client_id}")
                continue
            if not isinstance(message, dict):
                continue
            await message_handler(message, websocket)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(client_id)
