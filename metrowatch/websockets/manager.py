import asyncio
import itertools
from typing import Any, Dict, Optional, Set, Tuple

from fastapi import WebSocket
from pubsub import pub

from metrowatch.config import logger
from metrowatch.core.store import REPORTS_CHANGED
from metrowatch.core.viewport import BoundingBox


class MapClientManager:
    """Manages connected map clients and sends them viewport commands.

    Acts as the map view for the viewport controller: ``set_view`` and
    ``fit_bounds`` broadcast a command to every client. The last command is
    kept and replayed to clients that connect later.
    """

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.last_command: Optional[Dict[str, Any]] = None
        self._ids = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()
        pub.subscribe(self.on_reports_changed, REPORTS_CHANGED)

    def on_reports_changed(self, store, version):
        """Tell clients the collection changed so they can refresh markers."""
        self._dispatch({"type": "reports_changed", "version": version})

    def set_view(self, coordinates: Tuple[float, float], zoom: int):
        self.last_command = {
            "type": "setView",
            "center": [coordinates[0], coordinates[1]],
            "zoom": zoom,
        }
        self._dispatch(self.last_command)

    def fit_bounds(self, bounds: BoundingBox, padding: Tuple[int, int]):
        self.last_command = {
            "type": "fitBounds",
            "bounds": bounds.as_bounds(),
            "padding": list(padding),
        }
        self._dispatch(self.last_command)

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a map client and replay the current viewport to it."""
        await websocket.accept()
        client_id = str(next(self._ids))
        self.active_connections[client_id] = websocket
        logger.info(f"Map client {client_id} connected")
        if self.last_command is not None:
            await websocket.send_json(self.last_command)
        return client_id

    def disconnect(self, client_id: str):
        """Remove a connection from active connections."""
        if client_id in self.active_connections:
            self.active_connections.pop(client_id, None)
            logger.info(f"Map client {client_id} disconnected")

    async def broadcast(self, message: Dict[str, Any]):
        """Send a message to every connected map client."""
        for client_id, connection in list(self.active_connections.items()):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Dropping map client {client_id}: {str(e)}")
                self.disconnect(client_id)
        logger.debug(f"Broadcast {message.get('type')} to {len(self.active_connections)} map clients")

    def _dispatch(self, message: Dict[str, Any]):
        if not self.active_connections:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop; {message.get('type')} not broadcast")
            return
        task = loop.create_task(self.broadcast(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self):
        pub.unsubscribe(self.on_reports_changed, REPORTS_CHANGED)
        for task in list(self._tasks):
            task.cancel()
