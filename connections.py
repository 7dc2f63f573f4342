import asyncio
import json
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import WebSocket

from errors import RoomNotFoundError
from logging_config import get_logger
from registry import RoomRegistry

logger = get_logger(__name__)


class ConnectionManager:
    """Owns this instance's WebSocket connections.

    Room membership lives in the registry; this class only maps client ids to
    sockets, delivers room-scoped broadcasts to the members connected here and
    reports disconnects back to the registry.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        # Format: {client_id: websocket}
        self.active_connections: Dict[str, WebSocket] = {}

    def is_connected(self, client_id: str) -> bool:
        return client_id in self.active_connections

    async def connect(self, client_id: str, websocket: WebSocket) -> bool:
        if client_id in self.active_connections:
            logger.warning(f"WebSocket connection rejected: client {client_id} is already connected")
            await websocket.close(code=1008, reason=f"Client id '{client_id}' is already connected")
            return False
        await websocket.accept()
        self.active_connections[client_id] = websocket
        logger.info(f"Client {client_id} connected (local connections: {len(self.active_connections)})")
        return True

    async def disconnect(self, client_id: str) -> List[str]:
        """Forget the socket, purge the client's memberships and tell its rooms it left."""
        self.active_connections.pop(client_id, None)
        rooms = self.registry.disconnect_client(client_id)
        logger.info(f"Client {client_id} disconnected, left rooms: {rooms}")
        for room in rooms:
            await self.broadcast_to_room(room, presence_event("left", client_id, room))
        return rooms

    async def send_to_client(self, client_id: str, message: dict) -> bool:
        websocket = self.active_connections.get(client_id)
        if websocket is None:
            return False
        try:
            await websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            logger.warning(f"Error sending to client {client_id}: {e}")
            return False

    async def broadcast_to_room(self, room: str, message: dict, exclude: Optional[str] = None) -> int:
        """Send a message to every member of a room connected to this instance.

        Returns the number of successful deliveries. Sockets whose send fails
        are treated as gone and disconnected.
        """
        try:
            members = self.registry.get_room_clients(room)
        except RoomNotFoundError:
            logger.debug(f"Broadcast skipped: room {room} no longer exists")
            return 0

        targets = [(client_id, self.active_connections[client_id]) for client_id in members
                   if client_id != exclude and client_id in self.active_connections]
        if not targets:
            return 0

        payload = json.dumps(message)
        results = await asyncio.gather(*(ws.send_text(payload) for _, ws in targets), return_exceptions=True)

        delivered = 0
        disconnected_clients = []
        for (client_id, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending to client {client_id} in room {room}: {result}")
                disconnected_clients.append(client_id)
            else:
                delivered += 1

        # Clean up connections that failed to receive
        for client_id in disconnected_clients:
            if client_id in self.active_connections:
                await self.disconnect(client_id)
                logger.info(f"Cleaned up disconnected client {client_id} from room {room}")

        logger.debug(f"Broadcasted message to {delivered}/{len(targets)} connections in room {room}")
        return delivered

    async def close_all(self):
        """Close every local socket and drop those clients' memberships (shutdown)."""
        for client_id, websocket in list(self.active_connections.items()):
            self.registry.disconnect_client(client_id)
            try:
                await websocket.close(code=1001)
            except Exception as e:
                logger.debug(f"Error closing WebSocket for {client_id}: {e}")
        self.active_connections.clear()


def presence_event(event: str, client_id: str, room: str) -> dict:
    return {
        "type": "presence",
        "event": event,
        "client_id": client_id,
        "room": room,
        "timestamp": datetime.now().isoformat()
    }
