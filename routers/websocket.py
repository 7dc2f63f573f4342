import json
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from connections import ConnectionManager, presence_event
from errors import InvalidArgumentError, RoomRegistryError
from logging_config import get_logger

logger = get_logger(__name__)

websocket_router = APIRouter(tags=["websocket"])


def error_frame(action: Optional[str], detail: str, kind: str) -> dict:
    return {
        "type": "error",
        "action": action,
        "detail": detail,
        "kind": kind,
        "timestamp": datetime.now().isoformat()
    }


def ack_frame(action: str, room: Optional[str] = None, **extra) -> dict:
    frame = {"type": "ack", "action": action, "room": room, "timestamp": datetime.now().isoformat()}
    frame.update(extra)
    return frame


async def handle_frame(client_id: str, message: dict, manager: ConnectionManager) -> dict:
    """Apply one client frame and return the reply for the sender.

    Registry errors propagate to the caller, which turns them into error frames.
    """
    registry = manager.registry
    action = message.get("action")
    room = message.get("room")

    if action == "join":
        added = registry.add_client_to_room(client_id, room)
        if added:
            await manager.broadcast_to_room(room, presence_event("joined", client_id, room), exclude=client_id)
        return ack_frame("join", room, changed=added)

    if action == "leave":
        if registry.is_client_in_room(client_id, room):
            # Tell the room before the client stops being a member
            await manager.broadcast_to_room(room, presence_event("left", client_id, room), exclude=client_id)
        removed = registry.remove_client_from_room(client_id, room)
        return ack_frame("leave", room, changed=removed)

    if action == "message":
        if not registry.is_client_in_room(client_id, room):
            raise InvalidArgumentError(f"Client {client_id} is not in room {room}", room=room, client_id=client_id)
        text = message.get("text")
        if not isinstance(text, str):
            raise InvalidArgumentError("Message text must be a string", room=room, client_id=client_id)
        delivered = await manager.broadcast_to_room(room, {
            "type": "message",
            "room": room,
            "client_id": client_id,
            "text": text,
            "timestamp": datetime.now().isoformat()
        })
        return ack_frame("message", room, delivered=delivered)

    if action == "rooms":
        return ack_frame("rooms", rooms=registry.get_client_rooms(client_id))

    raise InvalidArgumentError(f"Unknown action {action!r}")


@websocket_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, client_id: Optional[str] = None):
    """WebSocket endpoint for joining rooms and messaging them.

    Query parameters:
    - client_id: Optional client identifier, a UUID is assigned when omitted

    Frames are JSON objects with an ``action`` of join, leave, message or rooms.
    """
    manager: ConnectionManager = websocket.app.state.connection_manager
    client_id = client_id or str(uuid.uuid4())
    logger.info(f"WebSocket connection attempt for client: {client_id}")

    try:
        manager.registry.validate(client_id, "Client id")
    except InvalidArgumentError as e:
        logger.warning(f"WebSocket connection rejected: {e}")
        await websocket.close(code=1008, reason=str(e))
        return

    if not await manager.connect(client_id, websocket):
        return

    try:
        await websocket.send_text(json.dumps({
            "type": "system",
            "event": "connected",
            "message": "Connected",
            "client_id": client_id,
            "timestamp": datetime.now().isoformat()
        }))

        message_count = 0
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received frame #{message_count} from client {client_id}")

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps(error_frame(None, "Frames must be JSON objects", InvalidArgumentError.kind)))
                continue
            if not isinstance(message, dict):
                await websocket.send_text(json.dumps(error_frame(None, "Frames must be JSON objects", InvalidArgumentError.kind)))
                continue

            try:
                reply = await handle_frame(client_id, message, manager)
            except RoomRegistryError as e:
                logger.warning(f"Frame {message.get('action')!r} from client {client_id} failed: {e}")
                reply = error_frame(message.get("action"), str(e), e.kind)
            await websocket.send_text(json.dumps(reply))

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for client {client_id}")
    except Exception as e:
        logger.error(f"WebSocket error for client {client_id}: {e}", exc_info=True)
    finally:
        # Cleanup on disconnect
        if manager.is_connected(client_id):
            await manager.disconnect(client_id)
