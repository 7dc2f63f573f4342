from fastapi import APIRouter, Depends
from schemas.rooms import ClientRoomsResponse, ErrorResponse
from registry import RoomRegistry
from routers.dependencies import get_registry
from logging_config import get_logger

logger = get_logger(__name__)

clients_router = APIRouter(
    prefix="/clients",
    tags=["clients"],
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)


@clients_router.get("/{client_id}/rooms", response_model=ClientRoomsResponse)
async def get_client_rooms(client_id: str, registry: RoomRegistry = Depends(get_registry)):
    rooms = registry.get_client_rooms(client_id)
    return ClientRoomsResponse(client_id=client_id, rooms=rooms)


@clients_router.delete("/{client_id}", response_model=ClientRoomsResponse)
async def purge_client(client_id: str, registry: RoomRegistry = Depends(get_registry)):
    # Removes memberships only; a live WebSocket for this client stays connected.
    logger.info(f"Purge request for client {client_id}")
    rooms = registry.disconnect_client(client_id)
    return ClientRoomsResponse(client_id=client_id, rooms=rooms)
