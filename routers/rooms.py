from fastapi import APIRouter, Depends, Request
from datetime import datetime
from schemas.rooms import CreateRoomRequest, DeleteRoomResponse, ErrorResponse, MembershipResponse, RoomDetailsResponse, RoomListResponse
from connections import ConnectionManager
from registry import RoomRegistry
from routers.dependencies import get_connection_manager, get_registry
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(
    prefix="/rooms",
    tags=["rooms"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@rooms_router.post("/", response_model=RoomDetailsResponse, status_code=201)
async def create_room(room: CreateRoomRequest, request: Request, registry: RoomRegistry = Depends(get_registry)):
    logger.info(f"Room creation request from {_client_host(request)}, name: {room.name}")
    name = registry.create_room(room.name)
    return RoomDetailsResponse(name=name, clients=[], client_count=0)


@rooms_router.get("/", response_model=RoomListResponse)
async def list_rooms(registry: RoomRegistry = Depends(get_registry)):
    rooms = registry.get_all_rooms()
    return RoomListResponse(rooms=rooms, count=len(rooms))


@rooms_router.get("/{room_name}", response_model=RoomDetailsResponse)
async def get_room_details(room_name: str, registry: RoomRegistry = Depends(get_registry)):
    """
    Get a room with its current members.

    Returns:
    - name: Room name
    - clients: Member client ids, sorted
    - client_count: Number of members
    """
    clients = registry.get_room_clients(room_name)
    logger.debug(f"Room details retrieved for {room_name}: {len(clients)} clients")
    return RoomDetailsResponse(name=room_name, clients=clients, client_count=len(clients))


@rooms_router.delete("/{room_name}", response_model=DeleteRoomResponse)
async def delete_room(
    room_name: str,
    request: Request,
    registry: RoomRegistry = Depends(get_registry),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
):
    # - Room and all its memberships are removed from the registry.
    # - Former members still connected get a closure notice; their sockets stay open.
    logger.info(f"Delete room request for {room_name} from {_client_host(request)}")
    removed_clients = registry.delete_room(room_name)

    closure_message = {
        "type": "system",
        "event": "room_closed",
        "message": "Room has been closed",
        "room": room_name,
        "timestamp": datetime.now().isoformat()
    }
    for client_id in removed_clients:
        await connection_manager.send_to_client(client_id, closure_message)

    return DeleteRoomResponse(name=room_name, removed_clients=removed_clients)


@rooms_router.put("/{room_name}/clients/{client_id}", response_model=MembershipResponse)
async def add_client(room_name: str, client_id: str, registry: RoomRegistry = Depends(get_registry)):
    added = registry.add_client_to_room(client_id, room_name)
    return MembershipResponse(room=room_name, client_id=client_id, is_member=True, changed=added)


@rooms_router.delete("/{room_name}/clients/{client_id}", response_model=MembershipResponse)
async def remove_client(room_name: str, client_id: str, registry: RoomRegistry = Depends(get_registry)):
    removed = registry.remove_client_from_room(client_id, room_name)
    return MembershipResponse(room=room_name, client_id=client_id, is_member=False, changed=removed)


@rooms_router.get("/{room_name}/clients/{client_id}", response_model=MembershipResponse)
async def check_client(room_name: str, client_id: str, registry: RoomRegistry = Depends(get_registry)):
    is_member = registry.is_client_in_room(client_id, room_name)
    return MembershipResponse(room=room_name, client_id=client_id, is_member=is_member)
