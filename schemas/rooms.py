from pydantic import BaseModel
from typing import Optional


class CreateRoomRequest(BaseModel):
    name: str

class RoomDetailsResponse(BaseModel):
    name: str
    clients: list[str]
    client_count: int

class RoomListResponse(BaseModel):
    rooms: list[str]
    count: int

class DeleteRoomResponse(BaseModel):
    name: str
    removed_clients: list[str]

class MembershipResponse(BaseModel):
    room: str
    client_id: str
    is_member: bool
    changed: bool = False

class ClientRoomsResponse(BaseModel):
    client_id: str
    rooms: list[str]

class ErrorResponse(BaseModel):
    detail: str
    kind: str
    operation: Optional[str] = None

class HealthResponse(BaseModel):
    status: str
    backend: str
    room_count: Optional[int] = None
