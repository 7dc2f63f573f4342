from fastapi import Request

from connections import ConnectionManager
from registry import RoomRegistry


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager
