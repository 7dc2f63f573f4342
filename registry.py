import threading
from contextlib import contextmanager
from typing import List, Optional

from constants import AUTO_CREATE_ROOMS, AUTO_DELETE_EMPTY_ROOMS, MAX_IDENTIFIER_LENGTH, ROOM_BACKEND
from backend import create_backend
from errors import InvalidArgumentError, RoomAlreadyExistsError, RoomNotFoundError, RoomRegistryError
from logging_config import get_logger

logger = get_logger(__name__)


class RoomRegistry:
    """Tracks which clients are in which rooms.

    The registry never touches connections; the transport asks it for a
    room's members when broadcasting and tells it when a client disconnects.

    Policies:
    - ``auto_create``: adding a client to an absent room creates the room.
      When off, the add fails with RoomNotFoundError.
    - ``auto_delete_empty``: a room is deleted as soon as its last client
      leaves. When off, emptied rooms stay until deleted explicitly.

    Every operation runs under one lock and validates its arguments before
    touching the backend, so a failed call leaves the state unchanged.
    """

    def __init__(self, backend, auto_create: bool = True, auto_delete_empty: bool = False,
                 max_identifier_length: int = 128):
        self.backend = backend
        self.auto_create = auto_create
        self.auto_delete_empty = auto_delete_empty
        self.max_identifier_length = max_identifier_length
        self._lock = threading.RLock()
        logger.info(
            f"RoomRegistry ready: backend={backend.name}, auto_create={auto_create}, "
            f"auto_delete_empty={auto_delete_empty}"
        )

    @classmethod
    def from_config(cls) -> "RoomRegistry":
        return cls(
            create_backend(ROOM_BACKEND),
            auto_create=AUTO_CREATE_ROOMS,
            auto_delete_empty=AUTO_DELETE_EMPTY_ROOMS,
            max_identifier_length=MAX_IDENTIFIER_LENGTH,
        )

    @contextmanager
    def _operation(self, operation: str, action: str, room: Optional[str] = None, client_id: Optional[str] = None):
        with self._lock:
            try:
                yield
            except RoomRegistryError as e:
                e.operation = e.operation or operation
                e.action = e.action or action
                if e.room is None:
                    e.room = room
                if e.client_id is None:
                    e.client_id = client_id
                logger.error(f"Error during {operation} (room={room}, client={client_id}): {e}")
                raise

    def validate(self, value, what: str):
        if not isinstance(value, str):
            raise InvalidArgumentError(f"{what} must be a string, got {type(value).__name__}")
        if not value.strip():
            raise InvalidArgumentError(f"{what} must not be empty")
        if len(value) > self.max_identifier_length:
            raise InvalidArgumentError(f"{what} is longer than {self.max_identifier_length} characters")

    def _prune_if_empty(self, room: str, remaining: int):
        # remaining is a hint; the backend re-checks emptiness atomically before deleting
        if self.auto_delete_empty and remaining == 0 and self.backend.delete_room_if_empty(room):
            logger.info(f"Room {room} deleted after its last client left")

    def create_room(self, name: str) -> str:
        with self._operation("create_room", f"create room {name}", room=name):
            self.validate(name, "Room name")
            if not self.backend.create_room(name):
                raise RoomAlreadyExistsError(f"Room {name} already exists", room=name)
            logger.info(f"Room {name} created")
            return name

    def delete_room(self, name: str) -> List[str]:
        """Delete a room and every membership in it. Returns the former members."""
        with self._operation("delete_room", f"delete room {name}", room=name):
            self.validate(name, "Room name")
            clients = self.backend.delete_room(name)
            if clients is None:
                raise RoomNotFoundError(f"Room {name} does not exist", room=name)
            logger.info(f"Room {name} deleted, {len(clients)} clients removed")
            return sorted(clients)

    def has_room(self, name: str) -> bool:
        with self._operation("has_room", f"check room {name}", room=name):
            self.validate(name, "Room name")
            return self.backend.has_room(name)

    def add_client_to_room(self, client_id: str, name: str) -> bool:
        """Add a client to a room. Returns False when it was already a member."""
        with self._operation("add_client_to_room", f"add client {client_id} to room {name}",
                             room=name, client_id=client_id):
            self.validate(client_id, "Client id")
            self.validate(name, "Room name")
            added = self.backend.add_client(name, client_id, create=self.auto_create)
            if added is None:
                raise RoomNotFoundError(f"Room {name} does not exist", room=name, client_id=client_id)
            if added:
                logger.info(f"Client {client_id} added to room {name}")
            else:
                logger.debug(f"Client {client_id} already in room {name}")
            return added

    def remove_client_from_room(self, client_id: str, name: str) -> bool:
        """Remove a client from a room. Returns False when it was not a member."""
        with self._operation("remove_client_from_room", f"remove client {client_id} from room {name}",
                             room=name, client_id=client_id):
            self.validate(client_id, "Client id")
            self.validate(name, "Room name")
            removed, remaining = self.backend.remove_client(name, client_id)
            if not removed:
                logger.debug(f"Client {client_id} was not in room {name}")
                return False
            logger.info(f"Client {client_id} removed from room {name}")
            self._prune_if_empty(name, remaining)
            return True

    def disconnect_client(self, client_id: str) -> List[str]:
        """Drop every membership of a disconnected client. Returns the rooms it left."""
        with self._operation("disconnect_client", f"disconnect client {client_id}", client_id=client_id):
            self.validate(client_id, "Client id")
            remaining = self.backend.remove_client_everywhere(client_id)
            for room, count in remaining.items():
                self._prune_if_empty(room, count)
            if remaining:
                logger.info(f"Client {client_id} disconnected, removed from rooms {sorted(remaining)}")
            return sorted(remaining)

    def get_all_rooms(self) -> List[str]:
        with self._operation("get_all_rooms", "get all rooms"):
            return sorted(self.backend.list_rooms())

    def get_client_rooms(self, client_id: str) -> List[str]:
        with self._operation("get_client_rooms", f"get rooms for client {client_id}", client_id=client_id):
            self.validate(client_id, "Client id")
            return sorted(self.backend.client_rooms(client_id))

    def get_room_clients(self, name: str) -> List[str]:
        with self._operation("get_room_clients", f"get clients of room {name}", room=name):
            self.validate(name, "Room name")
            if not self.backend.has_room(name):
                raise RoomNotFoundError(f"Room {name} does not exist", room=name)
            return sorted(self.backend.room_clients(name))

    def is_client_in_room(self, client_id: str, name: str) -> bool:
        with self._operation("is_client_in_room", f"check if client {client_id} is in room {name}",
                             room=name, client_id=client_id):
            self.validate(client_id, "Client id")
            self.validate(name, "Room name")
            return self.backend.is_member(name, client_id)

    def ping(self) -> bool:
        with self._operation("ping", "reach room backend"):
            return self.backend.ping()

    def close(self):
        with self._lock:
            self.backend.close()
            logger.info("RoomRegistry closed")
