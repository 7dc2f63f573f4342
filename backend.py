import functools
from typing import Dict, Optional, Set, Tuple

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from errors import BackendError
from logging_config import get_logger
from redis_keys import REDIS_ROOMS_KEY, REDIS_ROOM_CLIENTS_KEY, REDIS_CLIENT_ROOMS_KEY

logger = get_logger(__name__)


class MemoryBackend:
    """Membership state held in this process.

    Two indexes are kept in step: room -> clients and client -> rooms.
    Callers serialize access (the registry holds its lock around every call).
    """

    name = "memory"

    def __init__(self):
        self._room_clients: Dict[str, Set[str]] = {}
        self._client_rooms: Dict[str, Set[str]] = {}
        logger.info("Initializing in-memory room backend")

    def ping(self) -> bool:
        return True

    def has_room(self, room: str) -> bool:
        return room in self._room_clients

    def create_room(self, room: str) -> bool:
        if room in self._room_clients:
            return False
        self._room_clients[room] = set()
        return True

    def delete_room(self, room: str) -> Optional[Set[str]]:
        clients = self._room_clients.pop(room, None)
        if clients is None:
            return None
        for client_id in clients:
            self._discard_client_room(client_id, room)
        return clients

    def delete_room_if_empty(self, room: str) -> bool:
        if self._room_clients.get(room) != set():
            return False
        del self._room_clients[room]
        return True

    def add_client(self, room: str, client_id: str, create: bool = True) -> Optional[bool]:
        """Returns None when the room is absent and may not be created, else whether the client is new."""
        clients = self._room_clients.get(room)
        if clients is None:
            if not create:
                return None
            clients = self._room_clients[room] = set()
        if client_id in clients:
            return False
        clients.add(client_id)
        self._client_rooms.setdefault(client_id, set()).add(room)
        return True

    def remove_client(self, room: str, client_id: str) -> Tuple[bool, int]:
        """Returns (removed, clients left in the room)."""
        clients = self._room_clients.get(room)
        if clients is None or client_id not in clients:
            return False, len(clients or ())
        clients.remove(client_id)
        self._discard_client_room(client_id, room)
        return True, len(clients)

    def remove_client_everywhere(self, client_id: str) -> Dict[str, int]:
        """Drop every membership of a client. Returns {room: clients left}."""
        rooms = self._client_rooms.pop(client_id, set())
        remaining = {}
        for room in rooms:
            clients = self._room_clients.get(room)
            if clients is not None:
                clients.discard(client_id)
                remaining[room] = len(clients)
        return remaining

    def list_rooms(self) -> Set[str]:
        return set(self._room_clients)

    def client_rooms(self, client_id: str) -> Set[str]:
        return set(self._client_rooms.get(client_id, ()))

    def room_clients(self, room: str) -> Set[str]:
        return set(self._room_clients.get(room, ()))

    def is_member(self, room: str, client_id: str) -> bool:
        return client_id in self._room_clients.get(room, ())

    def close(self):
        self._room_clients.clear()
        self._client_rooms.clear()
        logger.info("In-memory room backend cleared")

    def _discard_client_room(self, client_id: str, room: str):
        rooms = self._client_rooms.get(client_id)
        if rooms is None:
            return
        rooms.discard(room)
        if not rooms:
            del self._client_rooms[client_id]


def _redis_errors(method):
    """Surface redis failures as BackendError so callers only see registry errors."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except redis.RedisError as e:
            logger.error(f"Redis call {method.__name__} failed: {e}", exc_info=True)
            raise BackendError(f"Redis error: {e}") from e

    return wrapper


class RedisBackend:
    """Membership state shared through Redis.

    Multi-key writes go through MULTI/EXEC; where a read decides the write the
    keys are WATCHed first, so registries in different processes never leave
    the room and client indexes out of step.
    """

    name = "redis"

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        if redis_client is not None:
            self.redis_client = redis_client
            logger.info("Initializing RedisBackend with provided client")
            return
        logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
        try:
            self.redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
            # Test connection
            self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise BackendError(f"Cannot connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}") from e

    @staticmethod
    def _room_key(room: str) -> str:
        return REDIS_ROOM_CLIENTS_KEY.format(room=room)

    @staticmethod
    def _client_key(client_id: str) -> str:
        return REDIS_CLIENT_ROOMS_KEY.format(client_id=client_id)

    @_redis_errors
    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    @_redis_errors
    def has_room(self, room: str) -> bool:
        return bool(self.redis_client.sismember(REDIS_ROOMS_KEY, room))

    @_redis_errors
    def create_room(self, room: str) -> bool:
        added = self.redis_client.sadd(REDIS_ROOMS_KEY, room)
        logger.debug(f"SADD {REDIS_ROOMS_KEY} {room} -> {added}")
        return bool(added)

    @_redis_errors
    def delete_room(self, room: str) -> Optional[Set[str]]:
        room_key = self._room_key(room)

        def _delete(pipe):
            if not pipe.sismember(REDIS_ROOMS_KEY, room):
                return None
            clients = set(pipe.smembers(room_key))
            pipe.multi()
            pipe.srem(REDIS_ROOMS_KEY, room)
            pipe.delete(room_key)
            for client_id in clients:
                pipe.srem(self._client_key(client_id), room)
            return clients

        clients = self.redis_client.transaction(_delete, REDIS_ROOMS_KEY, room_key, value_from_callable=True)
        logger.debug(f"Room {room} deleted from Redis: clients={clients}")
        return clients

    @_redis_errors
    def delete_room_if_empty(self, room: str) -> bool:
        """Delete a room only if it has no clients when the transaction commits."""
        room_key = self._room_key(room)

        def _delete(pipe):
            if not pipe.sismember(REDIS_ROOMS_KEY, room) or pipe.scard(room_key):
                return False
            pipe.multi()
            pipe.srem(REDIS_ROOMS_KEY, room)
            pipe.delete(room_key)
            return True

        return self.redis_client.transaction(_delete, REDIS_ROOMS_KEY, room_key, value_from_callable=True)

    @_redis_errors
    def add_client(self, room: str, client_id: str, create: bool = True) -> Optional[bool]:
        room_key = self._room_key(room)

        def _add(pipe):
            if not create and not pipe.sismember(REDIS_ROOMS_KEY, room):
                return None
            already_member = pipe.sismember(room_key, client_id)
            pipe.multi()
            pipe.sadd(REDIS_ROOMS_KEY, room)
            pipe.sadd(room_key, client_id)
            pipe.sadd(self._client_key(client_id), room)
            return not already_member

        return self.redis_client.transaction(_add, REDIS_ROOMS_KEY, room_key, value_from_callable=True)

    @_redis_errors
    def remove_client(self, room: str, client_id: str) -> Tuple[bool, int]:
        room_key = self._room_key(room)
        pipe = self.redis_client.pipeline()
        pipe.srem(room_key, client_id)
        pipe.srem(self._client_key(client_id), room)
        pipe.scard(room_key)
        removed, _, remaining = pipe.execute()
        return bool(removed), int(remaining)

    @_redis_errors
    def remove_client_everywhere(self, client_id: str) -> Dict[str, int]:
        client_key = self._client_key(client_id)

        def _purge(pipe):
            rooms = set(pipe.smembers(client_key))
            pipe.multi()
            for room in rooms:
                pipe.srem(self._room_key(room), client_id)
            pipe.delete(client_key)
            return rooms

        rooms = sorted(self.redis_client.transaction(_purge, client_key, value_from_callable=True))
        if not rooms:
            return {}
        pipe = self.redis_client.pipeline(transaction=False)
        for room in rooms:
            pipe.scard(self._room_key(room))
        return {room: int(count) for room, count in zip(rooms, pipe.execute())}

    @_redis_errors
    def list_rooms(self) -> Set[str]:
        return set(self.redis_client.smembers(REDIS_ROOMS_KEY))

    @_redis_errors
    def client_rooms(self, client_id: str) -> Set[str]:
        return set(self.redis_client.smembers(self._client_key(client_id)))

    @_redis_errors
    def room_clients(self, room: str) -> Set[str]:
        return set(self.redis_client.smembers(self._room_key(room)))

    @_redis_errors
    def is_member(self, room: str, client_id: str) -> bool:
        return bool(self.redis_client.sismember(self._room_key(room), client_id))

    def close(self):
        try:
            self.redis_client.close()
            logger.info("Redis client closed")
        except redis.RedisError as e:
            logger.error(f"Error closing Redis client: {e}")


def create_backend(name: str):
    """Build the storage backend named by ROOM_BACKEND."""
    if name == MemoryBackend.name:
        return MemoryBackend()
    if name == RedisBackend.name:
        return RedisBackend()
    raise ValueError(f"Unknown room backend {name!r}, expected 'memory' or 'redis'")
