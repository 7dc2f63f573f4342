from typing import Optional


class RoomRegistryError(Exception):
    """Base error for registry operations.

    ``reason`` says what went wrong. The registry fills in ``operation`` and
    ``action`` when the error leaves one of its operations, so ``str(error)``
    reads like ``Failed to create room lobby: Room lobby already exists``.
    """

    kind = "registry_error"

    def __init__(self, reason: str, room: Optional[str] = None, client_id: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.room = room
        self.client_id = client_id
        self.operation: Optional[str] = None
        self.action: Optional[str] = None

    def __str__(self):
        if self.action:
            return f"Failed to {self.action}: {self.reason}"
        return self.reason


class RoomAlreadyExistsError(RoomRegistryError):
    kind = "already_exists"


class RoomNotFoundError(RoomRegistryError):
    kind = "not_found"


class InvalidArgumentError(RoomRegistryError):
    kind = "invalid_argument"


class BackendError(RoomRegistryError):
    """The storage backend failed, e.g. Redis is unreachable."""

    kind = "backend_error"
