import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "memory" keeps rooms in-process, "redis" shares them across instances
ROOM_BACKEND = os.getenv("ROOM_BACKEND", "memory").lower()

# Room lifecycle policies
AUTO_CREATE_ROOMS = os.getenv("AUTO_CREATE_ROOMS", "true").lower() in ("1", "true", "yes")
AUTO_DELETE_EMPTY_ROOMS = os.getenv("AUTO_DELETE_EMPTY_ROOMS", "false").lower() in ("1", "true", "yes")

MAX_IDENTIFIER_LENGTH = int(os.getenv("MAX_IDENTIFIER_LENGTH", 128))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
