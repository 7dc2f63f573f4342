REDIS_ROOMS_KEY = "rooms:index" # set of room names, rooms exist here even when empty
REDIS_ROOM_CLIENTS_KEY = "room:clients:{room}" # room name - set of client IDs
REDIS_CLIENT_ROOMS_KEY = "client:rooms:{client_id}" # client id - set of room names

# **Membership tracking**
# - On join: `SADD rooms:index {room}`, `SADD room:clients:{room} {clientId}`, `SADD client:rooms:{clientId} {room}` in one MULTI.
# - On leave: `SREM` from both sides, `SCARD room:clients:{room}` tells whether the room is now empty.
# - On delete: `WATCH room:clients:{room}`, read members, then drop the room from the index and every member's set.
# - On prune (auto-delete): `WATCH rooms:index room:clients:{room}`, then drop the room only if `SCARD` is still 0.
