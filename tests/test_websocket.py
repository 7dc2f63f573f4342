"""Tests for the WebSocket transport endpoint."""

import pytest
from starlette.websockets import WebSocketDisconnect


def connect(api_client, client_id):
    ws = api_client.websocket_connect(f"/ws?client_id={client_id}")
    return ws


class TestWebSocket:
    def test_welcome_carries_client_id(self, api_client):
        with api_client.websocket_connect("/ws?client_id=alice") as ws:
            welcome = ws.receive_json()

        assert welcome["type"] == "system"
        assert welcome["event"] == "connected"
        assert welcome["client_id"] == "alice"

    def test_client_id_is_assigned_when_missing(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            welcome = ws.receive_json()

        assert len(welcome["client_id"]) == 36

    def test_join_message_and_disconnect(self, api_client, memory_registry):
        with connect(api_client, "alice") as alice:
            alice.receive_json()
            alice.send_json({"action": "join", "room": "lobby"})
            ack = alice.receive_json()
            assert ack["type"] == "ack"
            assert ack["action"] == "join"
            assert ack["changed"] is True

            with connect(api_client, "bob") as bob:
                bob.receive_json()
                bob.send_json({"action": "join", "room": "lobby"})
                joined = alice.receive_json()
                assert joined["type"] == "presence"
                assert joined["event"] == "joined"
                assert joined["client_id"] == "bob"
                assert bob.receive_json()["type"] == "ack"

                assert memory_registry.get_room_clients("lobby") == ["alice", "bob"]

                bob.send_json({"action": "message", "room": "lobby", "text": "hi"})
                for ws in (alice, bob):
                    message = ws.receive_json()
                    assert message["type"] == "message"
                    assert message["text"] == "hi"
                    assert message["client_id"] == "bob"
                ack = bob.receive_json()
                assert ack["action"] == "message"
                assert ack["delivered"] == 2

                bob.send_json({"action": "leave", "room": "lobby"})
                left = alice.receive_json()
                assert left["event"] == "left"
                assert left["client_id"] == "bob"
                assert bob.receive_json()["changed"] is True

                bob.send_json({"action": "join", "room": "lobby"})
                alice.receive_json()
                bob.receive_json()

            # Closing bob's socket purges its memberships
            assert memory_registry.get_room_clients("lobby") == ["alice"]
            assert memory_registry.get_client_rooms("bob") == []

        assert memory_registry.get_client_rooms("alice") == []
        assert memory_registry.get_room_clients("lobby") == []

    def test_leave_and_rooms(self, api_client, memory_registry):
        with connect(api_client, "alice") as alice:
            alice.receive_json()
            alice.send_json({"action": "join", "room": "lobby"})
            alice.receive_json()
            alice.send_json({"action": "join", "room": "games"})
            alice.receive_json()

            alice.send_json({"action": "rooms"})
            assert alice.receive_json()["rooms"] == ["games", "lobby"]

            alice.send_json({"action": "leave", "room": "lobby"})
            ack = alice.receive_json()
            assert ack["action"] == "leave"
            assert ack["changed"] is True

            assert memory_registry.get_client_rooms("alice") == ["games"]

    def test_errors_keep_connection_open(self, api_client):
        with connect(api_client, "alice") as alice:
            alice.receive_json()

            alice.send_text("not json")
            assert alice.receive_json()["kind"] == "invalid_argument"

            alice.send_json({"action": "message", "room": "lobby", "text": "hi"})
            error = alice.receive_json()
            assert error["type"] == "error"
            assert error["action"] == "message"

            alice.send_json({"action": "join"})
            assert alice.receive_json()["kind"] == "invalid_argument"

            alice.send_json({"action": "dance"})
            assert "Unknown action" in alice.receive_json()["detail"]

            alice.send_json({"action": "rooms"})
            assert alice.receive_json()["type"] == "ack"

    def test_duplicate_client_id_is_rejected(self, api_client):
        with connect(api_client, "alice") as alice:
            alice.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with connect(api_client, "alice") as duplicate:
                    duplicate.receive_json()
            assert exc_info.value.code == 1008

    def test_deleting_room_notifies_members(self, api_client):
        with connect(api_client, "alice") as alice:
            alice.receive_json()
            alice.send_json({"action": "join", "room": "lobby"})
            alice.receive_json()

            response = api_client.delete("/rooms/lobby")
            assert response.json()["removed_clients"] == ["alice"]

            notice = alice.receive_json()
            assert notice["event"] == "room_closed"
            assert notice["room"] == "lobby"
