"""End-to-end tests for the WebSocket endpoint: signaling relay and change notifications."""


def register(ws, user_key):
    """Register and wait until the server has processed it.

    Register frames get no reply, so the connection offers to itself; frames
    on one socket are handled in order, so the echo proves the key is bound.
    """
    ws.send_json({"type": "register", "userKey": user_key})
    ws.send_json({"type": "offer", "userKey": user_key, "target": user_key, "barrier": True})
    echoed = ws.receive_json()
    assert echoed["barrier"] is True
    assert echoed["sender"] == user_key


class TestSignalingRelay:

    def test_offer_reaches_registered_peer(self, client):
        with client.websocket_connect("/") as c1, client.websocket_connect("/") as c2:
            register(c1, "u1")

            c2.send_json({"type": "offer", "userKey": "u2", "target": "u1", "sdp": "v=0"})

            assert c1.receive_json() == {"type": "offer", "userKey": "u2", "target": "u1", "sdp": "v=0", "sender": "u2"}

    def test_full_handshake(self, client):
        with client.websocket_connect("/ws") as caller, client.websocket_connect("/ws") as callee:
            register(caller, "alice")
            register(callee, "bob")

            caller.send_json({"type": "offer", "userKey": "alice", "target": "bob", "sdp": "offer-sdp", "callType": "video"})
            offer = callee.receive_json()
            assert offer["sdp"] == "offer-sdp"
            assert offer["callType"] == "video"
            assert offer["sender"] == "alice"

            callee.send_json({"type": "answer", "userKey": "bob", "target": offer["sender"], "sdp": "answer-sdp"})
            assert caller.receive_json()["sdp"] == "answer-sdp"

            callee.send_json({"type": "candidate", "userKey": "bob", "target": "alice", "candidate": {"sdpMid": "0"}})
            assert caller.receive_json()["candidate"] == {"sdpMid": "0"}

    def test_duplicate_registration_routes_to_latest(self, client, hub):
        with client.websocket_connect("/") as first, client.websocket_connect("/") as second, client.websocket_connect("/") as caller:
            register(first, "A")
            register(second, "A")

            caller.send_json({"type": "offer", "userKey": "B", "target": "A", "sdp": "v=0"})

            assert second.receive_json()["sender"] == "B"
            assert hub.registry.lookup("A") is not None
            assert len(hub.registry) == 1

            # frames to one socket arrive in order: if the offer had reached the
            # superseded socket it would come before this notification
            client.post("/messages", json={"sender_id": "u1", "receiver_id": "u2", "content": "hi"})
            assert first.receive_json()["type"] == "new_message"
            assert second.receive_json()["type"] == "new_message"

    def test_malformed_frame_keeps_connection_open(self, client):
        with client.websocket_connect("/") as ws:
            ws.send_text("this is not json")
            ws.send_text("[1, 2]")
            ws.send_json({"type": "unknown-kind", "userKey": "u1"})

            register(ws, "u1")

    def test_disconnect_unregisters(self, client, hub):
        with client.websocket_connect("/") as ws:
            register(ws, "u1")
            assert hub.registry.lookup("u1") is not None

        assert hub.registry.lookup("u1") is None
        assert hub.registry.open_connections() == []


class TestChangeNotifications:

    def test_create_notifies_unregistered_socket(self, client):
        with client.websocket_connect("/") as ws:
            response = client.post("/messages", json={"sender_id": "u1", "receiver_id": "u2", "content": "hi"})
            assert response.status_code == 201

            event = ws.receive_json()

        assert event["type"] == "new_message"
        assert event["data"] == response.json()["data"]
        assert event["data"]["sender_id"] == "u1"
        assert event["data"]["content"] == "hi"
        assert "updated_at" not in event["data"]

    def test_every_open_socket_is_notified(self, client):
        with client.websocket_connect("/") as c1, client.websocket_connect("/") as c2:
            register(c2, "u2")
            client.post("/messages", json={"sender_id": "u1", "receiver_id": "u2", "content": "hi"})

            assert c1.receive_json()["type"] == "new_message"
            assert c2.receive_json()["type"] == "new_message"

    def test_lifecycle_events_arrive_in_order(self, client):
        with client.websocket_connect("/") as ws:
            created = client.post("/messages", json={"sender_id": "u1", "receiver_id": "u2", "content": "hi"}).json()["data"]
            client.put(f"/messages/{created['id']}", json={"content": "edited"})
            client.delete(f"/messages/{created['id']}")

            events = [ws.receive_json() for _ in range(3)]

        assert [e["type"] for e in events] == ["new_message", "update_message", "delete_message"]
        assert events[1]["data"]["content"] == "edited"
        assert events[1]["data"]["created_at"] == created["created_at"]
        assert "updated_at" in events[1]["data"]
        assert events[2]["data"] == {"id": created["id"]}

    def test_store_outage_does_not_drop_registrations(self, client, fake_redis):
        with client.websocket_connect("/") as c1, client.websocket_connect("/") as c2:
            register(c1, "u1")
            fake_redis.fail = True

            assert client.post("/messages", json={"sender_id": "u1", "receiver_id": "u2", "content": "hi"}).status_code == 500

            c2.send_json({"type": "candidate", "userKey": "u2", "target": "u1", "candidate": {}})
            assert c1.receive_json()["sender"] == "u2"
