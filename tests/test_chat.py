import pytest


@pytest.fixture
def matched(client, register):
    alice = register()
    bob = register("Bob", "bob@abc.edu")
    client.post("/api/matches/swipe", json={"targetUserId": bob["id"], "action": "like"}, headers=alice["headers"])
    res = client.post("/api/matches/swipe", json={"targetUserId": alice["id"], "action": "like"}, headers=bob["headers"])
    return alice, bob, res.json()["data"]["matchId"]


def send(client, user, match_id, content):
    return client.post(f"/api/chat/matches/{match_id}/messages", json={"content": content}, headers=user["headers"])


def test_send_and_read_messages(client, db, matched):
    alice, bob, match_id = matched
    res = send(client, alice, match_id, "  hi Bob  ")
    assert res.status_code == 200
    message = res.json()["data"]["message"]
    assert message["content"] == "hi Bob"
    assert message["senderId"] == "me"
    assert message["isRead"] is True
    send(client, alice, match_id, "how are you?")

    match = db["match"].find_one()
    assert match["last_message"]["content"] == "how are you?"
    assert match["last_message"]["sender_id"] == alice["id"]

    notes = list(db["notification"].find({"recipient_id": bob["id"], "type": "message"}))
    assert len(notes) == 2
    assert notes[0]["data"]["matchId"] == match_id

    assert client.get("/api/chat/unread-count", headers=bob["headers"]).json()["data"]["unreadCount"] == 2
    listed = client.get("/api/matches", headers=bob["headers"]).json()["data"]["matches"]
    assert listed[0]["unreadCount"] == 2
    assert listed[0]["lastMessage"] == "how are you?"

    res = client.get(f"/api/chat/matches/{match_id}/messages", headers=bob["headers"])
    data = res.json()["data"]
    assert [m["content"] for m in data["messages"]] == ["hi Bob", "how are you?"]
    assert all(m["senderId"] == alice["id"] and m["senderName"] == "Alice" for m in data["messages"])
    # returned as they were before the read
    assert all(m["isRead"] is False for m in data["messages"])
    assert data["match"]["userId"] == alice["id"]

    assert client.get("/api/chat/unread-count", headers=bob["headers"]).json()["data"]["unreadCount"] == 0
    assert client.get("/api/chat/unread-count", headers=alice["headers"]).json()["data"]["unreadCount"] == 0


def test_reading_does_not_mark_own_messages(client, db, matched):
    alice, bob, match_id = matched
    send(client, alice, match_id, "hello")
    client.get(f"/api/chat/matches/{match_id}/messages", headers=alice["headers"])
    assert db["message"].find_one()["read_by"] == [alice["id"]]


def test_outsider_cannot_touch_the_conversation(client, register, matched):
    alice, bob, match_id = matched
    mallory = register("Mallory", "mallory@abc.edu")
    message_id = send(client, alice, match_id, "secret").json()["data"]["message"]["id"]

    assert send(client, mallory, match_id, "hi").status_code == 404
    assert client.get(f"/api/chat/matches/{match_id}/messages", headers=mallory["headers"]).status_code == 404
    res = client.put(f"/api/chat/messages/{message_id}/read", headers=mallory["headers"])
    assert res.status_code == 404
    assert res.json()["message"] == "Message not found"


def test_message_validation(client, matched):
    alice, bob, match_id = matched
    res = send(client, alice, match_id, "   ")
    assert res.status_code == 400
    assert res.json()["message"] == "Message content is required"

    res = send(client, alice, match_id, "x" * 1001)
    assert res.status_code == 400

    assert send(client, alice, match_id, "x" * 1000).status_code == 200


def test_no_messages_after_unmatch(client, matched):
    alice, bob, match_id = matched
    client.delete(f"/api/matches/{match_id}", headers=bob["headers"])
    res = send(client, alice, match_id, "still there?")
    assert res.status_code == 400


def test_mark_single_message_read(client, db, matched):
    alice, bob, match_id = matched
    message_id = send(client, alice, match_id, "ping").json()["data"]["message"]["id"]
    res = client.put(f"/api/chat/messages/{message_id}/read", headers=bob["headers"])
    assert res.status_code == 200
    assert bob["id"] in db["message"].find_one()["read_by"]


def test_only_sender_deletes(client, db, matched):
    alice, bob, match_id = matched
    message_id = send(client, alice, match_id, "oops").json()["data"]["message"]["id"]

    assert client.delete(f"/api/chat/messages/{message_id}", headers=bob["headers"]).status_code == 404
    assert db["message"].count_documents({}) == 1

    assert client.delete(f"/api/chat/messages/{message_id}", headers=alice["headers"]).status_code == 200
    assert db["message"].count_documents({}) == 0
