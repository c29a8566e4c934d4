from routers.notifications import create_notification


def test_list_and_filter(client, register):
    alice = register()
    bob = register("Bob", "bob@abc.edu")
    create_notification(alice["id"], "like", "Someone likes you! ❤️", "You have a new admirer", sender_id=bob["id"])
    create_notification(alice["id"], "comment", "New comment", "Someone commented")
    create_notification(bob["id"], "like", "Someone likes you! ❤️", "You have a new admirer")

    res = client.get("/api/notifications", headers=alice["headers"])
    data = res.json()["data"]
    assert data["totalCount"] == 2
    assert data["unreadCount"] == 2
    newest, oldest = data["notifications"]
    assert newest["type"] == "comment"
    assert newest["icon"] == "chatbubble-outline"
    assert oldest["type"] == "like"
    assert oldest["avatar"].startswith("https://via.placeholder.com/40x40/")
    assert oldest["timestamp"] == "now"

    res = client.get("/api/notifications", params={"type": "like"}, headers=alice["headers"])
    assert [n["type"] for n in res.json()["data"]["notifications"]] == ["like"]

    res = client.get("/api/notifications", params={"type": "party"}, headers=alice["headers"])
    assert res.status_code == 400


def test_mark_all_read_only_touches_caller(client, db, register):
    alice = register()
    bob = register("Bob", "bob@abc.edu")
    for _ in range(3):
        create_notification(alice["id"], "message", "New message", "hi")
    create_notification(bob["id"], "message", "New message", "hi")

    res = client.put("/api/notifications/mark-all-read", headers=alice["headers"])
    assert res.json()["data"]["modifiedCount"] == 3
    assert db["notification"].count_documents({"recipient_id": alice["id"], "is_read": False}) == 0
    assert db["notification"].count_documents({"recipient_id": bob["id"], "is_read": False}) == 1

    res = client.put("/api/notifications/mark-all-read", headers=alice["headers"])
    assert res.json()["data"]["modifiedCount"] == 0


def test_mark_one_read_and_unread_count(client, register):
    alice = register()
    bob = register("Bob", "bob@abc.edu")
    first = create_notification(alice["id"], "match", "New Match! 💕", "You matched")
    create_notification(alice["id"], "match", "New Match! 💕", "You matched")

    assert client.get("/api/notifications/unread-count", headers=alice["headers"]).json()["data"]["unreadCount"] == 2

    assert client.put(f"/api/notifications/{first}/read", headers=bob["headers"]).status_code == 404
    assert client.put("/api/notifications/bogus/read", headers=alice["headers"]).status_code == 404

    assert client.put(f"/api/notifications/{first}/read", headers=alice["headers"]).status_code == 200
    assert client.get("/api/notifications/unread-count", headers=alice["headers"]).json()["data"]["unreadCount"] == 1

    res = client.get("/api/notifications", params={"unreadOnly": "true"}, headers=alice["headers"])
    assert len(res.json()["data"]["notifications"]) == 1
