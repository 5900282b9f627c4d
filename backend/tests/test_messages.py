import io
import math
import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.models import ConversationParticipant, Message
from app.utils.file_upload import FOLDER_MESSAGE, UPLOADS_DIR


def send(client, headers, conversation_id, content=None, **kwargs):
    data = {"content": content} if content is not None else {}
    return client.post(f"/api/conversations/{conversation_id}/messages", data=data, headers=headers, **kwargs)


def unread(db, conversation_id, user):
    db.expire_all()
    return db.get(ConversationParticipant, (uuid.UUID(conversation_id), user.id)).unread_count


def test_send_message(client, make_user, auth_headers, create_direct, notifier):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    response = send(client, auth_headers(alice), conversation["id"], "  Hello 👋  ")
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Message sent successfully"
    message = body["data"]
    assert message["content"] == "Hello 👋"
    assert message["status"] == "sent"
    assert message["sender"]["id"] == str(alice.id)
    assert message["conversation"] == conversation["id"]
    assert message["seenBy"] == []

    events = notifier.of_type("message:new")
    assert len(events) == 1
    user_id, _, payload = events[0]
    assert user_id == str(bob.id)
    assert payload["conversationId"] == conversation["id"]
    assert payload["content"] == "Hello 👋"
    assert payload["senderId"] == str(alice.id)


def test_send_increments_other_participants_only(client, db, make_user, auth_headers, create_group):
    admin, bob, carol = (make_user(n) for n in ("admin", "bob", "carol"))
    group = create_group(admin, [bob, carol])

    send(client, auth_headers(bob), group["id"], "one")
    send(client, auth_headers(bob), group["id"], "two")

    assert unread(db, group["id"], bob) == 0
    assert unread(db, group["id"], admin) == 2
    assert unread(db, group["id"], carol) == 2


def test_send_updates_last_message_snapshot(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    send(client, auth_headers(bob), conversation["id"], "latest")
    data = client.get(f"/api/conversations/{conversation['id']}", headers=auth_headers(alice)).json()["data"]
    assert data["lastMessage"]["content"] == "latest"
    assert data["lastMessage"]["senderId"] == str(bob.id)
    assert data["unreadCount"] == 1


def test_send_image_only_message(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    response = send(
        client,
        auth_headers(alice),
        conversation["id"],
        files={"image": ("photo.jpg", io.BytesIO(b"\xff\xd8\xff fake jpeg"), "image/jpeg")},
    )
    assert response.status_code == 201
    message = response.json()["data"]
    assert message["content"] is None
    assert message["image"].startswith("http://testserver/uploads/message-images/")

    data = client.get(f"/api/conversations/{conversation['id']}", headers=auth_headers(bob)).json()["data"]
    assert data["lastMessage"]["content"] == "📷 Image"


def test_failed_send_removes_stored_image(client, db, make_user, auth_headers, create_direct, monkeypatch):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)
    stored_before = set((UPLOADS_DIR / FOLDER_MESSAGE).glob("*"))

    def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(Session, "commit", failing_commit)
    response = send(
        client,
        auth_headers(alice),
        conversation["id"],
        files={"image": ("photo.jpg", io.BytesIO(b"\xff\xd8\xff fake jpeg"), "image/jpeg")},
    )
    monkeypatch.undo()

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"
    assert set((UPLOADS_DIR / FOLDER_MESSAGE).glob("*")) == stored_before
    assert db.query(Message).count() == 0


def test_send_requires_content_or_image(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    for content in (None, "   "):
        response = send(client, auth_headers(alice), conversation["id"], content)
        assert response.status_code == 400
        assert "content or image" in response.json()["error"]["message"]


def test_send_rejects_oversized_content(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    response = send(client, auth_headers(alice), conversation["id"], "x" * 5001)
    assert response.status_code == 400
    assert "cannot exceed 5000 characters" in response.json()["error"]["message"]


def test_send_access_checks(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    mallory = make_user("mallory")
    conversation = create_direct(alice, bob)

    outsider = send(client, auth_headers(mallory), conversation["id"], "let me in")
    assert outsider.status_code == 403
    assert outsider.json()["error"]["message"] == "You are not a participant in this conversation"

    missing = send(client, auth_headers(alice), str(uuid.uuid4()), "anyone?")
    assert missing.status_code == 404

    malformed = send(client, auth_headers(alice), "xyz", "anyone?")
    assert malformed.status_code == 400
    assert malformed.json()["error"]["message"] == "Invalid conversationId"


def test_block_stops_direct_messages_but_not_group(client, make_user, auth_headers, create_direct, create_group, block):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")
    direct = create_direct(alice, bob)
    group = create_group(carol, [alice, bob])
    block(alice, bob)

    blocked = send(client, auth_headers(bob), direct["id"], "hello?")
    assert blocked.status_code == 403
    assert blocked.json()["error"]["message"] == "Cannot send message - blocked"

    blocker = send(client, auth_headers(alice), direct["id"], "go away")
    assert blocker.status_code == 403

    assert send(client, auth_headers(bob), group["id"], "hi all").status_code == 201
    assert send(client, auth_headers(alice), group["id"], "hi").status_code == 201


def test_list_messages_newest_first(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)
    for text in ("first", "second", "third"):
        send(client, auth_headers(alice), conversation["id"], text)

    response = client.get(f"/api/conversations/{conversation['id']}/messages", headers=auth_headers(bob))
    assert response.status_code == 200
    data = response.json()["data"]
    assert [m["content"] for m in data["messages"]] == ["third", "second", "first"]
    assert data["total"] == 3
    assert data["hasMore"] is False
    assert data["cursor"] is None


@pytest.mark.parametrize("total, page_size", [(7, 3), (6, 3), (1, 5), (5, 1)])
def test_cursor_pagination_covers_every_message_once(client, make_user, auth_headers, create_direct, total, page_size):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)
    for i in range(total):
        send(client, auth_headers(alice), conversation["id"], f"message {i}")

    seen_ids = []
    pages = []
    cursor = None
    while True:
        params = {"limit": page_size}
        if cursor:
            params["cursor"] = cursor
        data = client.get(
            f"/api/conversations/{conversation['id']}/messages", params=params, headers=auth_headers(bob)
        ).json()["data"]
        pages.append(data)
        seen_ids.extend(m["id"] for m in data["messages"])
        if not data["hasMore"]:
            break
        cursor = data["cursor"]

    assert len(pages) == math.ceil(total / page_size)
    assert len(seen_ids) == len(set(seen_ids)) == total
    assert seen_ids == sorted(seen_ids, reverse=True)
    assert all(page["hasMore"] for page in pages[:-1])
    assert pages[-1]["cursor"] is None


@pytest.mark.parametrize("limit, expected", [("0", 50), ("-4", 50), ("abc", 50), ("500", 100), ("10", 10)])
def test_limit_is_lenient(client, make_user, auth_headers, create_direct, monkeypatch, limit, expected):
    from app.services import message_service

    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    captured = {}
    original = message_service.parse_limit

    def spy(raw, default, maximum):
        captured["limit"] = original(raw, default, maximum)
        return captured["limit"]

    monkeypatch.setattr(message_service, "parse_limit", spy)
    response = client.get(
        f"/api/conversations/{conversation['id']}/messages", params={"limit": limit}, headers=auth_headers(alice)
    )
    assert response.status_code == 200
    assert captured["limit"] == expected


@pytest.mark.parametrize("cursor", ["abc", "-1", "0", "1.5", "9223372036854775808", "99999999999999999999999"])
def test_invalid_cursor(client, make_user, auth_headers, create_direct, cursor):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    response = client.get(
        f"/api/conversations/{conversation['id']}/messages", params={"cursor": cursor}, headers=auth_headers(alice)
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Invalid cursor format"


def test_list_messages_requires_participant(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    mallory = make_user("mallory")
    conversation = create_direct(alice, bob)

    response = client.get(f"/api/conversations/{conversation['id']}/messages", headers=auth_headers(mallory))
    assert response.status_code == 403
