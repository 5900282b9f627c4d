import uuid

from app.models import ConversationParticipant, MessageSeen


def post_message(client, headers, conversation_id, content):
    response = client.post(f"/api/conversations/{conversation_id}/messages", data={"content": content}, headers=headers)
    assert response.status_code == 201
    return response.json()["data"]


def test_mark_seen_resets_counter_and_marks_messages(client, db, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)
    post_message(client, auth_headers(alice), conversation["id"], "one")
    post_message(client, auth_headers(alice), conversation["id"], "two")
    post_message(client, auth_headers(bob), conversation["id"], "mine")

    response = client.put(f"/api/conversations/{conversation['id']}/seen", headers=auth_headers(bob))
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Conversation marked as seen"
    assert body["data"] == {"unreadCount": 0, "markedCount": 2}

    db.expire_all()
    link = db.get(ConversationParticipant, (uuid.UUID(conversation["id"]), bob.id))
    assert link.unread_count == 0

    messages = client.get(
        f"/api/conversations/{conversation['id']}/messages", headers=auth_headers(alice)
    ).json()["data"]["messages"]
    by_content = {m["content"]: m for m in messages}
    assert by_content["one"]["status"] == "seen"
    assert [entry["userId"] for entry in by_content["two"]["seenBy"]] == [str(bob.id)]
    # Bob's own message is untouched
    assert by_content["mine"]["status"] == "sent"
    assert by_content["mine"]["seenBy"] == []


def test_mark_seen_is_idempotent(client, db, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)
    post_message(client, auth_headers(alice), conversation["id"], "hello")

    first = client.put(f"/api/conversations/{conversation['id']}/seen", headers=auth_headers(bob))
    second = client.put(f"/api/conversations/{conversation['id']}/seen", headers=auth_headers(bob))

    assert first.json()["data"]["markedCount"] == 1
    assert second.json()["data"] == {"unreadCount": 0, "markedCount": 0}
    assert db.query(MessageSeen).filter(MessageSeen.user_id == bob.id).count() == 1


def test_group_seen_by_accumulates_in_order(client, make_user, auth_headers, create_group):
    admin, bob, carol = (make_user(n) for n in ("admin", "bob", "carol"))
    group = create_group(admin, [bob, carol])
    post_message(client, auth_headers(admin), group["id"], "announcement")

    client.put(f"/api/conversations/{group['id']}/seen", headers=auth_headers(carol))
    client.put(f"/api/conversations/{group['id']}/seen", headers=auth_headers(bob))

    message = client.get(
        f"/api/conversations/{group['id']}/messages", headers=auth_headers(admin)
    ).json()["data"]["messages"][0]
    assert [entry["userId"] for entry in message["seenBy"]] == [str(carol.id), str(bob.id)]


def test_mark_seen_notifies_other_participants(client, make_user, auth_headers, create_group, notifier):
    admin, bob, carol = (make_user(n) for n in ("admin", "bob", "carol"))
    group = create_group(admin, [bob, carol])

    client.put(f"/api/conversations/{group['id']}/seen", headers=auth_headers(bob))

    events = notifier.of_type("message:seen")
    assert sorted(user_id for user_id, _, _ in events) == sorted([str(admin.id), str(carol.id)])
    assert all(payload["userId"] == str(bob.id) for _, _, payload in events)
    assert all(payload["conversationId"] == group["id"] for _, _, payload in events)


def test_mark_seen_event_uses_stored_conversation_id(client, make_user, auth_headers, create_direct, notifier):
    alice = make_user("alice")
    bob = make_user("bob")
    conversation = create_direct(alice, bob)

    response = client.put(f"/api/conversations/{conversation['id'].upper()}/seen", headers=auth_headers(bob))
    assert response.status_code == 200

    events = notifier.of_type("message:seen")
    assert [user_id for user_id, _, _ in events] == [str(alice.id)]
    assert events[0][2]["conversationId"] == conversation["id"]


def test_mark_seen_requires_participant(client, make_user, auth_headers, create_direct):
    alice = make_user("alice")
    bob = make_user("bob")
    mallory = make_user("mallory")
    conversation = create_direct(alice, bob)

    response = client.put(f"/api/conversations/{conversation['id']}/seen", headers=auth_headers(mallory))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "NOT_PARTICIPANT"
