"""Tests for the WebSocket event channel."""

import asyncio

import pytest
from fastapi import status
from fastapi.websockets import WebSocketDisconnect

from flare_stage.core.security import create_access_token
from flare_stage.services import user_service
from flare_stage.services.broadcaster import Audience, EventType, get_broadcaster, post_room


def _ws_url(user) -> str:
    return f"/ws?token={create_access_token(user.id)}"


def _sync(ws) -> None:
    """Round-trip one frame so the server has finished registering the socket."""
    ws.send_json({"event": "ping"})
    assert ws.receive_json()["event"] == "error"


def test_rejects_missing_or_bad_token(client) -> None:
    for url in ("/ws", "/ws?token=garbage"):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(url):
                pass
        assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_accepts_bearer_header(client, test_user) -> None:
    headers = {"Authorization": f"Bearer {create_access_token(test_user.id)}"}
    with client.websocket_connect("/ws", headers=headers) as ws:
        ws.send_json({"event": "bogus"})
        assert ws.receive_json()["event"] == "error"


def test_presence_is_announced_to_others(client, db_session, test_user, other_user) -> None:
    with client.websocket_connect(_ws_url(other_user)) as bob:
        _sync(bob)
        with client.websocket_connect(_ws_url(test_user)) as alice:
            _sync(alice)
            online = bob.receive_json()
            assert online == {
                "event": "userOnline",
                "data": {"userId": test_user.id, "username": "alice", "isOnline": True},
            }

        offline = bob.receive_json()
        assert offline["event"] == "userOffline"
        assert offline["data"]["userId"] == test_user.id
        assert offline["data"]["isOnline"] is False

    db_session.refresh(test_user)
    assert test_user.is_online is False


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_presence_writes_run_off_the_event_loop(client, monkeypatch, test_user) -> None:
    calls = []
    set_presence = user_service.set_presence

    def recording_set_presence(db, user, *, online):
        calls.append((online, _on_event_loop()))
        return set_presence(db, user, online=online)

    monkeypatch.setattr(user_service, "set_presence", recording_set_presence)
    with client.websocket_connect(_ws_url(test_user)) as ws:
        _sync(ws)

    assert calls == [(True, False), (False, False)]


def test_typing_reaches_only_the_recipient(client, test_user, other_user) -> None:
    with client.websocket_connect(_ws_url(other_user)) as bob:
        _sync(bob)
        with client.websocket_connect(_ws_url(test_user)) as alice:
            assert bob.receive_json()["event"] == "userOnline"

            alice.send_json({"event": "typing", "data": {"recipientId": other_user.id}})
            assert bob.receive_json() == {
                "event": "userTyping",
                "data": {"userId": test_user.id, "username": "alice", "isTyping": True},
            }

            alice.send_json({"event": "stopTyping", "data": {"recipientId": other_user.id}})
            assert bob.receive_json()["data"]["isTyping"] is False


def test_unknown_and_malformed_frames_get_error(client, test_user) -> None:
    with client.websocket_connect(_ws_url(test_user)) as ws:
        ws.send_json({"event": "dance"})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Unknown event: dance"}}

        ws.send_text("{not json")
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"event": "joinPostRoom", "data": {"postId": "abc"}})
        assert ws.receive_json()["data"]["message"] == "postId must be an integer"


def test_post_room_subscription(client, test_user, test_post) -> None:
    with client.websocket_connect(_ws_url(test_user)) as ws:
        ws.send_json({"event": "joinPostRoom", "data": test_post.id})
        # Frames are handled in order, so the join has been applied once this returns.
        _sync(ws)

        delivered = get_broadcaster().publish(
            EventType.NEW_REPLY, {"postId": test_post.id}, Audience.topic(post_room(test_post.id))
        )
        assert delivered == 1
        assert ws.receive_json() == {"event": "newReply", "data": {"postId": test_post.id}}


def test_http_write_reaches_socket(client, test_user, test_post, other_auth_token) -> None:
    with client.websocket_connect(_ws_url(test_user)) as ws:
        _sync(ws)
        client.post(f"/api/posts/{test_post.id}/like", headers=other_auth_token)
        frame = ws.receive_json()
        assert frame["event"] == "postLikeUpdate"
        assert frame["data"]["likeCount"] == 1


def test_logout_keeps_connected_user_online(client, db_session, test_user, auth_token) -> None:
    with client.websocket_connect(_ws_url(test_user)) as ws:
        _sync(ws)
        response = client.post("/api/auth/logout", headers=auth_token)
        assert response.status_code == status.HTTP_200_OK
        db_session.refresh(test_user)
        assert test_user.is_online is True
