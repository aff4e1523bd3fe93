"""Tests for user, profile and administration endpoints."""

from fastapi import status

from flare_stage.models import HotspotMember, Post, PostLike, User


def test_list_and_get_users(client, test_user, other_user, auth_token) -> None:
    response = client.get("/api/users", headers=auth_token)
    assert response.status_code == status.HTTP_200_OK
    assert {user["username"] for user in response.json()["users"]} == {"alice", "bob"}

    single = client.get(f"/api/users/{other_user.id}", headers=auth_token)
    assert single.json()["username"] == "bob"
    assert single.json()["bio"] == ""


def test_get_missing_user(client, auth_token) -> None:
    response = client.get("/api/users/9999", headers=auth_token)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"] == "User not found"


def test_update_profile(client, test_user, other_user, auth_token, listen) -> None:
    watcher = listen(other_user)
    response = client.put(
        "/api/users/profile",
        json={"bio": "Night owl", "profilePicture": "https://img.example/me.png"},
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    user = response.json()["user"]
    assert user["bio"] == "Night owl"
    assert user["profilePicture"] == "https://img.example/me.png"

    (frame,) = watcher.events("userProfileUpdate")
    assert frame["data"]["userId"] == test_user.id
    assert frame["data"]["bio"] == "Night owl"


def test_stats_require_admin(client, auth_token) -> None:
    response = client.get("/api/users/stats", headers=auth_token)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "Admin access required"


def test_stats(client, test_user, other_user, admin_auth_token) -> None:
    response = client.get("/api/users/stats", headers=admin_auth_token)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "totalUsers": 3,
        "totalAdmins": 1,
        "onlineUsers": 0,
        "recentSignups": 3,
    }


def test_admin_updates_user(client, other_user, admin_auth_token) -> None:
    response = client.put(
        f"/api/users/{other_user.id}",
        json={"username": "Robert", "isAdmin": True},
        headers=admin_auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["user"]["username"] == "robert"
    assert response.json()["user"]["isAdmin"] is True


def test_admin_update_username_conflict(client, test_user, other_user, admin_auth_token) -> None:
    response = client.put(
        f"/api/users/{other_user.id}",
        json={"username": "alice"},
        headers=admin_auth_token,
    )
    assert response.status_code == status.HTTP_409_CONFLICT


def test_non_admin_cannot_edit_others(client, other_user, auth_token) -> None:
    response = client.put(f"/api/users/{other_user.id}", json={"bio": "x"}, headers=auth_token)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_user_cannot_delete_someone_else(client, other_user, auth_token) -> None:
    response = client.delete(f"/api/users/{other_user.id}", headers=auth_token)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_admin_cannot_delete_admin(client, make_user, admin_auth_token) -> None:
    other_admin = make_user("root2", is_admin=True)
    response = client.delete(f"/api/users/{other_admin.id}", headers=admin_auth_token)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "Cannot delete another admin"


def test_self_delete(client, db_session, other_user, other_auth_token) -> None:
    response = client.delete(f"/api/users/{other_user.id}", headers=other_auth_token)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "User deleted successfully"}
    assert db_session.query(User).filter_by(username="bob").count() == 0

    again = client.get("/api/users", headers=other_auth_token)
    assert again.status_code == status.HTTP_401_UNAUTHORIZED


def test_admin_delete_cascades_through_sets(
    client,
    db_session,
    test_user,
    other_user,
    hotspot,
    test_post,
    other_auth_token,
    admin_auth_token,
    listen,
) -> None:
    client.post(f"/api/hotspots/{hotspot.id}/join", headers=other_auth_token)
    client.post(f"/api/posts/{test_post.id}/like", headers=other_auth_token)
    client.post("/api/posts", json={"content": "bob's post"}, headers=other_auth_token)
    client.post(f"/api/posts/{test_post.id}/reply", json={"content": "bye"}, headers=other_auth_token)
    watcher = listen(test_user)

    response = client.delete(f"/api/users/{other_user.id}", headers=admin_auth_token)
    assert response.status_code == status.HTTP_200_OK

    assert db_session.query(HotspotMember).count() == 0
    assert db_session.query(PostLike).count() == 0
    assert [post.id for post in db_session.query(Post).all()] == [test_post.id]

    assert watcher.events("hotspotJoinUpdate")[0]["data"]["joinedCount"] == 0
    assert watcher.events("postLikeUpdate")[0]["data"]["likeCount"] == 0
    assert len(watcher.events("postDeleted")) == 1
    assert watcher.events("userDeleted")[0]["data"] == {"userId": other_user.id}

    post = client.get("/api/posts", headers=admin_auth_token).json()["posts"][0]
    assert post["replyCount"] == 0
