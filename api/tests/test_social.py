from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import OTHER_USER_ID, USER_ID, bearer
from fakes import InMemoryDatabase

ORG_ID = "22222222-2222-2222-2222-222222222222"
UPDATE_ID = "55555555-5555-5555-5555-555555555555"
ISSUE_ID = "44444444-4444-4444-4444-444444444444"


@pytest.fixture
def comments(database: InMemoryDatabase) -> list[dict]:
    database.seed(
        "profiles",
        {"id": USER_ID, "first_name": "Amina", "last_name": "Otieno"},
        {"id": OTHER_USER_ID, "first_name": None, "last_name": None},
    )
    return database.seed(
        "update_comments",
        {"update_id": UPDATE_ID, "author_user_id": USER_ID, "body": "Great progress"},
        {"update_id": UPDATE_ID, "author_user_id": OTHER_USER_ID, "body": "When is the next phase?"},
        {"update_id": "66666666-6666-6666-6666-666666666666", "author_user_id": USER_ID, "body": "Elsewhere"},
    )


def test_create_feed_post(client: TestClient, database: InMemoryDatabase) -> None:
    response = client.post(
        "/api/feed-posts",
        json={"content": "  Planted 200 mangroves today  ", "entity_type": "issue", "entity_id": ISSUE_ID},
        headers=bearer("user-token"),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["content"] == "Planted 200 mangroves today"
    assert data["created_by"] == USER_ID
    assert data["author_organisation_id"] is None
    assert data["entity_type"] == "issue"
    assert data["entity_id"] == ISSUE_ID
    assert data["visibility"] == "public"
    assert database.rows("feed_posts")[0]["id"] == data["id"]


def test_feed_post_validation(client: TestClient, database: InMemoryDatabase) -> None:
    blank = client.post("/api/feed-posts", json={"content": "   "}, headers=bearer("user-token"))
    half_entity = client.post(
        "/api/feed-posts", json={"content": "Hello", "entity_type": "project"}, headers=bearer("user-token")
    )
    unknown_kind = client.post(
        "/api/feed-posts",
        json={"content": "Hello", "entity_type": "event", "entity_id": ISSUE_ID},
        headers=bearer("user-token"),
    )

    assert blank.status_code == 400
    assert half_entity.status_code == 400
    assert half_entity.json()["error"]["field_errors"] == [
        {"field": "entity_id", "message": "entity_type and entity_id must be provided together"}
    ]
    assert unknown_kind.status_code == 400
    assert database.rows("feed_posts") == []


def test_feed_post_requires_session(client: TestClient) -> None:
    assert client.post("/api/feed-posts", json={"content": "Hello"}).status_code == 401


def test_posting_as_organisation_needs_feed_permission(client: TestClient, database: InMemoryDatabase) -> None:
    payload = {"content": "Our annual report is out", "author_organisation_id": ORG_ID}

    outsider = client.post("/api/feed-posts", json=payload, headers=bearer("user-token"))
    database.seed(
        "organisation_members",
        {"organisation_id": ORG_ID, "user_id": USER_ID, "role": "member", "can_post_feed": False},
        {"organisation_id": ORG_ID, "user_id": OTHER_USER_ID, "role": "member", "can_post_feed": True},
    )
    member = client.post("/api/feed-posts", json=payload, headers=bearer("user-token"))
    poster = client.post("/api/feed-posts", json=payload, headers=bearer("other-token"))

    assert outsider.status_code == 403
    assert outsider.json() == {"error": "You do not have permission to post as this organisation"}
    assert member.status_code == 403
    assert poster.status_code == 201
    assert poster.json()["data"]["author_organisation_id"] == ORG_ID
    assert len(database.rows("feed_posts")) == 1


def test_organisation_owner_may_post(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("organisation_members", {"organisation_id": ORG_ID, "user_id": USER_ID, "role": "owner"})

    response = client.post(
        "/api/feed-posts",
        json={"content": "Welcome", "author_organisation_id": ORG_ID},
        headers=bearer("user-token"),
    )

    assert response.status_code == 201


def test_like_is_idempotent_and_unlike_removes_it(client: TestClient, database: InMemoryDatabase) -> None:
    first = client.post(f"/api/updates/{UPDATE_ID}/like", headers=bearer("user-token"))
    second = client.post(f"/api/updates/{UPDATE_ID}/like", headers=bearer("user-token"))
    client.post(f"/api/updates/{UPDATE_ID}/like", headers=bearer("other-token"))

    assert first.json() == second.json() == {"data": {"ok": True}}
    assert sorted(row["user_id"] for row in database.rows("update_likes")) == [USER_ID, OTHER_USER_ID]

    removed = client.delete(f"/api/updates/{UPDATE_ID}/like", headers=bearer("user-token"))
    again = client.delete(f"/api/updates/{UPDATE_ID}/like", headers=bearer("user-token"))

    assert removed.status_code == again.status_code == 200
    assert [row["user_id"] for row in database.rows("update_likes")] == [OTHER_USER_ID]


def test_like_requires_session_and_valid_id(client: TestClient, database: InMemoryDatabase) -> None:
    assert client.post(f"/api/updates/{UPDATE_ID}/like").status_code == 401
    assert client.post("/api/updates/not-a-uuid/like", headers=bearer("user-token")).status_code == 400
    assert database.rows("update_likes") == []


def test_list_comments_names_authors_and_flags_own(client: TestClient, comments: list[dict]) -> None:
    response = client.get(f"/api/updates/{UPDATE_ID}/comments", headers=bearer("user-token"))

    assert response.status_code == 200
    data = response.json()["data"]
    assert [(row["authorName"], row["body"], row["canDelete"]) for row in data] == [
        ("Amina Otieno", "Great progress", True),
        ("Anonymous", "When is the next phase?", False),
    ]
    assert data[0]["id"] == comments[0]["id"]
    assert "createdAt" in data[0]


def test_list_comments_anonymously(client: TestClient, comments: list[dict]) -> None:
    response = client.get(f"/api/updates/{UPDATE_ID}/comments")

    assert response.status_code == 200
    assert [row["canDelete"] for row in response.json()["data"]] == [False, False]


def test_add_comment(client: TestClient, database: InMemoryDatabase) -> None:
    response = client.post(
        f"/api/updates/{UPDATE_ID}/comments", json={"body": "  Count me in  "}, headers=bearer("other-token")
    )
    blank = client.post(f"/api/updates/{UPDATE_ID}/comments", json={"body": " "}, headers=bearer("other-token"))
    anonymous = client.post(f"/api/updates/{UPDATE_ID}/comments", json={"body": "Hi"})

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["update_id"] == UPDATE_ID
    assert data["author_user_id"] == OTHER_USER_ID
    assert data["body"] == "Count me in"
    assert blank.status_code == 400
    assert anonymous.status_code == 401
    assert len(database.rows("update_comments")) == 1


def test_delete_comment_permissions(client: TestClient, database: InMemoryDatabase, comments: list[dict]) -> None:
    own, foreign, _ = comments

    stranger = client.delete(f"/api/comments/{own['id']}", headers=bearer("other-token"))
    assert stranger.status_code == 403
    assert stranger.json() == {"error": "Forbidden"}

    author = client.delete(f"/api/comments/{own['id']}", headers=bearer("user-token"))
    assert author.json() == {"data": {"ok": True}}

    missing = client.delete(f"/api/comments/{own['id']}", headers=bearer("user-token"))
    assert missing.status_code == 404
    assert missing.json() == {"error": "Comment not found"}

    moderator = client.delete(f"/api/comments/{foreign['id']}", headers=bearer("admin-token"))
    assert moderator.status_code == 200
    assert [row["body"] for row in database.rows("update_comments")] == ["Elsewhere"]
