from __future__ import annotations

from fastapi.testclient import TestClient

from taskforce.services import notifications

from conftest import OTHER_USER_ID, USER_ID, bearer
from fakes import InMemoryDatabase


def _seed_notifications(database: InMemoryDatabase) -> list[dict]:
    return database.seed(
        "notifications",
        {"user_id": USER_ID, "type": "follow", "title": "New follower", "read_at": None},
        {"user_id": USER_ID, "type": "approval", "title": "Project approved", "read_at": None},
        {"user_id": OTHER_USER_ID, "type": "follow", "title": "Not yours", "read_at": None},
    )


def test_notifications_are_scoped_and_newest_first(client: TestClient, database: InMemoryDatabase) -> None:
    _seed_notifications(database)

    response = client.get("/api/notifications", headers=bearer("user-token"))

    assert response.status_code == 200
    assert [row["title"] for row in response.json()["data"]] == ["Project approved", "New follower"]


def test_notifications_require_session(client: TestClient) -> None:
    assert client.get("/api/notifications").status_code == 401
    assert client.post("/api/notifications/read-all").status_code == 401


def test_mark_one_and_all_read(client: TestClient, database: InMemoryDatabase) -> None:
    first, second, foreign = _seed_notifications(database)

    one = client.post(f"/api/notifications/{first['id']}/read", headers=bearer("user-token"))
    assert one.status_code == 200
    assert first["read_at"] is not None
    assert second["read_at"] is None

    everything = client.post("/api/notifications/read-all", headers=bearer("user-token"))
    assert everything.json() == {"data": {"ok": True}}
    assert second["read_at"] is not None
    assert foreign["read_at"] is None


def test_home_stats_shape_and_cache_header(client: TestClient, database: InMemoryDatabase) -> None:
    database.home_stats_rows = [
        {
            "updated_at": "2025-03-01T00:00:00+00:00",
            "projects_approved": 12,
            "projects_ongoing": "7",
            "organisations_registered": None,
            "donations_received_eur": "1520.50",
            "opportunities_total": 4,
            "funders_registered": 2,
            "open_calls": "NaN",
            "issues_total": 9,
            "issues_open": 3,
        }
    ]

    response = client.get("/api/home-stats")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, s-maxage=600, stale-while-revalidate=3600"
    data = response.json()["data"]
    assert data["projects"] == {
        "projects_approved": 12,
        "projects_ongoing": 7,
        "organisations_registered": 0,
        "donations_received_eur": 1520.5,
    }
    assert data["funding"]["open_calls"] == 0
    assert data["issues"] == {"issues_total": 9, "issues_open": 3}


def test_home_stats_upstream_failure(client: TestClient, database: InMemoryDatabase) -> None:
    response = client.get("/api/home-stats")

    assert response.status_code == 500
    assert response.json() == {"error": "Home stats are not available"}


def test_home_markers_are_capped_and_degrade(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "projects",
        *({"name": f"P{index}", "status": "approved", "lat": 1.0, "lng": 2.0} for index in range(130)),
    )
    database.seed(
        "grants",
        {"title": "Open", "status": "open", "moderation_status": "approved", "latitude": 5.0, "longitude": 6.0},
    )

    response = client.get("/api/home-markers")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, s-maxage=600, stale-while-revalidate=3600"
    data = response.json()["data"]
    assert len(data["projectMarkers"]) == 120
    assert data["projectMarkers"][0]["name"] == "P129"
    assert [marker["title"] for marker in data["grantMarkers"]] == ["Open"]
    assert data["issueMarkers"] == []


def test_home_markers_when_backend_is_down(client: TestClient, database: InMemoryDatabase) -> None:
    database.unavailable = True

    response = client.get("/api/home-markers")

    assert response.status_code == 200
    assert response.json()["data"] == {"projectMarkers": [], "grantMarkers": [], "issueMarkers": []}


def test_shape_home_stats_handles_missing_fields() -> None:
    stats = notifications.shape_home_stats({})

    assert stats["updated_at"] is None
    assert stats["projects"]["projects_approved"] == 0
    assert set(stats) == {"updated_at", "projects", "funding", "issues"}


def test_mark_read_with_malformed_id(client: TestClient, database: InMemoryDatabase) -> None:
    _seed_notifications(database)

    response = client.post("/api/notifications/not-a-uuid/read", headers=bearer("user-token"))

    assert response.status_code == 400
    assert response.json()["error"]["field_errors"][0]["field"] == "notification_id"
    assert all(row["read_at"] is None for row in database.rows("notifications"))
