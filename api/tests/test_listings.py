from __future__ import annotations

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from taskforce.core.config import Settings, get_settings
from taskforce.services import listings
from taskforce.services.query import table

from conftest import USER_ID, bearer
from fakes import InMemoryDatabase


def _project(name: str, status: str = "approved", **extra) -> dict:
    return {"name": name, "status": status, "slug": name.lower().replace(" ", "-"), "created_by": USER_ID} | extra


def test_projects_list_only_shows_approved(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "projects",
        _project("Solar Pumps", category="environmental"),
        _project("Flood Shelters", category="humanitarian"),
        _project("Hidden Draft", status="pending"),
    )

    response = client.get("/api/projects")

    assert response.status_code == 200
    data = response.json()["data"]
    assert {row["name"] for row in data["rows"]} == {"Solar Pumps", "Flood Shelters"}
    assert data["totalCount"] == 2
    assert data["page"] == 1
    assert data["pageCount"] == 1
    assert data["view"] == "table"
    assert data["markers"] is None


def test_projects_default_sort_is_newest_first(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("projects", _project("First"), _project("Second"), _project("Third"))

    rows = client.get("/api/projects").json()["data"]["rows"]
    ascending = client.get("/api/projects?sort=name&dir=asc").json()["data"]["rows"]

    assert [row["name"] for row in rows] == ["Third", "Second", "First"]
    assert [row["name"] for row in ascending] == ["First", "Second", "Third"]


def test_projects_search_and_filters(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "projects",
        _project("Solar Pumps", category="environmental", country="Kenya", thematic_area=["water", "energy"]),
        _project("Solar Schools", category="humanitarian", country="Ghana", thematic_area=["education"]),
        _project("Mangrove Belt", category="environmental", place_name="Solar Bay", country="Kenya"),
    )

    search = client.get("/api/projects?q=solar").json()["data"]
    by_type_alias = client.get("/api/projects?type=humanitarian").json()["data"]
    by_country_and_theme = client.get("/api/projects?country=Kenya&thematic_area=water").json()["data"]

    assert search["totalCount"] == 3
    assert [row["name"] for row in by_type_alias["rows"]] == ["Solar Schools"]
    assert [row["name"] for row in by_country_and_theme["rows"]] == ["Solar Pumps"]


def test_search_escapes_like_wildcards(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("projects", _project("100% Solar"), _project("1000 Trees"))

    data = client.get("/api/projects", params={"q": "100%"}).json()["data"]

    assert [row["name"] for row in data["rows"]] == ["100% Solar"]


def test_unparseable_numbers_are_ignored(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("projects", _project("Cheap", amount_needed=100.0), _project("Pricey", amount_needed=5000.0))

    filtered = client.get("/api/projects?min_needed=1000").json()["data"]
    ignored = client.get("/api/projects?min_needed=lots&page=abc").json()["data"]

    assert [row["name"] for row in filtered["rows"]] == ["Pricey"]
    assert ignored["totalCount"] == 2
    assert ignored["page"] == 1


def test_pagination(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("projects", *(_project(f"Project {index:02d}") for index in range(30)))

    first = client.get("/api/projects").json()["data"]
    second = client.get("/api/projects?page=2").json()["data"]
    beyond = client.get("/api/projects?page=9").json()["data"]

    assert len(first["rows"]) == 25
    assert first["pageCount"] == 2
    assert len(second["rows"]) == 5
    assert second["page"] == 2
    assert beyond["rows"] == []
    assert beyond["totalCount"] == 30


def test_include_own_shows_callers_pending_rows(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("projects", _project("Mine", status="pending"), _project("Public"))

    anonymous = client.get("/api/projects?include_own=1").json()["data"]
    own = client.get("/api/projects?include_own=1", headers=bearer("user-token")).json()["data"]
    other = client.get("/api/projects?include_own=1", headers=bearer("other-token")).json()["data"]

    assert anonymous["totalCount"] == 1
    assert own["totalCount"] == 2
    assert other["totalCount"] == 1


def test_backend_failure_degrades_to_empty_page(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("projects", _project("Solar Pumps"))
    database.unavailable = True

    response = client.get("/api/projects?page=3")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["rows"] == []
    assert data["totalCount"] == 0
    assert data["page"] == 3
    assert data["pageCount"] == 1


def test_unknown_listing_is_not_found(client: TestClient) -> None:
    response = client.get("/api/widgets")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_map_view_requires_map_token(
    client: TestClient, database: InMemoryDatabase, monkeypatch: pytest.MonkeyPatch
) -> None:
    database.seed("projects", _project("Mapped", lat=1.5, lng=36.8), _project("Unmapped"))

    table_view = client.get("/api/projects?view=map").json()["data"]
    monkeypatch.setenv("SPT_MAPBOX_TOKEN", "pk.test")
    get_settings.cache_clear()
    map_view = client.get("/api/projects?view=map").json()["data"]

    assert table_view["view"] == "table"
    assert table_view["markers"] is None
    assert map_view["view"] == "map"
    assert [marker["name"] for marker in map_view["markers"]] == ["Mapped"]
    assert map_view["totalCount"] == 2


def test_markers_endpoint_skips_rows_without_coordinates(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "watchdog_issues",
        {"title": "Spill", "status": "approved", "latitude": 10.0, "longitude": 20.0, "urgency": 5},
        {"title": "Pending spill", "status": "pending", "latitude": 11.0, "longitude": 21.0},
        {"title": "Nowhere", "status": "approved", "latitude": None, "longitude": None},
    )

    response = client.get("/api/watchdog-issues/markers")

    assert response.status_code == 200
    assert [marker["title"] for marker in response.json()["data"]] == ["Spill"]


def test_grants_default_to_open_calls(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "grants",
        {"title": "Open Call", "status": "open", "moderation_status": "approved", "amount_min": 1000, "amount_max": 5000},
        {"title": "Closed Call", "status": "closed", "moderation_status": "approved"},
        {"title": "Unreviewed", "status": "open", "moderation_status": "pending"},
    )

    default = client.get("/api/grants").json()["data"]
    everything = client.get("/api/grants?status=all").json()["data"]

    assert [row["title"] for row in default["rows"]] == ["Open Call"]
    assert {row["title"] for row in everything["rows"]} == {"Open Call", "Closed Call"}


def test_grant_amount_range_overlaps(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "grants",
        {"title": "Small", "status": "open", "moderation_status": "approved", "amount_min": 100, "amount_max": 900},
        {"title": "Large", "status": "open", "moderation_status": "approved", "amount_min": 50000, "amount_max": 90000},
    )

    data = client.get("/api/grants?amount_min=500&amount_max=2000").json()["data"]

    assert [row["title"] for row in data["rows"]] == ["Small"]


def test_grant_upcoming_only_keeps_rolling_deadlines(client: TestClient, database: InMemoryDatabase) -> None:
    today = date.today()
    database.seed(
        "grants",
        {"title": "Past", "status": "open", "moderation_status": "approved", "deadline": today - timedelta(days=30)},
        {"title": "Soon", "status": "open", "moderation_status": "approved", "deadline": today + timedelta(days=30)},
        {"title": "Rolling", "status": "open", "moderation_status": "approved", "deadline": None},
    )

    data = client.get("/api/grants?upcoming_only=true").json()["data"]

    assert [row["title"] for row in data["rows"]] == ["Soon", "Rolling"]


def test_organisations_sort_nulls_last(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "organisations_directory_v1",
        {"name": "Quiet", "verification_status": "verified", "followers_count": None},
        {"name": "Popular", "verification_status": "verified", "followers_count": 40},
        {"name": "Niche", "verification_status": "verified", "followers_count": 3},
        {"name": "Unverified", "verification_status": "pending", "followers_count": 99},
    )

    rows = client.get("/api/organisations").json()["data"]["rows"]

    assert [row["name"] for row in rows] == ["Popular", "Niche", "Quiet"]


def test_filter_options_are_distinct_and_sorted(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed(
        "watchdog_issues",
        {"title": "A", "status": "approved", "country": "Kenya", "global_challenges": ["water", "heat"]},
        {"title": "B", "status": "approved", "country": " Chile ", "global_challenges": ["water"]},
        {"title": "C", "status": "pending", "country": "Peru", "global_challenges": ["fire"]},
    )

    response = client.get("/api/watchdog-issues/filter-options")

    assert response.status_code == 200
    options = response.json()["data"]
    assert options["country"] == ["Chile", "Kenya"]
    assert options["global_challenges"] == ["heat", "water"]
    assert options["region"] == []


def test_apply_filters_drops_blank_and_invalid_values() -> None:
    query = listings.apply_filters(
        table("projects").select(),
        listings.PROJECTS,
        {"country": ["", " "], "min_lives": ["2.5"], "start_from": ["not-a-date"], "q": ["  "]},
    )

    assert [(item.column, item.op) for item in query.filters] == [("status", "eq")]


def test_parsers() -> None:
    raw = {"tags": ["a,b", "b , c"], "page": ["2.7"], "dir": ["ASC"], "flag": ["Yes"], "n": ["inf"]}

    assert listings.parse_string_list(raw, "tags") == ["a", "b", "c"]
    assert listings.parse_page(raw) == 2
    assert listings.parse_page({"page": ["-4"]}) == 1
    assert listings.parse_dir(raw, True) is False
    assert listings.parse_bool(raw, "flag") is True
    assert listings.parse_number(raw, "n") is None
    assert listings.parse_sort({"sort": ["drop table"]}, ("name",), "created_at") == "created_at"


def test_resolve_view() -> None:
    assert listings.resolve_view({"view": ["map"]}, Settings(mapbox_token=None)) == "table"
    assert listings.resolve_view({"view": ["map"]}, Settings(mapbox_token="pk.x")) == "map"
    assert listings.resolve_view({}, Settings(mapbox_token="pk.x")) == "table"
