from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from taskforce.services import admins
from taskforce.services.database import RepositoryConstraintError, RepositoryValidationError

from conftest import bearer
from fakes import InMemoryDatabase


def test_superadmin_manages_admin_emails(client: TestClient, database: InMemoryDatabase) -> None:
    added = client.post("/api/admin/admin-emails", json={"email": " New.Admin@Example.org "}, headers=bearer("superadmin-token"))

    assert added.status_code == 201
    assert added.json()["data"]["email"] == "new.admin@example.org"

    listed = client.get("/api/admin/admin-emails", headers=bearer("superadmin-token"))
    assert [row["email"] for row in listed.json()["data"]] == ["new.admin@example.org"]

    removed = client.delete("/api/admin/admin-emails/new.admin@example.org", headers=bearer("superadmin-token"))
    assert removed.status_code == 200
    assert database.rows("admin_emails") == []


def test_duplicate_admin_email_conflicts(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("admin_emails", {"email": "a@example.org"})

    response = client.post("/api/admin/admin-emails", json={"email": "A@example.org"}, headers=bearer("superadmin-token"))

    assert response.status_code == 409
    assert response.json() == {"error": "a@example.org is already an admin"}


def test_plain_admin_cannot_manage_admins(client: TestClient, database: InMemoryDatabase) -> None:
    response = client.post("/api/admin/admin-emails", json={"email": "x@example.org"}, headers=bearer("admin-token"))

    assert response.status_code == 403
    assert database.rows("admin_emails") == []


def test_removing_unknown_admin_is_not_found(client: TestClient) -> None:
    response = client.delete("/api/admin/admin-emails/ghost@example.org", headers=bearer("superadmin-token"))

    assert response.status_code == 404


def test_removing_last_admin_surfaces_trigger_message(client: TestClient, database: InMemoryDatabase) -> None:
    database.seed("admin_emails", {"email": "only@example.org"})
    database.fail_on("admin_emails", "delete", RepositoryConstraintError("cannot remove the last admin"))

    response = client.delete("/api/admin/admin-emails/only@example.org", headers=bearer("superadmin-token"))

    assert response.status_code == 400
    assert response.json() == {"error": "cannot remove the last admin"}
    assert len(database.rows("admin_emails")) == 1


def test_set_superadmin_email(client: TestClient, database: InMemoryDatabase) -> None:
    database.rows("app_settings").append({"id": True, "superadmin_email": "root@example.org"})

    response = client.post(
        "/api/admin/superadmin-email", json={"email": "Next@Example.org"}, headers=bearer("superadmin-token")
    )

    assert response.status_code == 200
    assert response.json()["data"]["email"] == "next@example.org"
    assert database.rows("app_settings")[0]["superadmin_email"] == "next@example.org"


def test_normalize_email() -> None:
    assert admins.normalize_email("  Mixed@Case.ORG ") == "mixed@case.org"
    with pytest.raises(RepositoryValidationError):
        admins.normalize_email("not-an-email")
