from __future__ import annotations

from typing import Any

import pytest
from fastapi import HTTPException, status
from fastapi.testclient import TestClient

import taskforce.core.security as security
from taskforce.core.config import get_settings
from taskforce.main import app
from taskforce.services.database import get_database

from fakes import InMemoryDatabase

ADMIN_ID = "00000000-0000-0000-0000-00000000a001"
SUPERADMIN_ID = "00000000-0000-0000-0000-00000000a002"
USER_ID = "00000000-0000-0000-0000-00000000b001"
OTHER_USER_ID = "00000000-0000-0000-0000-00000000b002"

USERS: dict[str, dict[str, Any]] = {
    "admin-token": {"id": ADMIN_ID, "email": "admin@example.org"},
    "superadmin-token": {"id": SUPERADMIN_ID, "email": "root@example.org"},
    "user-token": {"id": USER_ID, "email": "user@example.org"},
    "other-token": {"id": OTHER_USER_ID, "email": "other@example.org"},
}


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def database() -> InMemoryDatabase:
    fake = InMemoryDatabase()
    fake.admin_ids.add(ADMIN_ID)
    fake.superadmin_ids.add(SUPERADMIN_ID)
    return fake


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, database: InMemoryDatabase) -> TestClient:
    monkeypatch.setenv("SPT_SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SPT_SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.delenv("SPT_MAPBOX_TOKEN", raising=False)
    get_settings.cache_clear()

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        user = USERS.get(token)
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_database] = lambda: database

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()
