from __future__ import annotations

import logging
import re
from typing import Any

from taskforce.services.database import (
    DatabaseSession,
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    is_superadmin,
)
from taskforce.services.query import table

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    email = value.strip().lower()
    if not EMAIL_RE.match(email):
        raise RepositoryValidationError("Invalid payload", [{"field": "email", "message": "must be a valid email"}])
    return email


async def _require_superadmin(session: DatabaseSession) -> None:
    if not await is_superadmin(session):
        raise RepositoryForbiddenError("Forbidden")


async def list_admin_emails(session: DatabaseSession) -> list[dict[str, Any]]:
    await _require_superadmin(session)
    result = await session.execute(table("admin_emails").select(("email", "added_at")).order("added_at"))
    return result.rows


async def add_admin_email(session: DatabaseSession, email: str, actor_id: str) -> dict[str, Any]:
    normalized = normalize_email(email)
    await _require_superadmin(session)
    try:
        result = await session.execute(
            table("admin_emails").insert({"email": normalized}).returning(("email", "added_at"))
        )
    except RepositoryConflictError as exc:
        raise RepositoryConflictError(f"{normalized} is already an admin") from exc
    logger.info("admin email added email=%s by=%s", normalized, actor_id)
    return result.rows[0]


async def remove_admin_email(session: DatabaseSession, email: str, actor_id: str) -> None:
    """Removing the last admin is refused by a database trigger, surfaced as a constraint error."""
    normalized = normalize_email(email)
    await _require_superadmin(session)
    result = await session.execute(
        table("admin_emails").delete().eq("email", normalized).returning(("email",))
    )
    if not result.rows:
        raise RepositoryNotFoundError(f"{normalized} is not an admin")
    logger.info("admin email removed email=%s by=%s", normalized, actor_id)


async def set_superadmin_email(session: DatabaseSession, email: str, actor_id: str) -> dict[str, Any]:
    normalized = normalize_email(email)
    await _require_superadmin(session)
    result = await session.execute(
        table("app_settings").update({"superadmin_email": normalized}).eq("id", True).returning(("superadmin_email",))
    )
    row = result.first()
    if row is None:
        raise RepositoryNotFoundError("app settings row is missing")
    logger.info("superadmin email changed email=%s by=%s", normalized, actor_id)
    return {"email": row["superadmin_email"]}
