from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from taskforce.schemas.organisations import OrganisationCreateRequest
from taskforce.services.database import (
    DatabaseSession,
    RepositoryConflictError,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from taskforce.services.query import escape_like, table
from taskforce.services.submissions import validate_payload

logger = logging.getLogger(__name__)

PERMISSIONS = (
    "can_create_projects",
    "can_create_funding",
    "can_create_issues",
    "can_post_feed",
    "can_manage_members",
)
SEARCH_LIMIT = 10
MEMBER_COLUMNS = ("user_id", "role", *PERMISSIONS, "created_at")
REQUEST_COLUMNS = (
    "id",
    "organisation_id",
    "user_id",
    "status",
    "message",
    "admin_notes",
    "reviewed_at",
    "reviewed_by",
    "created_at",
)


async def create_organisation(session: DatabaseSession, payload: Any, user_id: str) -> dict[str, Any]:
    """Create an organisation owned by ``user_id``; a user who already owns one gets it back."""
    data = validate_payload(OrganisationCreateRequest, payload)

    existing = await session.execute(
        table("organisation_members")
        .select(("organisation_id",))
        .eq("user_id", user_id)
        .eq("role", "owner")
        .limit(1)
    )
    owned = existing.first()
    if owned is not None:
        return {"id": owned["organisation_id"], "created": False}

    result = await session.execute(
        table("organisations")
        .insert(
            {
                "name": data.name,
                "country_based": data.country_based,
                "what_we_do": data.what_we_do,
                "existing_since": data.existing_since,
                "website": data.website,
                "logo_url": data.logo_url,
                "social_links": data.social_links,
                "verification_status": "pending",
                "created_by": user_id,
            }
        )
        .returning(("id",))
    )
    row = result.first()
    if row is None:
        raise RepositoryError("Failed to create organisation")
    organisation_id = row["id"]

    await session.execute(
        table("organisation_members").insert(
            {"organisation_id": organisation_id, "user_id": user_id, "role": "owner"}
            | {permission: True for permission in PERMISSIONS}
        )
    )

    try:
        async with session.savepoint():
            await session.execute(
                table("profiles")
                .update(
                    {
                        "kind": "organisation",
                        "organisation_id": organisation_id,
                        "organisation_name": data.name,
                        "role": "owner",
                    }
                )
                .eq("id", user_id)
            )
    except RepositoryError as exc:
        logger.warning("profile update after organisation create failed user=%s error=%s", user_id, exc)

    logger.info("organisation created id=%s owner=%s", organisation_id, user_id)
    return {"id": organisation_id, "created": True}


async def _membership(session: DatabaseSession, organisation_id: str, user_id: str) -> dict[str, Any] | None:
    result = await session.execute(
        table("organisation_members")
        .select(MEMBER_COLUMNS)
        .eq("organisation_id", organisation_id)
        .eq("user_id", user_id)
        .limit(1)
    )
    return result.first()


async def _require_org_admin(session: DatabaseSession, organisation_id: str, user_id: str) -> dict[str, Any]:
    member = await _membership(session, organisation_id, user_id)
    if member is None or member.get("role") not in {"owner", "admin"}:
        raise RepositoryForbiddenError("Forbidden")
    return member


async def _require_member_manager(session: DatabaseSession, organisation_id: str, user_id: str) -> dict[str, Any]:
    member = await _membership(session, organisation_id, user_id)
    if member is None:
        raise RepositoryForbiddenError("Forbidden")
    if member.get("role") == "owner":
        return member
    if member.get("role") == "admin" and member.get("can_manage_members"):
        return member
    raise RepositoryForbiddenError("Requires an admin with can_manage_members permission")


async def list_members(session: DatabaseSession, organisation_id: str, user_id: str) -> list[dict[str, Any]]:
    if await _membership(session, organisation_id, user_id) is None:
        raise RepositoryForbiddenError("Forbidden")
    result = await session.execute(
        table("organisation_members")
        .select(MEMBER_COLUMNS)
        .eq("organisation_id", organisation_id)
        .order("created_at")
    )
    return result.rows


async def update_member_role(
    session: DatabaseSession,
    organisation_id: str,
    member_user_id: str,
    role: str,
    actor_id: str,
) -> dict[str, Any]:
    if role not in {"member", "admin"}:
        raise RepositoryValidationError("Invalid payload", [{"field": "role", "message": "must be member or admin"}])
    await _require_org_admin(session, organisation_id, actor_id)
    target = await _membership(session, organisation_id, member_user_id)
    if target is None:
        raise RepositoryNotFoundError("Member not found")
    if target.get("role") == "owner":
        raise RepositoryConflictError("The organisation owner's role cannot be changed")

    result = await session.execute(
        table("organisation_members")
        .update({"role": role, "can_create_projects": role == "admin", "can_create_funding": role == "admin"})
        .eq("organisation_id", organisation_id)
        .eq("user_id", member_user_id)
        .returning(MEMBER_COLUMNS)
    )
    return result.rows[0]


async def set_member_permission(
    session: DatabaseSession,
    organisation_id: str,
    member_user_id: str,
    permission: str,
    value: bool,
    actor_id: str,
) -> dict[str, Any]:
    if permission not in PERMISSIONS:
        raise RepositoryValidationError(
            "Invalid payload", [{"field": "permission", "message": f"must be one of {', '.join(PERMISSIONS)}"}]
        )
    await _require_org_admin(session, organisation_id, actor_id)
    result = await session.execute(
        table("organisation_members")
        .update({permission: value})
        .eq("organisation_id", organisation_id)
        .eq("user_id", member_user_id)
        .returning(MEMBER_COLUMNS)
    )
    row = result.first()
    if row is None:
        raise RepositoryNotFoundError("Member not found")
    return row


async def remove_member(session: DatabaseSession, organisation_id: str, member_user_id: str, actor_id: str) -> None:
    await _require_org_admin(session, organisation_id, actor_id)
    target = await _membership(session, organisation_id, member_user_id)
    if target is None:
        raise RepositoryNotFoundError("Member not found")
    if target.get("role") == "owner":
        raise RepositoryConflictError("The organisation owner cannot be removed")
    await session.execute(
        table("organisation_members").delete().eq("organisation_id", organisation_id).eq("user_id", member_user_id)
    )


async def submit_membership_request(
    session: DatabaseSession,
    organisation_id: str,
    user_id: str,
    message: str | None = None,
) -> dict[str, Any]:
    if await _membership(session, organisation_id, user_id) is not None:
        raise RepositoryConflictError("You are already a member of this organisation.")

    existing = (
        await session.execute(
            table("organisation_member_requests")
            .select(("id", "status"))
            .eq("organisation_id", organisation_id)
            .eq("user_id", user_id)
            .limit(1)
        )
    ).first()
    if existing is not None:
        if existing.get("status") == "pending":
            raise RepositoryConflictError("You already have a pending request for this organisation.")
        if existing.get("status") == "rejected":
            raise RepositoryConflictError(
                "Your previous request was rejected. Please contact the organisation directly."
            )

    try:
        result = await session.execute(
            table("organisation_member_requests")
            .insert({"organisation_id": organisation_id, "user_id": user_id, "message": message, "status": "pending"})
            .returning(REQUEST_COLUMNS)
        )
    except RepositoryConflictError as exc:
        raise RepositoryConflictError("You already have a request for this organisation.") from exc
    return result.rows[0]


async def cancel_membership_request(
    session: DatabaseSession,
    organisation_id: str,
    request_id: str,
    user_id: str,
) -> None:
    await session.execute(
        table("organisation_member_requests")
        .delete()
        .eq("id", request_id)
        .eq("organisation_id", organisation_id)
        .eq("user_id", user_id)
        .eq("status", "pending")
    )


async def list_membership_requests(
    session: DatabaseSession,
    organisation_id: str,
    actor_id: str,
    status: str = "pending",
) -> list[dict[str, Any]]:
    await _require_member_manager(session, organisation_id, actor_id)
    result = await session.execute(
        table("organisation_member_requests")
        .select(REQUEST_COLUMNS)
        .eq("organisation_id", organisation_id)
        .eq("status", status)
        .order("created_at", descending=True)
    )
    return result.rows


async def _pending_request(session: DatabaseSession, organisation_id: str, request_id: str) -> dict[str, Any]:
    request = (
        await session.execute(
            table("organisation_member_requests")
            .select(REQUEST_COLUMNS)
            .eq("id", request_id)
            .eq("organisation_id", organisation_id)
            .for_update()
        )
    ).first()
    if request is None:
        raise RepositoryNotFoundError("Membership request not found")
    if request.get("status") != "pending":
        raise RepositoryConflictError(f"Membership request is already {request.get('status')}")
    return request


async def approve_membership_request(
    session: DatabaseSession,
    organisation_id: str,
    request_id: str,
    actor_id: str,
) -> dict[str, Any]:
    await _require_member_manager(session, organisation_id, actor_id)
    request = await _pending_request(session, organisation_id, request_id)

    result = await session.execute(
        table("organisation_member_requests")
        .update({"status": "approved", "reviewed_at": datetime.now(timezone.utc), "reviewed_by": actor_id})
        .eq("id", request_id)
        .returning(REQUEST_COLUMNS)
    )
    # A membership created in the meantime is kept as-is.
    await session.execute(
        table("organisation_members").upsert(
            {"organisation_id": organisation_id, "user_id": request["user_id"], "role": "member"}
            | {permission: False for permission in PERMISSIONS},
            on_conflict=("organisation_id", "user_id"),
            ignore_duplicates=True,
        )
    )
    logger.info("membership request approved id=%s org=%s by=%s", request_id, organisation_id, actor_id)
    return result.rows[0]


async def reject_membership_request(
    session: DatabaseSession,
    organisation_id: str,
    request_id: str,
    actor_id: str,
    admin_notes: str | None = None,
) -> dict[str, Any]:
    await _require_member_manager(session, organisation_id, actor_id)
    await _pending_request(session, organisation_id, request_id)

    result = await session.execute(
        table("organisation_member_requests")
        .update(
            {
                "status": "rejected",
                "reviewed_at": datetime.now(timezone.utc),
                "reviewed_by": actor_id,
                "admin_notes": admin_notes,
            }
        )
        .eq("id", request_id)
        .returning(REQUEST_COLUMNS)
    )
    return result.rows[0]


async def search_verified(
    session: DatabaseSession, term: str | None, limit: int = SEARCH_LIMIT
) -> list[dict[str, Any]]:
    """Name lookup for partner pickers; only verified organisations are returned."""
    needle = (term or "").strip()
    if not needle:
        return []

    matches = await session.execute(
        table("verified_organisations")
        .select(("id", "name"))
        .ilike("name", f"%{escape_like(needle)}%")
        .order("name")
        .limit(limit)
    )
    ids = [row["id"] for row in matches.rows]
    if not ids:
        return []

    details = await session.execute(
        table("organisations")
        .select(("id", "name", "logo_url", "country_based"))
        .in_("id", ids)
        .eq("verification_status", "verified")
        .order("name")
    )
    return details.rows
