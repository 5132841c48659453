"""Feed posts plus likes and comments on project updates."""

from __future__ import annotations

import logging
from typing import Any

from taskforce.schemas.social import FeedPostCreateRequest
from taskforce.services.database import (
    DatabaseSession,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    is_admin,
)
from taskforce.services.query import table

logger = logging.getLogger(__name__)

FEED_POST_COLUMNS = (
    "id",
    "content",
    "created_by",
    "author_organisation_id",
    "entity_type",
    "entity_id",
    "visibility",
    "created_at",
)
COMMENT_COLUMNS = ("id", "update_id", "author_user_id", "body", "created_at")
ORGANISATION_POST_DENIED = "You do not have permission to post as this organisation"


async def create_feed_post(session: DatabaseSession, data: FeedPostCreateRequest, user_id: str) -> dict[str, Any]:
    if (data.entity_type is None) != (data.entity_id is None):
        raise RepositoryValidationError(
            "Invalid payload",
            [{"field": "entity_id", "message": "entity_type and entity_id must be provided together"}],
        )

    organisation_id = str(data.author_organisation_id) if data.author_organisation_id else None
    if organisation_id is not None:
        member = (
            await session.execute(
                table("organisation_members")
                .select(("role", "can_post_feed"))
                .eq("organisation_id", organisation_id)
                .eq("user_id", user_id)
                .limit(1)
            )
        ).first()
        if member is None or not (member.get("role") == "owner" or member.get("can_post_feed")):
            raise RepositoryForbiddenError(ORGANISATION_POST_DENIED)

    try:
        result = await session.execute(
            table("feed_posts")
            .insert(
                {
                    "content": data.content,
                    "created_by": user_id,
                    "author_organisation_id": organisation_id,
                    "entity_type": data.entity_type,
                    "entity_id": str(data.entity_id) if data.entity_id else None,
                    "visibility": "public",
                }
            )
            .returning(FEED_POST_COLUMNS)
        )
    except RepositoryForbiddenError as exc:
        raise RepositoryForbiddenError(ORGANISATION_POST_DENIED) from exc

    row = result.first()
    if row is None:
        raise RepositoryError("Failed to create post")
    logger.info("feed post created id=%s by=%s org=%s", row["id"], user_id, organisation_id)
    return row


async def like_update(session: DatabaseSession, update_id: str, user_id: str) -> None:
    """Liking twice leaves a single like."""
    await session.execute(
        table("update_likes").upsert(
            {"update_id": update_id, "user_id": user_id},
            on_conflict=("update_id", "user_id"),
            ignore_duplicates=True,
        )
    )


async def unlike_update(session: DatabaseSession, update_id: str, user_id: str) -> None:
    await session.execute(table("update_likes").delete().eq("update_id", update_id).eq("user_id", user_id))


async def list_comments(session: DatabaseSession, update_id: str, viewer_id: str | None) -> list[dict[str, Any]]:
    """Oldest first, each with a display name and whether the viewer may delete it."""
    comments = await session.execute(
        table("update_comments").select(COMMENT_COLUMNS).eq("update_id", update_id).order("created_at")
    )
    author_ids = sorted({row["author_user_id"] for row in comments.rows if row.get("author_user_id")})
    names: dict[str, str] = {}
    if author_ids:
        profiles = await session.execute(
            table("profiles").select(("id", "first_name", "last_name")).in_("id", author_ids)
        )
        for profile in profiles.rows:
            parts = [profile.get("first_name") or "", profile.get("last_name") or ""]
            names[profile["id"]] = " ".join(part for part in parts if part).strip()

    return [
        {
            "id": row["id"],
            "author_name": names.get(row.get("author_user_id"), "") or "Anonymous",
            "body": row["body"],
            "created_at": row.get("created_at"),
            "can_delete": viewer_id is not None and viewer_id == row.get("author_user_id"),
        }
        for row in comments.rows
    ]


async def add_comment(session: DatabaseSession, update_id: str, body: str, user_id: str) -> dict[str, Any]:
    result = await session.execute(
        table("update_comments")
        .insert({"update_id": update_id, "author_user_id": user_id, "body": body})
        .returning(COMMENT_COLUMNS)
    )
    row = result.first()
    if row is None:
        raise RepositoryError("Failed to add comment")
    return row


async def delete_comment(session: DatabaseSession, comment_id: str, user_id: str) -> None:
    existing = (
        await session.execute(
            table("update_comments").select(("id", "author_user_id")).eq("id", comment_id).limit(1)
        )
    ).first()
    if existing is None:
        raise RepositoryNotFoundError("Comment not found")
    if existing.get("author_user_id") != user_id and not await is_admin(session):
        raise RepositoryForbiddenError("Forbidden")

    await session.execute(table("update_comments").delete().eq("id", comment_id))
    logger.info("comment deleted id=%s by=%s", comment_id, user_id)
