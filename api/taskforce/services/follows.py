from __future__ import annotations

from typing import Literal

from taskforce.services.database import DatabaseSession
from taskforce.services.query import table

FollowTargetType = Literal["person", "org", "project"]

TARGET_COLUMNS: dict[str, str] = {
    "person": "target_person_id",
    "org": "target_org_id",
    "project": "target_project_id",
}


def target_column(target_type: str) -> str:
    column = TARGET_COLUMNS.get(target_type)
    if column is None:
        raise ValueError(f"unknown follow target type: {target_type}")
    return column


async def follow(session: DatabaseSession, user_id: str, target_type: str, target_id: str) -> None:
    """Record the edge; following twice leaves a single edge."""
    column = target_column(target_type)
    await session.execute(
        table("follow_edges").upsert(
            {"follower_user_id": user_id, "target_type": target_type, column: target_id},
            on_conflict=("follower_user_id", "target_type", column),
            ignore_duplicates=True,
        )
    )


async def unfollow(session: DatabaseSession, user_id: str, target_type: str, target_id: str) -> None:
    column = target_column(target_type)
    await session.execute(
        table("follow_edges")
        .delete()
        .eq("follower_user_id", user_id)
        .eq("target_type", target_type)
        .eq(column, target_id)
    )


async def is_following(session: DatabaseSession, user_id: str, target_type: str, target_id: str) -> bool:
    column = target_column(target_type)
    result = await session.execute(
        table("follow_edges")
        .select(("follower_user_id",))
        .eq("follower_user_id", user_id)
        .eq("target_type", target_type)
        .eq(column, target_id)
        .limit(1)
    )
    return bool(result.rows)
