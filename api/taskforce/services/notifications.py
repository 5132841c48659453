from __future__ import annotations

import math
from typing import Any

from taskforce.services.database import DatabaseSession, RepositoryNotFoundError
from taskforce.services.query import table

NOTIFICATION_COLUMNS = ("id", "type", "title", "body", "href", "created_at", "read_at")
NOTIFICATION_LIMIT = 100

HOME_STATS_GROUPS: dict[str, tuple[str, ...]] = {
    "projects": ("projects_approved", "projects_ongoing", "organisations_registered", "donations_received_eur"),
    "funding": ("opportunities_total", "funders_registered", "open_calls"),
    "issues": ("issues_total", "issues_open"),
}


async def list_notifications(session: DatabaseSession, user_id: str, limit: int = NOTIFICATION_LIMIT) -> list[dict[str, Any]]:
    result = await session.execute(
        table("notifications")
        .select(NOTIFICATION_COLUMNS)
        .eq("user_id", user_id)
        .order("created_at", descending=True)
        .limit(min(limit, NOTIFICATION_LIMIT))
    )
    return result.rows


async def mark_notification_read(session: DatabaseSession, notification_id: str) -> None:
    await session.rpc("mark_notification_read", nid=notification_id)


async def mark_all_notifications_read(session: DatabaseSession) -> None:
    await session.rpc("mark_all_notifications_read")


def _number(value: Any) -> float | int:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number) if number.is_integer() else number


def shape_home_stats(row: dict[str, Any]) -> dict[str, Any]:
    stats: dict[str, Any] = {"updated_at": row.get("updated_at")}
    for group, fields in HOME_STATS_GROUPS.items():
        stats[group] = {field: _number(row.get(field)) for field in fields}
    return stats


async def home_stats(session: DatabaseSession) -> dict[str, Any]:
    rows = await session.rpc("get_home_stats")
    if not rows:
        raise RepositoryNotFoundError("Home stats are not available")
    return shape_home_stats(rows[0])
