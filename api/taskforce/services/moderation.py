"""Approve/reject/reset workflow shared by every moderated entity.

Each entity kind differs only in its table and status vocabulary, captured by
``ModerationPolicy``. Every transition records exactly one audit branch: an
approval clears the rejection fields and a rejection clears the approval
fields; a reset clears both. Policies may opt into ``archive`` (status only,
audit kept) and ``delete`` (child rows first, then the item itself).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from taskforce.core.telemetry import get_tracer
from taskforce.core.text import clean_text
from taskforce.services.database import (
    DatabaseSession,
    RepositoryConflictError,
    RepositoryConstraintError,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    is_admin,
)
from taskforce.services.query import Filter, table

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

PENDING = "pending"
REJECTED = "rejected"
ARCHIVED = "archived"
REASON_MAX_LENGTH = 500
QUEUE_LIMIT = 200
DECISION_ACTIONS = ("approve", "reject", "unapprove")


@dataclass(frozen=True, slots=True)
class ModerationPolicy:
    kind: str
    table: str
    label: str
    status_column: str
    approved_status: str
    approved_at_column: str
    approved_by_column: str
    admin_path: str
    queue_columns: tuple[str, ...]
    extra_actions: tuple[str, ...] = ()
    # (table, foreign-key column) pairs removed together with the item.
    child_tables: tuple[tuple[str, str], ...] = ()
    optional_child_tables: tuple[tuple[str, str], ...] = ()

    @property
    def actions(self) -> tuple[str, ...]:
        return (*DECISION_ACTIONS, *self.extra_actions)

    @property
    def archivable(self) -> bool:
        return "archive" in self.extra_actions

    @property
    def states(self) -> tuple[str, ...]:
        if self.archivable:
            return (PENDING, self.approved_status, REJECTED, ARCHIVED)
        return (PENDING, self.approved_status, REJECTED)


POLICIES: dict[str, ModerationPolicy] = {
    "projects": ModerationPolicy(
        kind="project",
        table="projects",
        label="Project",
        status_column="status",
        approved_status="approved",
        approved_at_column="approved_at",
        approved_by_column="approved_by",
        admin_path="/admin/registrations",
        queue_columns=("id", "slug", "name", "category", "place_name", "country", "created_by", "created_at"),
        extra_actions=("archive", "delete"),
        child_tables=(
            ("project_links", "project_id"),
            ("project_media", "project_id"),
            ("project_partners", "project_id"),
            ("project_sdgs", "project_id"),
            ("project_ifrc_challenges", "project_id"),
        ),
        optional_child_tables=(("project_shares", "project_id"),),
    ),
    "organisations": ModerationPolicy(
        kind="organisation",
        table="organisations",
        label="Organisation",
        status_column="verification_status",
        approved_status="verified",
        approved_at_column="verified_at",
        approved_by_column="verified_by",
        admin_path="/admin/organisation-registrations",
        queue_columns=("id", "name", "country_based", "website", "created_by", "created_at"),
    ),
    "grants": ModerationPolicy(
        kind="grant",
        table="grants",
        label="Funding opportunity",
        status_column="moderation_status",
        approved_status="approved",
        approved_at_column="approved_at",
        approved_by_column="approved_by",
        admin_path="/admin/funding-registrations",
        queue_columns=("id", "slug", "title", "funder_name", "project_type", "deadline", "created_by", "created_at"),
    ),
    "watchdog-issues": ModerationPolicy(
        kind="watchdog_issue",
        table="watchdog_issues",
        label="Issue",
        status_column="status",
        approved_status="approved",
        approved_at_column="approved_at",
        approved_by_column="approved_by",
        admin_path="/admin/issue-registrations",
        queue_columns=("id", "title", "country", "city", "urgency", "created_by", "created_at"),
    ),
}


def get_policy(entity: str) -> ModerationPolicy:
    policy = POLICIES.get(entity)
    if policy is None:
        raise RepositoryNotFoundError(f"unknown moderation entity: {entity}")
    return policy


async def approve(session: DatabaseSession, policy: ModerationPolicy, item_id: str, actor_id: str) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    values = {
        policy.status_column: policy.approved_status,
        policy.approved_at_column: now,
        policy.approved_by_column: actor_id,
        "rejected_at": None,
        "rejected_by": None,
        "rejection_reason": None,
    }
    return await _transition(session, policy, item_id, actor_id, policy.approved_status, values, verb="approved")


async def reject(
    session: DatabaseSession,
    policy: ModerationPolicy,
    item_id: str,
    actor_id: str,
    reason: str | None = None,
) -> dict[str, Any]:
    normalized_reason = clean_text(reason)
    if normalized_reason is not None and len(normalized_reason) > REASON_MAX_LENGTH:
        raise RepositoryValidationError(
            "Invalid payload",
            [{"field": "reason", "message": f"must be at most {REASON_MAX_LENGTH} characters"}],
        )
    now = datetime.now(timezone.utc)
    values = {
        policy.status_column: REJECTED,
        policy.approved_at_column: None,
        policy.approved_by_column: None,
        "rejected_at": now,
        "rejected_by": actor_id,
        "rejection_reason": normalized_reason,
    }
    return await _transition(session, policy, item_id, actor_id, REJECTED, values, verb="rejected")


async def unapprove(session: DatabaseSession, policy: ModerationPolicy, item_id: str, actor_id: str) -> dict[str, Any]:
    values = {
        policy.status_column: PENDING,
        policy.approved_at_column: None,
        policy.approved_by_column: None,
        "rejected_at": None,
        "rejected_by": None,
        "rejection_reason": None,
    }
    return await _transition(session, policy, item_id, actor_id, PENDING, values, verb="reset to pending")


async def archive(session: DatabaseSession, policy: ModerationPolicy, item_id: str, actor_id: str) -> dict[str, Any]:
    """Retire an item from every public list; the audit branch of its last decision is kept."""
    _require_action(policy, "archive")
    values = {policy.status_column: ARCHIVED}
    return await _transition(session, policy, item_id, actor_id, ARCHIVED, values, verb="archived")


async def delete_item(session: DatabaseSession, policy: ModerationPolicy, item_id: str, actor_id: str) -> None:
    _require_action(policy, "delete")
    with tracer.start_as_current_span(f"moderation.{policy.kind}.delete"):
        await require_admin(session)

        existing = (
            await session.execute(table(policy.table).select(("id",)).eq("id", item_id).for_update())
        ).first()
        if existing is None:
            raise RepositoryNotFoundError(f"{policy.label} not found")

        for child, column in policy.child_tables:
            await session.execute(table(child).delete().eq(column, item_id))
        for child, column in policy.optional_child_tables:
            # Not every deployment has these tables.
            try:
                async with session.savepoint():
                    await session.execute(table(child).delete().eq(column, item_id))
            except RepositoryError as exc:
                logger.warning("optional child delete skipped table=%s id=%s error=%s", child, item_id, exc)

        await session.execute(table(policy.table).delete().eq("id", item_id))
        logger.info("moderation delete kind=%s id=%s actor=%s", policy.kind, item_id, actor_id)


async def list_queue(
    session: DatabaseSession,
    policy: ModerationPolicy,
    view: str = PENDING,
    limit: int = QUEUE_LIMIT,
) -> list[dict[str, Any]]:
    """Admin review queue for one status, newest submissions first."""
    await require_admin(session)
    if view not in policy.states:
        raise RepositoryValidationError(
            "Invalid payload",
            [{"field": "view", "message": f"must be one of {', '.join(policy.states)}"}],
        )

    columns = (*policy.queue_columns, *_audit_columns(policy))
    query = table(policy.table).select(columns).order("created_at", descending=True).limit(limit)
    if view == PENDING:
        # Rows created before moderation existed carry a null status.
        query = query.any_of(Filter(policy.status_column, "is_null"), Filter(policy.status_column, "eq", PENDING))
    else:
        query = query.eq(policy.status_column, view)
    result = await session.execute(query)
    return [_to_record(policy, row) | _queue_fields(policy, row) for row in result.rows]


async def require_admin(session: DatabaseSession) -> None:
    if not await is_admin(session):
        raise RepositoryForbiddenError("Forbidden")


async def _transition(
    session: DatabaseSession,
    policy: ModerationPolicy,
    item_id: str,
    actor_id: str,
    target: str,
    values: dict[str, Any],
    *,
    verb: str,
) -> dict[str, Any]:
    with tracer.start_as_current_span(f"moderation.{policy.kind}.{target}"):
        await require_admin(session)

        existing = (
            await session.execute(
                table(policy.table).select(("id", policy.status_column)).eq("id", item_id).for_update()
            )
        ).first()
        if existing is None:
            raise RepositoryNotFoundError(f"{policy.label} not found")

        current = existing.get(policy.status_column) or PENDING
        _validate_transition(policy, from_status=current, to_status=target)

        try:
            result = await session.execute(
                table(policy.table)
                .update(values)
                .eq("id", item_id)
                .returning(("id", *_audit_columns(policy)))
            )
        except RepositoryConstraintError as exc:
            raise RepositoryConstraintError(f"{policy.label} cannot be {verb}.") from exc

        row = result.first()
        if row is None:
            raise RepositoryNotFoundError(f"{policy.label} not found")

        logger.info(
            "moderation transition kind=%s id=%s from=%s to=%s actor=%s",
            policy.kind,
            item_id,
            current,
            target,
            actor_id,
        )
        return _to_record(policy, row)


def _validate_transition(policy: ModerationPolicy, *, from_status: str, to_status: str) -> None:
    # approved <-> rejected is a reset followed by a fresh decision; both branches are rewritten.
    allowed_transitions = {
        PENDING: {policy.approved_status, REJECTED},
        policy.approved_status: {PENDING, REJECTED},
        REJECTED: {PENDING, policy.approved_status},
    }
    if policy.archivable:
        # Archived rows leave the workflow until an admin resets them to pending.
        for targets in allowed_transitions.values():
            targets.add(ARCHIVED)
        allowed_transitions[ARCHIVED] = {PENDING}
    if to_status == from_status:
        return
    allowed = allowed_transitions.get(from_status)
    if not allowed or to_status not in allowed:
        raise RepositoryConflictError(f"invalid moderation transition: {from_status} -> {to_status}")


def _require_action(policy: ModerationPolicy, action: str) -> None:
    if action not in policy.actions:
        raise RepositoryNotFoundError(f"{policy.label} does not support {action}")


def _audit_columns(policy: ModerationPolicy) -> tuple[str, ...]:
    return (
        policy.status_column,
        policy.approved_at_column,
        policy.approved_by_column,
        "rejected_at",
        "rejected_by",
        "rejection_reason",
    )


def _to_record(policy: ModerationPolicy, row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "kind": policy.kind,
        "status": row.get(policy.status_column) or PENDING,
        "approved_at": row.get(policy.approved_at_column),
        "approved_by": row.get(policy.approved_by_column),
        "rejected_at": row.get("rejected_at"),
        "rejected_by": row.get("rejected_by"),
        "rejection_reason": row.get("rejection_reason"),
    }


def _queue_fields(policy: ModerationPolicy, row: dict[str, Any]) -> dict[str, Any]:
    return {"fields": {column: row.get(column) for column in policy.queue_columns if column != "id"}}
