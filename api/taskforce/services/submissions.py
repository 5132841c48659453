from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from taskforce.core.telemetry import get_tracer
from taskforce.core.text import slug_candidates, slugify
from taskforce.schemas.submissions import GrantSubmitRequest, ProjectSubmitRequest, WatchdogSubmitRequest
from taskforce.services.database import (
    DatabaseSession,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    user_can_edit_project,
)
from taskforce.services.query import table

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

PENDING = "pending"


def validate_payload(schema: type[BaseModel], payload: Any) -> Any:
    """Validate into ``schema`` or raise with one entry per offending field."""
    if not isinstance(payload, Mapping):
        raise RepositoryValidationError("Invalid payload", [{"field": "", "message": "expected a JSON object"}])
    try:
        return schema.model_validate(dict(payload))
    except ValidationError as exc:
        field_errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        raise RepositoryValidationError("Invalid payload", field_errors) from exc


def _project_cross_field_errors(data: ProjectSubmitRequest) -> list[dict[str, str]]:
    errors = []
    if not data.description and not data.links:
        errors.append({"field": "description", "message": "Add a description or at least one supporting link"})
    if data.start_date and data.end_date and data.start_date > data.end_date:
        errors.append({"field": "end_date", "message": "End date must be after start date"})
    return errors


def _grant_cross_field_errors(data: GrantSubmitRequest) -> list[dict[str, str]]:
    errors = []
    if data.amount_min is not None and data.amount_max is not None and data.amount_min > data.amount_max:
        errors.append({"field": "amount_max", "message": "Maximum amount must be greater than minimum amount"})
    if (data.latitude is None) != (data.longitude is None):
        errors.append({"field": "longitude", "message": "Latitude and longitude must be provided together"})
    return errors


def parse_project(payload: Any) -> ProjectSubmitRequest:
    data = validate_payload(ProjectSubmitRequest, payload)
    errors = _project_cross_field_errors(data)
    if errors:
        raise RepositoryValidationError("Invalid payload", errors)
    return data


def parse_grant(payload: Any) -> GrantSubmitRequest:
    data = validate_payload(GrantSubmitRequest, payload)
    errors = _grant_cross_field_errors(data)
    if errors:
        raise RepositoryValidationError("Invalid payload", errors)
    return data


def parse_watchdog_issue(payload: Any) -> WatchdogSubmitRequest:
    return validate_payload(WatchdogSubmitRequest, payload)


def _project_values(data: ProjectSubmitRequest) -> dict[str, Any]:
    values: dict[str, Any] = {
        "name": data.name,
        "description": data.description,
        "lead_org_id": str(data.lead_org_id) if data.lead_org_id else None,
        "lat": data.location.lat,
        "lng": data.location.lng,
        "place_name": data.location.place_name,
        "type_of_intervention": data.type_of_intervention,
        "thematic_area": data.thematic_area,
        "target_demographic": data.target_demographic,
        "lives_improved": data.lives_improved,
        "start_date": data.start_date,
        "end_date": data.end_date,
        "donations_received": data.donations_received,
        "amount_needed": data.amount_needed,
        "currency": data.currency,
    }
    if data.category is not None:
        values["category"] = data.category
    return values


async def _unique_slug(session: DatabaseSession, source: str, base: str) -> str:
    candidates = slug_candidates(base)
    for candidate in candidates[:-1]:
        existing = await session.execute(table(source).select(("id",)).eq("slug", candidate).limit(1))
        if not existing.rows:
            return candidate
    return candidates[-1]


async def _insert_project_children(session: DatabaseSession, project_id: str, data: ProjectSubmitRequest) -> None:
    # Order matters for failure reporting only; the enclosing transaction makes the set atomic.
    if data.links:
        await session.execute(
            table("project_links").insert(
                [{"project_id": project_id, "url": link.url, "label": link.label} for link in data.links]
            )
        )
    if data.partner_org_ids:
        await session.execute(
            table("project_partners").insert(
                [{"project_id": project_id, "organisation_id": str(org_id)} for org_id in data.partner_org_ids]
            )
        )
    if data.sdg_ids:
        await session.execute(
            table("project_sdgs").insert([{"project_id": project_id, "sdg_id": sdg_id} for sdg_id in data.sdg_ids])
        )
    if data.ifrc_ids:
        await session.execute(
            table("project_ifrc_challenges").insert(
                [{"project_id": project_id, "challenge_id": challenge_id} for challenge_id in data.ifrc_ids]
            )
        )


async def submit_project(session: DatabaseSession, payload: Any, submitter_id: str) -> dict[str, Any]:
    data = parse_project(payload)
    with tracer.start_as_current_span("submission.project"):
        slug = await _unique_slug(session, "projects", slugify(data.name, fallback="project"))
        values = _project_values(data) | {
            "slug": slug,
            "status": PENDING,
            "created_by": submitter_id,
            "partner_org_ids": [str(org_id) for org_id in data.partner_org_ids],
        }
        result = await session.execute(
            table("projects")
            .insert({key: value for key, value in values.items() if value is not None})
            .returning(("id", "slug", "status"))
        )
        row = result.first()
        if row is None:
            raise RepositoryError("Unable to submit project")

        await _insert_project_children(session, row["id"], data)
        logger.info("project submitted id=%s by=%s", row["id"], submitter_id)
        return {"id": row["id"], "slug": row["slug"], "status": row["status"] or PENDING}


async def update_project(session: DatabaseSession, project_id: str, payload: Any, editor_id: str) -> dict[str, Any]:
    data = parse_project(payload)
    with tracer.start_as_current_span("submission.project.update"):
        if not await user_can_edit_project(session, project_id):
            raise RepositoryForbiddenError("Forbidden")

        values = _project_values(data) | {"partner_org_ids": [str(org_id) for org_id in data.partner_org_ids]}
        result = await session.execute(
            table("projects").update(values).eq("id", project_id).returning(("id", "slug", "status"))
        )
        row = result.first()
        if row is None:
            raise RepositoryNotFoundError("Project not found")

        for child in ("project_links", "project_partners", "project_sdgs", "project_ifrc_challenges"):
            await session.execute(table(child).delete().eq("project_id", project_id))
        await _insert_project_children(session, project_id, data)

        logger.info("project updated id=%s by=%s", project_id, editor_id)
        return {"id": row["id"], "slug": row["slug"], "status": row["status"] or PENDING}


async def submit_grant(session: DatabaseSession, payload: Any, submitter_id: str) -> dict[str, Any]:
    data = parse_grant(payload)
    with tracer.start_as_current_span("submission.grant"):
        slug = await _unique_slug(session, "grants", slugify(data.title, fallback="grant"))
        values = data.model_dump() | {
            "slug": slug,
            "status": "open",
            "moderation_status": PENDING,
            "created_by": submitter_id,
        }
        result = await session.execute(
            table("grants")
            .insert({key: value for key, value in values.items() if value is not None})
            .returning(("id", "slug", "moderation_status"))
        )
        row = result.first()
        if row is None:
            raise RepositoryError("Unable to submit funding opportunity")
        logger.info("grant submitted id=%s by=%s", row["id"], submitter_id)
        return {"id": row["id"], "slug": row["slug"], "status": row["moderation_status"] or PENDING}


async def submit_watchdog_issue(session: DatabaseSession, payload: Any, submitter_id: str) -> dict[str, Any]:
    data = parse_watchdog_issue(payload)
    with tracer.start_as_current_span("submission.watchdog_issue"):
        values = data.model_dump(exclude={"post_to_feed", "feed_message"}) | {
            "status": PENDING,
            "created_by": submitter_id,
            "owner_type": "user",
            "owner_id": submitter_id,
        }
        result = await session.execute(
            table("watchdog_issues")
            .insert({key: value for key, value in values.items() if value is not None})
            .returning(("id", "status"))
        )
        row = result.first()
        if row is None:
            raise RepositoryError("Unable to submit issue")

        if data.post_to_feed:
            try:
                async with session.savepoint():
                    await session.execute(
                        table("feed_posts").insert(
                            {
                                "created_by": submitter_id,
                                "author_organisation_id": None,
                                "visibility": "public",
                                "content": data.feed_message or data.title,
                                "entity_type": "issue",
                                "entity_id": row["id"],
                            }
                        )
                    )
            except RepositoryError as exc:
                logger.error("watchdog feed post failed issue=%s error=%s", row["id"], exc)

        logger.info("watchdog issue submitted id=%s by=%s", row["id"], submitter_id)
        return {"id": row["id"], "status": row["status"] or PENDING}
