from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from taskforce.api.errors import http_error
from taskforce.core.auth import Principal
from taskforce.core.config import Settings, get_settings
from taskforce.core.security import get_human_principal
from taskforce.schemas.common import Envelope
from taskforce.schemas.submissions import SubmissionOut
from taskforce.services import email, submissions
from taskforce.services.database import RepositoryError, get_database
from taskforce.services.moderation import POLICIES

router = APIRouter()


@router.post("/projects/submit", response_model=Envelope[SubmissionOut], status_code=status.HTTP_201_CREATED)
async def submit_project(
    payload: Any = Body(...),
    principal: Principal = Depends(get_human_principal),
    settings: Settings = Depends(get_settings),
    database=Depends(get_database),
) -> Envelope[SubmissionOut]:
    try:
        async with database.session(principal) as session:
            row = await submissions.submit_project(session, payload, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    await email.notify_moderators(
        settings, kind_label="Project", title=str(payload.get("name", "")), admin_path=POLICIES["projects"].admin_path
    )
    return Envelope(data=SubmissionOut(**row))


@router.post("/projects/{project_id}/update", response_model=Envelope[SubmissionOut])
async def update_project(
    project_id: UUID,
    payload: Any = Body(...),
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[SubmissionOut]:
    try:
        async with database.session(principal) as session:
            row = await submissions.update_project(session, str(project_id), payload, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=SubmissionOut(**row))


@router.post("/grants/submit", response_model=Envelope[SubmissionOut], status_code=status.HTTP_201_CREATED)
async def submit_grant(
    payload: Any = Body(...),
    principal: Principal = Depends(get_human_principal),
    settings: Settings = Depends(get_settings),
    database=Depends(get_database),
) -> Envelope[SubmissionOut]:
    try:
        async with database.session(principal) as session:
            row = await submissions.submit_grant(session, payload, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    await email.notify_moderators(
        settings,
        kind_label="Funding opportunity",
        title=str(payload.get("title", "")),
        admin_path=POLICIES["grants"].admin_path,
    )
    return Envelope(data=SubmissionOut(**row))


@router.post("/watchdog/submit", response_model=Envelope[SubmissionOut], status_code=status.HTTP_201_CREATED)
async def submit_watchdog_issue(
    payload: Any = Body(...),
    principal: Principal = Depends(get_human_principal),
    settings: Settings = Depends(get_settings),
    database=Depends(get_database),
) -> Envelope[SubmissionOut]:
    try:
        async with database.session(principal) as session:
            row = await submissions.submit_watchdog_issue(session, payload, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    await email.notify_moderators(
        settings,
        kind_label="Issue",
        title=str(payload.get("title", "")),
        admin_path=POLICIES["watchdog-issues"].admin_path,
    )
    return Envelope(data=SubmissionOut(**row))
