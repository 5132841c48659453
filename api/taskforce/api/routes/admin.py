from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from uuid import UUID

from fastapi import APIRouter, Depends, Form, Header, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from taskforce.api.errors import http_error
from taskforce.core.auth import Principal
from taskforce.core.config import Settings, get_settings
from taskforce.core.security import get_human_principal, get_optional_principal
from taskforce.schemas.common import Envelope, OkOut
from taskforce.schemas.moderation import (
    AdminEmailOut,
    AdminEmailRequest,
    ModerationActionRequest,
    ModerationOut,
    ModerationQueueItemOut,
)
from taskforce.services import admins, moderation
from taskforce.services.database import RepositoryError, get_database

router = APIRouter()

ACTION_MESSAGES = {
    "approve": "{label} approved.",
    "reject": "{label} rejected.",
    "unapprove": "{label} moved back to pending.",
    "archive": "{label} archived.",
    "delete": "{label} deleted successfully.",
}


@router.get("/admin-emails", response_model=Envelope[list[AdminEmailOut]])
async def list_admin_emails(
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[list[AdminEmailOut]]:
    try:
        async with database.session(principal) as session:
            rows = await admins.list_admin_emails(session)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=[AdminEmailOut(**row) for row in rows])


@router.post("/admin-emails", response_model=Envelope[AdminEmailOut], status_code=status.HTTP_201_CREATED)
async def add_admin_email(
    payload: AdminEmailRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[AdminEmailOut]:
    try:
        async with database.session(principal) as session:
            row = await admins.add_admin_email(session, payload.email, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=AdminEmailOut(**row))


@router.delete("/admin-emails/{email}", response_model=Envelope[OkOut])
async def remove_admin_email(
    email: str,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await admins.remove_admin_email(session, email, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.post("/superadmin-email", response_model=Envelope[AdminEmailOut])
async def set_superadmin_email(
    payload: AdminEmailRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[AdminEmailOut]:
    try:
        async with database.session(principal) as session:
            row = await admins.set_superadmin_email(session, payload.email, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=AdminEmailOut(**row))


@router.get("/{entity}", response_model=Envelope[list[ModerationQueueItemOut]])
async def list_moderation_queue(
    entity: str,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
    view: str = Query(default="pending", min_length=1),
) -> Envelope[list[ModerationQueueItemOut]]:
    try:
        policy = moderation.get_policy(entity)
        async with database.session(principal) as session:
            rows = await moderation.list_queue(session, policy, view)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=[ModerationQueueItemOut(**row) for row in rows])


@router.post("/{entity}/approve", response_model=Envelope[ModerationOut])
async def approve_item(
    entity: str,
    payload: ModerationActionRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[ModerationOut]:
    return await _apply_action(database, principal, entity, "approve", str(payload.id), None)


@router.post("/{entity}/reject", response_model=Envelope[ModerationOut])
async def reject_item(
    entity: str,
    payload: ModerationActionRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[ModerationOut]:
    return await _apply_action(database, principal, entity, "reject", str(payload.id), payload.reason)


@router.post("/{entity}/unapprove", response_model=Envelope[ModerationOut])
async def unapprove_item(
    entity: str,
    payload: ModerationActionRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[ModerationOut]:
    return await _apply_action(database, principal, entity, "unapprove", str(payload.id), None)


@router.post("/{entity}/archive", response_model=Envelope[ModerationOut])
async def archive_item(
    entity: str,
    payload: ModerationActionRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[ModerationOut]:
    return await _apply_action(database, principal, entity, "archive", str(payload.id), None)


@router.post("/{entity}/delete", response_model=Envelope[OkOut])
async def delete_item(
    entity: str,
    payload: ModerationActionRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    await _apply_action(database, principal, entity, "delete", str(payload.id), None)
    return Envelope(data=OkOut())


@router.post("/{entity}/{item_id}/{action}")
async def moderate_from_form(
    entity: str,
    item_id: str,
    action: str,
    request: Request,
    reason: str | None = Form(default=None),
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
    database=Depends(get_database),
) -> RedirectResponse:
    """Form-post variant for admin pages without JavaScript; always answers with a redirect."""
    policy = moderation.POLICIES.get(entity)
    if policy is None or action not in policy.actions:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    target = _redirect_target(request.headers.get("referer"), policy.admin_path)
    try:
        principal = await get_optional_principal(settings=settings, authorization=authorization)
    except HTTPException as exc:
        return _flash_redirect(target, "error", _detail_message(exc))
    if principal is None:
        return _flash_redirect(target, "error", "Unauthorized")

    try:
        parsed_id = UUID(item_id)
    except ValueError:
        return _flash_redirect(target, "error", f"{policy.label} not found")

    try:
        await _apply_action(database, principal, entity, action, str(parsed_id), reason)
    except HTTPException as exc:
        return _flash_redirect(target, "error", _detail_message(exc))

    return _flash_redirect(target, "message", ACTION_MESSAGES[action].format(label=policy.label))


async def _apply_action(
    database,
    principal: Principal,
    entity: str,
    action: str,
    item_id: str,
    reason: str | None,
) -> Envelope[ModerationOut] | None:
    try:
        policy = moderation.get_policy(entity)
        async with database.session(principal) as session:
            if action == "approve":
                row = await moderation.approve(session, policy, item_id, principal.actor_id)
            elif action == "reject":
                row = await moderation.reject(session, policy, item_id, principal.actor_id, reason)
            elif action == "unapprove":
                row = await moderation.unapprove(session, policy, item_id, principal.actor_id)
            elif action == "archive":
                row = await moderation.archive(session, policy, item_id, principal.actor_id)
            else:
                await moderation.delete_item(session, policy, item_id, principal.actor_id)
                return None
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=ModerationOut(**row))


def _detail_message(exc: HTTPException) -> str:
    return exc.detail["message"] if isinstance(exc.detail, dict) else str(exc.detail)


def _redirect_target(referer: str | None, fallback: str) -> str:
    # Only same-site paths are honoured; scheme and host of the referer are dropped.
    if not referer:
        return fallback
    parts = urlsplit(referer)
    if not parts.path.startswith("/") or parts.path.startswith("//"):
        return fallback
    return urlunsplit(("", "", parts.path, parts.query, ""))


def _flash_redirect(target: str, key: str, value: str) -> RedirectResponse:
    return RedirectResponse(_with_flash(target, key, value), status_code=status.HTTP_303_SEE_OTHER)


def _with_flash(target: str, key: str, value: str) -> str:
    parts = urlsplit(target)
    query = [
        (name, item) for name, item in parse_qsl(parts.query, keep_blank_values=True) if name not in {"message", "error"}
    ]
    query.append((key, value))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
