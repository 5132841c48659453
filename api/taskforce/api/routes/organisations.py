from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status

from taskforce.api.errors import http_error
from taskforce.core.auth import Principal
from taskforce.core.security import get_human_principal, get_optional_principal
from taskforce.schemas.common import Envelope, OkOut
from taskforce.schemas.organisations import (
    MemberOut,
    MemberPermissionPatchRequest,
    MemberRolePatchRequest,
    MembershipRequestCreate,
    MembershipRequestOut,
    MembershipRequestReview,
    MembershipRequestStatus,
    OrganisationCreatedOut,
    OrganisationSearchOut,
)
from taskforce.services import organisations
from taskforce.services.database import RepositoryError, get_database

router = APIRouter()


@router.post("", response_model=Envelope[OrganisationCreatedOut])
async def create_organisation(
    response: Response,
    payload: Any = Body(...),
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OrganisationCreatedOut]:
    try:
        async with database.session(principal) as session:
            row = await organisations.create_organisation(session, payload, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    response.status_code = status.HTTP_201_CREATED if row["created"] else status.HTTP_200_OK
    return Envelope(data=OrganisationCreatedOut(**row))


@router.get("/search", response_model=Envelope[list[OrganisationSearchOut]])
async def search_organisations(
    q: str | None = Query(default=None, max_length=200),
    principal: Principal | None = Depends(get_optional_principal),
    database=Depends(get_database),
) -> Envelope[list[OrganisationSearchOut]]:
    if not q or not q.strip():
        return Envelope(data=[])
    try:
        async with database.session(principal) as session:
            rows = await organisations.search_verified(session, q)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=[OrganisationSearchOut(**row) for row in rows])


@router.get("/{organisation_id}/members", response_model=Envelope[list[MemberOut]])
async def list_members(
    organisation_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[list[MemberOut]]:
    try:
        async with database.session(principal) as session:
            rows = await organisations.list_members(session, str(organisation_id), principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=[MemberOut(**row) for row in rows])


@router.patch("/{organisation_id}/members/{user_id}", response_model=Envelope[MemberOut])
async def update_member_role(
    organisation_id: UUID,
    user_id: UUID,
    payload: MemberRolePatchRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[MemberOut]:
    try:
        async with database.session(principal) as session:
            row = await organisations.update_member_role(
                session, str(organisation_id), str(user_id), payload.role, principal.actor_id
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=MemberOut(**row))


@router.patch("/{organisation_id}/members/{user_id}/permissions", response_model=Envelope[MemberOut])
async def set_member_permission(
    organisation_id: UUID,
    user_id: UUID,
    payload: MemberPermissionPatchRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[MemberOut]:
    try:
        async with database.session(principal) as session:
            row = await organisations.set_member_permission(
                session, str(organisation_id), str(user_id), payload.permission, payload.value, principal.actor_id
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=MemberOut(**row))


@router.delete("/{organisation_id}/members/{user_id}", response_model=Envelope[OkOut])
async def remove_member(
    organisation_id: UUID,
    user_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await organisations.remove_member(session, str(organisation_id), str(user_id), principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.get("/{organisation_id}/requests", response_model=Envelope[list[MembershipRequestOut]])
async def list_membership_requests(
    organisation_id: UUID,
    request_status: MembershipRequestStatus = Query(default="pending", alias="status"),
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[list[MembershipRequestOut]]:
    try:
        async with database.session(principal) as session:
            rows = await organisations.list_membership_requests(
                session, str(organisation_id), principal.actor_id, request_status
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=[MembershipRequestOut(**row) for row in rows])


@router.post(
    "/{organisation_id}/requests",
    response_model=Envelope[MembershipRequestOut],
    status_code=status.HTTP_201_CREATED,
)
async def submit_membership_request(
    organisation_id: UUID,
    payload: MembershipRequestCreate | None = None,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[MembershipRequestOut]:
    try:
        async with database.session(principal) as session:
            row = await organisations.submit_membership_request(
                session, str(organisation_id), principal.actor_id, payload.message if payload else None
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=MembershipRequestOut(**row))


@router.delete("/{organisation_id}/requests/{request_id}", response_model=Envelope[OkOut])
async def cancel_membership_request(
    organisation_id: UUID,
    request_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await organisations.cancel_membership_request(
                session, str(organisation_id), str(request_id), principal.actor_id
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.post("/{organisation_id}/requests/{request_id}/approve", response_model=Envelope[MembershipRequestOut])
async def approve_membership_request(
    organisation_id: UUID,
    request_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[MembershipRequestOut]:
    try:
        async with database.session(principal) as session:
            row = await organisations.approve_membership_request(
                session, str(organisation_id), str(request_id), principal.actor_id
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=MembershipRequestOut(**row))


@router.post("/{organisation_id}/requests/{request_id}/reject", response_model=Envelope[MembershipRequestOut])
async def reject_membership_request(
    organisation_id: UUID,
    request_id: UUID,
    payload: MembershipRequestReview | None = None,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[MembershipRequestOut]:
    try:
        async with database.session(principal) as session:
            row = await organisations.reject_membership_request(
                session,
                str(organisation_id),
                str(request_id),
                principal.actor_id,
                payload.admin_notes if payload else None,
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=MembershipRequestOut(**row))
