from uuid import UUID

from fastapi import APIRouter, Depends

from taskforce.api.errors import http_error
from taskforce.core.auth import Principal
from taskforce.core.security import get_human_principal
from taskforce.schemas.common import Envelope, OkOut
from taskforce.schemas.notifications import NotificationOut
from taskforce.services import notifications
from taskforce.services.database import RepositoryError, get_database

router = APIRouter()


@router.get("", response_model=Envelope[list[NotificationOut]])
async def list_notifications(
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[list[NotificationOut]]:
    try:
        async with database.session(principal) as session:
            rows = await notifications.list_notifications(session, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=[NotificationOut(**row) for row in rows])


@router.post("/read-all", response_model=Envelope[OkOut])
async def mark_all_read(
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await notifications.mark_all_notifications_read(session)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.post("/{notification_id}/read", response_model=Envelope[OkOut])
async def mark_read(
    notification_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await notifications.mark_notification_read(session, str(notification_id))
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())
