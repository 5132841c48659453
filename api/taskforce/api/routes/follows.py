from uuid import UUID

from fastapi import APIRouter, Depends, Query

from taskforce.api.errors import http_error
from taskforce.core.auth import Principal
from taskforce.core.security import get_human_principal
from taskforce.schemas.common import Envelope, OkOut
from taskforce.schemas.follows import FollowRequest, FollowStateOut
from taskforce.services import follows
from taskforce.services.database import RepositoryError, get_database
from taskforce.services.follows import FollowTargetType

router = APIRouter()


@router.post("", response_model=Envelope[OkOut])
async def follow_target(
    payload: FollowRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await follows.follow(session, principal.actor_id, payload.target_type, str(payload.target_id))
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.delete("", response_model=Envelope[OkOut])
async def unfollow_target(
    payload: FollowRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await follows.unfollow(session, principal.actor_id, payload.target_type, str(payload.target_id))
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.get("", response_model=Envelope[FollowStateOut])
async def follow_state(
    target_type: FollowTargetType = Query(alias="targetType"),
    target_id: UUID = Query(alias="targetId"),
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[FollowStateOut]:
    try:
        async with database.session(principal) as session:
            following = await follows.is_following(session, principal.actor_id, target_type, str(target_id))
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=FollowStateOut(following=following))
