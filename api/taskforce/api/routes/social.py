from uuid import UUID

from fastapi import APIRouter, Depends, status

from taskforce.api.errors import http_error
from taskforce.core.auth import Principal
from taskforce.core.security import get_human_principal, get_optional_principal
from taskforce.schemas.common import Envelope, OkOut
from taskforce.schemas.social import (
    CommentCreatedOut,
    CommentCreateRequest,
    CommentOut,
    FeedPostCreateRequest,
    FeedPostOut,
)
from taskforce.services import social
from taskforce.services.database import RepositoryError, get_database

router = APIRouter()


@router.post("/feed-posts", response_model=Envelope[FeedPostOut], status_code=status.HTTP_201_CREATED)
async def create_feed_post(
    payload: FeedPostCreateRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[FeedPostOut]:
    try:
        async with database.session(principal) as session:
            row = await social.create_feed_post(session, payload, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=FeedPostOut(**row))


@router.post("/updates/{update_id}/like", response_model=Envelope[OkOut])
async def like_update(
    update_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await social.like_update(session, str(update_id), principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.delete("/updates/{update_id}/like", response_model=Envelope[OkOut])
async def unlike_update(
    update_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await social.unlike_update(session, str(update_id), principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())


@router.get("/updates/{update_id}/comments", response_model=Envelope[list[CommentOut]])
async def list_comments(
    update_id: UUID,
    principal: Principal | None = Depends(get_optional_principal),
    database=Depends(get_database),
) -> Envelope[list[CommentOut]]:
    viewer_id = principal.actor_id if principal is not None else None
    try:
        async with database.session(principal) as session:
            rows = await social.list_comments(session, str(update_id), viewer_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=[CommentOut(**row) for row in rows])


@router.post(
    "/updates/{update_id}/comments",
    response_model=Envelope[CommentCreatedOut],
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    update_id: UUID,
    payload: CommentCreateRequest,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[CommentCreatedOut]:
    try:
        async with database.session(principal) as session:
            row = await social.add_comment(session, str(update_id), payload.body, principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=CommentCreatedOut(**row))


@router.delete("/comments/{comment_id}", response_model=Envelope[OkOut])
async def delete_comment(
    comment_id: UUID,
    principal: Principal = Depends(get_human_principal),
    database=Depends(get_database),
) -> Envelope[OkOut]:
    try:
        async with database.session(principal) as session:
            await social.delete_comment(session, str(comment_id), principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return Envelope(data=OkOut())
