from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from taskforce.schemas.common import CamelModel

FeedEntityType = Literal["project", "funding", "issue"]


class FeedPostCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    author_organisation_id: UUID | None = None
    entity_type: FeedEntityType | None = None
    entity_id: UUID | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _strip_content(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class FeedPostOut(BaseModel):
    id: str
    content: str
    created_by: str
    author_organisation_id: str | None = None
    entity_type: FeedEntityType | None = None
    entity_id: str | None = None
    visibility: str = "public"
    created_at: datetime | None = None


class CommentCreateRequest(BaseModel):
    body: str = Field(min_length=1, max_length=2000)

    @field_validator("body", mode="before")
    @classmethod
    def _strip_body(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class CommentOut(CamelModel):
    id: str
    author_name: str
    body: str
    created_at: datetime | None = None
    can_delete: bool = False


class CommentCreatedOut(BaseModel):
    id: str
    update_id: str
    author_user_id: str
    body: str
    created_at: datetime | None = None
