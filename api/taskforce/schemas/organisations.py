from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from taskforce.schemas.common import blank_to_none, require_http_url

MemberRole = Literal["owner", "admin", "member"]
AssignableRole = Literal["member", "admin"]
MemberPermission = Literal[
    "can_create_projects",
    "can_create_funding",
    "can_create_issues",
    "can_post_feed",
    "can_manage_members",
]
MembershipRequestStatus = Literal["pending", "approved", "rejected"]


class OrganisationCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    country_based: str = Field(min_length=1)
    what_we_do: str = Field(min_length=1, max_length=4000)
    existing_since: str | None = None
    website: str | None = None
    logo_url: str | None = None
    social_links: list[str] = Field(default_factory=list)

    @field_validator("name", "country_based", "what_we_do", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("existing_since", "website", "logo_url", mode="before")
    @classmethod
    def _blank_optional(cls, value: object) -> object:
        return blank_to_none(value)

    @field_validator("website", "logo_url")
    @classmethod
    def _check_url(cls, value: str | None) -> str | None:
        return require_http_url(value) if value is not None else None

    @field_validator("social_links", mode="after")
    @classmethod
    def _check_links(cls, value: list[str]) -> list[str]:
        return [require_http_url(item.strip()) for item in value if item.strip()]


class OrganisationCreatedOut(BaseModel):
    id: str
    created: bool


class MemberOut(BaseModel):
    user_id: str
    role: MemberRole
    can_create_projects: bool = False
    can_create_funding: bool = False
    can_create_issues: bool = False
    can_post_feed: bool = False
    can_manage_members: bool = False
    created_at: datetime | None = None


class MemberRolePatchRequest(BaseModel):
    role: AssignableRole


class MemberPermissionPatchRequest(BaseModel):
    permission: MemberPermission
    value: bool


class MembershipRequestCreate(BaseModel):
    message: str | None = Field(default=None, max_length=1000)

    @field_validator("message", mode="before")
    @classmethod
    def _blank_message(cls, value: object) -> object:
        return blank_to_none(value)


class MembershipRequestReview(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=1000)

    @field_validator("admin_notes", mode="before")
    @classmethod
    def _blank_notes(cls, value: object) -> object:
        return blank_to_none(value)


class MembershipRequestOut(BaseModel):
    id: str
    organisation_id: str
    user_id: str
    status: MembershipRequestStatus
    message: str | None = None
    admin_notes: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    created_at: datetime | None = None


class OrganisationSearchOut(BaseModel):
    id: str
    name: str
    logo_url: str | None = None
    country_based: str | None = None
