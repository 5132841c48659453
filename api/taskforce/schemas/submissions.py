from datetime import date
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from taskforce.schemas.common import blank_to_none, require_http_url

ProjectCategory = Literal["humanitarian", "environmental"]
GrantProjectType = Literal["environmental", "humanitarian", "both"]
GrantFundingType = Literal["grant", "prize", "fellowship", "loan", "equity", "in-kind", "other"]


class ProjectLink(BaseModel):
    url: str
    label: str | None = None

    @field_validator("label", mode="before")
    @classmethod
    def _blank_label(cls, value: object) -> object:
        return blank_to_none(value)

    @field_validator("url", mode="before")
    @classmethod
    def _strip_url(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return require_http_url(value)


class ProjectLocation(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    place_name: str = Field(min_length=1)

    @field_validator("place_name", mode="before")
    @classmethod
    def _strip_place(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class ProjectSubmitRequest(BaseModel):
    category: ProjectCategory | None = None
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    lead_org_id: UUID | None = None
    links: list[ProjectLink] = Field(default_factory=list)
    partner_org_ids: list[UUID] = Field(default_factory=list)
    sdg_ids: list[int] = Field(default_factory=list)
    ifrc_ids: list[int] = Field(default_factory=list)
    type_of_intervention: list[str] = Field(default_factory=list)
    thematic_area: list[str] = Field(default_factory=list)
    target_demographic: str | None = None
    lives_improved: int | None = Field(default=None, ge=0)
    start_date: date | None = None
    end_date: date | None = None
    donations_received: float | None = Field(default=None, ge=0)
    amount_needed: float | None = Field(default=None, ge=0)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    location: ProjectLocation

    @field_validator(
        "category", "description", "lead_org_id", "target_demographic", "start_date", "end_date", mode="before"
    )
    @classmethod
    def _blank_optional(cls, value: object) -> object:
        return blank_to_none(value)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "USD"
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("type_of_intervention", "thematic_area", mode="after")
    @classmethod
    def _clean_tags(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]


class GrantSubmitRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    summary: str | None = Field(default=None, max_length=500)
    description: str | None = None
    project_type: GrantProjectType
    funding_type: GrantFundingType
    application_url: str
    funder_name: str | None = None
    funder_website: str | None = None
    contact_email: str | None = None
    currency: str = Field(default="EUR", pattern=r"^[A-Z]{3}$")
    amount_min: float | None = Field(default=None, ge=0)
    amount_max: float | None = Field(default=None, ge=0)
    open_date: date | None = None
    deadline: date | None = None
    decision_date: date | None = None
    start_date: date | None = None
    eligible_countries: list[str] = Field(default_factory=list)
    remote_ok: bool = True
    location_name: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    themes: list[str] = Field(default_factory=list)
    sdgs: list[int] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)

    @field_validator(
        "summary",
        "description",
        "funder_name",
        "funder_website",
        "contact_email",
        "open_date",
        "deadline",
        "decision_date",
        "start_date",
        "location_name",
        mode="before",
    )
    @classmethod
    def _blank_optional(cls, value: object) -> object:
        return blank_to_none(value)

    @field_validator("title", "application_url", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("application_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return require_http_url(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "EUR"
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("remote_ok", mode="before")
    @classmethod
    def _default_remote(cls, value: object) -> object:
        return True if value is None else value

    @field_validator("eligible_countries", "themes", "sdgs", "keywords", mode="before")
    @classmethod
    def _none_to_list(cls, value: object) -> object:
        return [] if value is None else value


class WatchdogSubmitRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=8000)
    country: str = Field(min_length=1)
    region: str | None = None
    city: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    sdgs: list[int] = Field(default_factory=list)
    global_challenges: list[str] = Field(default_factory=list)
    affected_demographics: list[str] = Field(default_factory=list)
    affected_groups_text: str | None = Field(default=None, max_length=500)
    urgency: int = Field(default=3, ge=1, le=5)
    date_observed: date | None = None
    evidence_links: list[str] = Field(default_factory=list)
    desired_outcome: str | None = Field(default=None, max_length=2000)
    contact_allowed: bool = True
    reporter_anonymous: bool = False
    post_to_feed: bool = False
    feed_message: str | None = None

    @field_validator(
        "region", "affected_groups_text", "date_observed", "desired_outcome", "feed_message", mode="before"
    )
    @classmethod
    def _blank_optional(cls, value: object) -> object:
        return blank_to_none(value)

    @field_validator("title", "description", "country", "city", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("global_challenges", "affected_demographics", mode="after")
    @classmethod
    def _clean_tags(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]

    @field_validator("evidence_links", mode="after")
    @classmethod
    def _check_links(cls, value: list[str]) -> list[str]:
        return [require_http_url(item.strip()) for item in value]


class SubmissionOut(BaseModel):
    id: str
    slug: str | None = None
    status: str
