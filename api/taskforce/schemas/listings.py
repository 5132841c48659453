from typing import Any, Literal

from pydantic import Field

from taskforce.schemas.common import CamelModel

ListingView = Literal["table", "map"]


class ListingPageOut(CamelModel):
    rows: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_count: int = 1
    view: ListingView = "table"
    markers: list[dict[str, Any]] | None = None


class HomeMarkersOut(CamelModel):
    project_markers: list[dict[str, Any]] = Field(default_factory=list)
    grant_markers: list[dict[str, Any]] = Field(default_factory=list)
    issue_markers: list[dict[str, Any]] = Field(default_factory=list)
