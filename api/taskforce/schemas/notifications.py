from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationOut(BaseModel):
    id: str
    type: str | None = None
    title: str | None = None
    body: str | None = None
    href: str | None = None
    created_at: datetime
    read_at: datetime | None = None


class HomeStatsOut(BaseModel):
    updated_at: datetime | str | None = None
    projects: dict[str, Any] = Field(default_factory=dict)
    funding: dict[str, Any] = Field(default_factory=dict)
    issues: dict[str, Any] = Field(default_factory=dict)
