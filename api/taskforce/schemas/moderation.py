from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ModerationActionRequest(BaseModel):
    id: UUID
    reason: str | None = Field(default=None, max_length=500)


class ModerationOut(BaseModel):
    id: str
    kind: str
    status: str
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None


class ModerationQueueItemOut(ModerationOut):
    fields: dict[str, Any] = Field(default_factory=dict)


class AdminEmailRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class AdminEmailOut(BaseModel):
    email: str
    added_at: datetime | None = None
