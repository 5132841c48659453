from uuid import UUID

from pydantic import BaseModel

from taskforce.schemas.common import CamelModel
from taskforce.services.follows import FollowTargetType


class FollowRequest(CamelModel):
    target_type: FollowTargetType
    target_id: UUID


class FollowStateOut(BaseModel):
    following: bool
