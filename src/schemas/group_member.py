# src/schemas/group_member.py
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .user import UserShort


class GroupRoleEnum(str, Enum):
    member = "member"
    moderator = "moderator"
    owner = "owner"


class GroupMemberOut(BaseModel):
    id: int
    group_id: int
    user_id: int
    role: GroupRoleEnum
    joined_at: Optional[datetime] = None
    invite_id: Optional[int] = None
    user: Optional[UserShort] = None

    class Config:
        from_attributes = True


class GroupMemberRoleUpdate(BaseModel):
    role: GroupRoleEnum = Field(..., description="Новая роль: member|moderator (owner назначить нельзя)")
