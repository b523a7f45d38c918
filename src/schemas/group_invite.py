# src/schemas/group_invite.py

from datetime import datetime
from enum import Enum
from typing import Optional, Dict

from pydantic import BaseModel, Field

from .group import GroupPrivacyEnum
from .group_member import GroupMemberOut


class GroupInviteCreateBody(BaseModel):
    username: Optional[str] = Field(default=None, description="Персональный инвайт для пользователя (username)")
    one_time_use: bool = Field(default=True, description="Одноразовый инвайт")
    expires_at: Optional[datetime] = Field(default=None, description="Срок действия (UTC); без таймзоны — считаем UTC")


class GroupInviteCreate(GroupInviteCreateBody):
    group_id: int


class GroupInviteUpdate(BaseModel):
    one_time_use: bool = True
    expires_at: Optional[datetime] = Field(default=None, description="None — бессрочный")


class InviteStateEnum(str, Enum):
    active = "active"
    exhausted = "exhausted"
    expired = "expired"


class GroupInviteOut(BaseModel):
    id: int
    group_id: int
    created_by_id: int
    invited_user_id: Optional[int] = None
    code: str
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    one_time_use: bool
    is_used: bool
    times_used: int
    state: Optional[InviteStateEnum] = None
    redeem_link: Optional[str] = None

    class Config:
        from_attributes = True


class InviteGroupShort(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    privacy: GroupPrivacyEnum

    class Config:
        from_attributes = True


class InvitePreviewOut(BaseModel):
    code: str
    group: InviteGroupShort
    state: InviteStateEnum
    personal: bool = False
    already_member: bool = False


class RedeemOut(BaseModel):
    status: str
    membership: Optional[GroupMemberOut] = None


class InviteValidationErrorOut(BaseModel):
    code: str = "validation_error"
    message: str = "Invite request is invalid"
    fields: Dict[str, str] = Field(default_factory=dict)
