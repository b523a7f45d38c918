# src/schemas/group.py
# -----------------------------------------------------------------------------
# СХЕМЫ Pydantic: Group
# -----------------------------------------------------------------------------

from __future__ import annotations

from enum import Enum
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field


class GroupPrivacyEnum(str, Enum):
    open = "open"
    moderator_invite = "moderator_invite"
    owner_invite = "owner_invite"


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120, description="Название группы")
    description: Optional[str] = Field(default=None, description="Описание группы (необязательно)")
    privacy: GroupPrivacyEnum = Field(
        default=GroupPrivacyEnum.moderator_invite,
        description="Кто выпускает инвайты: open|moderator_invite|owner_invite",
    )


class GroupUpdate(BaseModel):
    # None = поле не меняем
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    privacy: Optional[GroupPrivacyEnum] = Field(default=None, description="Меняет только владелец")


class GroupOut(BaseModel):
    id: int = Field(..., description="ID группы")
    name: str = Field(..., description="Название группы")
    description: Optional[str] = Field(None, description="Описание группы")
    owner_id: int = Field(..., description="ID владельца группы")
    privacy: GroupPrivacyEnum = Field(..., description="Режим приглашений")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
