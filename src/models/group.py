# src/models/group.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Group (SQLAlchemy)
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Enum,
    DateTime,
    Index,
    func,
    text,
)
from sqlalchemy.orm import relationship

from ..db import Base


class GroupPrivacy(str, enum.Enum):
    """
    Кто может выпускать инвайты в группу:
      • open             — группа открыта, вступить можно и без инвайта; инвайты — модераторы;
      • moderator_invite — только по инвайту, выпускают модераторы и владелец;
      • owner_invite     — только по инвайту, выпускает только владелец.
    """
    open = "open"
    moderator_invite = "moderator_invite"
    owner_invite = "owner_invite"


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(String, default="")

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    owner = relationship("User")

    privacy = Column(
        Enum(GroupPrivacy, name="group_privacy"),
        nullable=False,
        default=GroupPrivacy.moderator_invite,
        server_default=text("'moderator_invite'"),
        comment="Кто выпускает инвайты: open|moderator_invite|owner_invite",
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    # Группа владеет участниками и инвайтами: удаление группы удаляет и их
    members = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    invites = relationship(
        "GroupInvite",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
        foreign_keys="GroupInvite.group_id",
    )

    __table_args__ = (
        Index("ix_groups_owner_id", "owner_id"),
    )

    def __repr__(self):
        return f"<Group(id={self.id}, name={self.name}, owner_id={self.owner_id}, privacy={self.privacy})>"
