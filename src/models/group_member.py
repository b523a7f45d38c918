# src/models/group_member.py
# Участник группы: роль + уникальность (group_id, user_id) + ссылка на инвайт, по которому вступил

import enum

from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, DateTime, Enum, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..db import Base


class GroupRole(str, enum.Enum):
    """Роли в группе. Порядок объявления = порядок старшинства."""
    member = "member"
    moderator = "moderator"
    owner = "owner"


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    role = Column(
        Enum(GroupRole, name="group_role"),
        nullable=False,
        default=GroupRole.member,
        server_default=text("'member'"),
    )
    joined_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    # аудит: инвайт, по которому создано членство; удаление инвайта членство не трогает
    invite_id = Column(Integer, ForeignKey("group_invites.id", ondelete="SET NULL"), nullable=True)

    # UNIQUE (group_id, user_id) — единственный арбитр гонок при вступлении
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("ix_group_members_group_role", "group_id", "role"),
    )

    group = relationship("Group", back_populates="members")
    user = relationship("User")
    invite = relationship("GroupInvite", foreign_keys=[invite_id])

    def __repr__(self):
        return f"<GroupMember(group_id={self.group_id}, user_id={self.user_id}, role={self.role})>"
