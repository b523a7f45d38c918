# src/models/group_invite.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    ForeignKey,
    DateTime,
    CheckConstraint,
    Index,
    func,
    text,
)
from sqlalchemy.orm import relationship
from src.db import Base

class GroupInvite(Base):
    """
    Инвайт-код на вступление в группу.

    Особенности:
        - code уникален среди всех инвайтов без учёта регистра (храним в верхнем регистре).
        - invited_user_id задан — инвайт персональный и обязательно одноразовый.
        - Инвайты не удаляются: истёкший или использованный просто перестаёт работать
          (удаляются только каскадом вместе с группой).
    """
    __tablename__ = "group_invites"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    invited_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    code = Column(String(32), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)

    one_time_use = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    is_used = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    times_used = Column(Integer, nullable=False, default=0, server_default=text("0"))

    __table_args__ = (
        CheckConstraint(
            "invited_user_id IS NULL OR one_time_use",
            name="ck_group_invites_targeted_one_time",
        ),
        CheckConstraint(
            "invited_user_id IS NULL OR invited_user_id <> created_by_id",
            name="ck_group_invites_not_self",
        ),
        CheckConstraint(
            "NOT one_time_use OR times_used <= 1",
            name="ck_group_invites_one_time_used_once",
        ),
        CheckConstraint(
            "expires_at IS NULL OR expires_at > created_at",
            name="ck_group_invites_expiry_after_creation",
        ),
        Index("ix_group_invites_created_by", "created_by_id"),
    )

    group = relationship("Group", back_populates="invites", foreign_keys=[group_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    invited_user = relationship("User", foreign_keys=[invited_user_id])

    def __repr__(self):
        return f"<GroupInvite(id={self.id}, group_id={self.group_id}, code={self.code}, times_used={self.times_used})>"
