# src/services/groups.py
# Группы: создание (вместе с членством владельца), редактирование, удаление, «мои группы».

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.models.group import Group, GroupPrivacy
from src.models.group_member import GroupMember, GroupRole
from src.models.user import User
from src.services.group_authorization import is_moderator, is_owner, is_system_admin
from src.utils.dt import as_utc, utc_now

log = logging.getLogger(__name__)


def create_group(
    db: Session,
    owner_id: int,
    name: str,
    description: Optional[str] = None,
    privacy: GroupPrivacy = GroupPrivacy.moderator_invite,
    *,
    now: Optional[datetime] = None,
) -> Group:
    """
    Группа и членство владельца (role=owner) — одним коммитом:
    группы без владельца-участника не бывает.
    """
    now = as_utc(now) or utc_now()
    group = Group(
        name=name.strip(),
        description=(description or "").strip(),
        owner_id=owner_id,
        privacy=GroupPrivacy(privacy),
        created_at=now,
    )
    group.members.append(GroupMember(user_id=owner_id, role=GroupRole.owner, joined_at=now))
    db.add(group)
    db.commit()
    db.refresh(group)
    log.info("group %s created by user %s", group.id, owner_id)
    return group


def update_group(
    db: Session,
    group: Group,
    editor: User,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    privacy: Optional[GroupPrivacy] = None,
) -> Optional[Group]:
    """
    Название/описание меняют модераторы и владелец, режим приглашений — только владелец
    (или админ). None — у редактора нет прав.
    """
    owner = is_owner(db, group.id, editor.id, is_admin=is_system_admin(editor))
    if not owner and not is_moderator(db, group.id, editor.id):
        return None
    if privacy is not None and not owner:
        return None

    if name is not None:
        group.name = name.strip()
    if description is not None:
        group.description = description.strip()
    if privacy is not None:
        group.privacy = GroupPrivacy(privacy)

    db.add(group)
    db.commit()
    db.refresh(group)
    return group


def delete_group(db: Session, group: Group) -> None:
    """Каскадно удаляет участников и инвайты группы."""
    group_id = group.id
    db.delete(group)
    db.commit()
    log.info("group %s deleted", group_id)


def list_groups_for_user(db: Session, user_id: int) -> List[Group]:
    stmt = (
        select(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.name.asc(), Group.id.asc())
    )
    return list(db.scalars(stmt).all())
