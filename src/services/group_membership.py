# src/services/group_membership.py
from __future__ import annotations

import enum
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError

from src.models.group import Group, GroupPrivacy
from src.models.group_member import GroupMember, GroupRole
from src.utils.dt import as_utc, utc_now

log = logging.getLogger(__name__)


class MembershipChange(str, enum.Enum):
    ok = "ok"
    group_not_found = "group_not_found"
    not_member = "not_member"
    already_member = "already_member"
    not_open = "not_open"
    owner_protected = "owner_protected"
    invalid_role = "invalid_role"


def get_membership(db: Session, group_id: int, user_id: int) -> Optional[GroupMember]:
    return db.scalar(
        select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )


def list_members(db: Session, group_id: int) -> List[GroupMember]:
    """Состав группы: владелец, модераторы, участники; внутри — по дате вступления."""
    rows = db.scalars(
        select(GroupMember)
        .options(selectinload(GroupMember.user))
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    ).all()
    order = {GroupRole.owner: 0, GroupRole.moderator: 1, GroupRole.member: 2}
    return sorted(rows, key=lambda m: order[m.role])


def add_member(
    db: Session,
    group_id: int,
    user_id: int,
    role: GroupRole = GroupRole.member,
    invite_id: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> Optional[GroupMember]:
    """
    Добавляет участника и коммитит.

    Возвращает:
      GroupMember — если создана новая запись;
      None        — группы нет, пользователь уже участник (в т.ч. проиграл гонку по UNIQUE)
                    или роль owner просит не владелец группы.
    """
    group: Optional[Group] = db.get(Group, group_id)
    if group is None:
        return None

    # быстрый пре-чек; окончательно дубль отсекает UNIQUE (group_id, user_id)
    if get_membership(db, group_id, user_id) is not None:
        return None

    if role == GroupRole.owner and group.owner_id != user_id:
        return None

    gm = GroupMember(
        group_id=group_id,
        user_id=user_id,
        role=role,
        invite_id=invite_id,
        joined_at=as_utc(now) or utc_now(),
    )
    db.add(gm)
    try:
        db.commit()
    except IntegrityError:
        # гонка по UNIQUE (group_id, user_id) — запись уже создал параллельный запрос
        db.rollback()
        if get_membership(db, group_id, user_id) is not None:
            return None
        raise

    db.refresh(gm)
    return gm


def join_open_group(db: Session, group_id: int, user_id: int) -> MembershipChange:
    """Вступление без инвайта — только в открытые группы."""
    group = db.get(Group, group_id)
    if group is None:
        return MembershipChange.group_not_found
    if get_membership(db, group_id, user_id) is not None:
        return MembershipChange.already_member
    if group.privacy != GroupPrivacy.open:
        return MembershipChange.not_open

    if add_member(db, group_id, user_id, GroupRole.member) is None:
        return MembershipChange.already_member
    log.info("user %s joined open group %s", user_id, group_id)
    return MembershipChange.ok


def update_member_role(db: Session, group_id: int, user_id: int, new_role: GroupRole) -> MembershipChange:
    """
    Повышение/понижение между member и moderator.
    Назначить owner нельзя; роль владельца не меняется.
    """
    if new_role == GroupRole.owner:
        return MembershipChange.invalid_role

    membership = get_membership(db, group_id, user_id)
    if membership is None:
        return MembershipChange.not_member
    if membership.role == GroupRole.owner:
        return MembershipChange.owner_protected

    if membership.role != new_role:
        membership.role = new_role
        db.add(membership)
        db.commit()
        log.info("group %s: user %s is now %s", group_id, user_id, new_role.value)
    return MembershipChange.ok


def remove_member(db: Session, group_id: int, user_id: int) -> MembershipChange:
    """Удаление участника. Владельца удалить нельзя."""
    membership = get_membership(db, group_id, user_id)
    if membership is None:
        return MembershipChange.not_member
    if membership.role == GroupRole.owner:
        return MembershipChange.owner_protected

    db.delete(membership)
    db.commit()
    log.info("group %s: user %s removed", group_id, user_id)
    return MembershipChange.ok


def leave_group(db: Session, group_id: int, user_id: int) -> MembershipChange:
    """Самовыход. Владелец выйти не может — только удалить группу."""
    return remove_member(db, group_id, user_id)
