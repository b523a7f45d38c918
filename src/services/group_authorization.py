# src/services/group_authorization.py
# -----------------------------------------------------------------------------
# Единая точка проверки ролей в группе: роутеры и гарды не считают права сами.
# Отсутствие группы или членства — обычный результат «нет доступа», а не исключение.
# Исключения SQLAlchemy (БД недоступна) пробрасываются как есть.
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException
from starlette import status
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.models.group import Group
from src.models.group_member import GroupMember, GroupRole
from src.models.user import User
from src.services.roles import role_at_least

log = logging.getLogger(__name__)


class GroupAuthorizationFailure(enum.Enum):
    none = "none"
    not_authenticated = "not_authenticated"
    group_not_found = "group_not_found"
    not_member = "not_member"
    not_moderator = "not_moderator"
    not_owner = "not_owner"


@dataclass(frozen=True)
class GroupAuthorizationResult:
    succeeded: bool
    failure: GroupAuthorizationFailure = GroupAuthorizationFailure.none

    @classmethod
    def success(cls) -> "GroupAuthorizationResult":
        return cls(True, GroupAuthorizationFailure.none)

    @classmethod
    def fail(cls, failure: GroupAuthorizationFailure) -> "GroupAuthorizationResult":
        return cls(False, failure)


# =========================
# ПРИНЦИПАЛ
# =========================

def resolve_user_id(principal: Optional[User]) -> Optional[int]:
    """ID текущего пользователя или None, если запрос не аутентифицирован."""
    if principal is None:
        return None
    return getattr(principal, "id", None)


def is_system_admin(principal: Optional[User]) -> bool:
    return bool(principal is not None and getattr(principal, "is_admin", False))


# =========================
# РОЛИ
# =========================

def get_group(db: Session, group_id: int) -> Optional[Group]:
    return db.get(Group, group_id)


def role_in_group(db: Session, group_id: int, user_id: Optional[int]) -> Optional[GroupRole]:
    """
    Роль пользователя в группе. None — группы нет или пользователь не участник.
    """
    if user_id is None:
        return None
    return db.scalar(
        select(GroupMember.role).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )


def is_member(db: Session, group_id: int, user_id: Optional[int]) -> bool:
    return role_in_group(db, group_id, user_id) is not None


def is_moderator(db: Session, group_id: int, user_id: Optional[int]) -> bool:
    role = role_in_group(db, group_id, user_id)
    return role is not None and role_at_least(role, GroupRole.moderator)


def is_owner(db: Session, group_id: int, user_id: Optional[int], *, is_admin: bool = False) -> bool:
    """
    Владелец группы — или системный администратор (полномочия владельца во всех группах
    без записи в group_members).
    """
    if is_admin:
        return True
    return role_in_group(db, group_id, user_id) == GroupRole.owner


# =========================
# ENSURE-проверки для роутеров и гардов
# =========================

def authorize(
    db: Session,
    group_id: int,
    principal: Optional[User],
    *,
    required: GroupRole,
) -> GroupAuthorizationResult:
    """
    Единственное решение о доступе к группе. Порядок: аутентификация → группа существует
    → (owner) системный админ → роль. Админ на несуществующей группе получает group_not_found.
    """
    user_id = resolve_user_id(principal)
    if user_id is None:
        return GroupAuthorizationResult.fail(GroupAuthorizationFailure.not_authenticated)

    if get_group(db, group_id) is None:
        return GroupAuthorizationResult.fail(GroupAuthorizationFailure.group_not_found)

    if required == GroupRole.owner:
        ok = is_owner(db, group_id, user_id, is_admin=is_system_admin(principal))
        failure = GroupAuthorizationFailure.not_owner
    elif required == GroupRole.moderator:
        ok = is_moderator(db, group_id, user_id)
        failure = GroupAuthorizationFailure.not_moderator
    else:
        ok = is_member(db, group_id, user_id)
        failure = GroupAuthorizationFailure.not_member

    if not ok:
        log.debug("group %s: user %s denied (%s)", group_id, user_id, failure.value)
        return GroupAuthorizationResult.fail(failure)
    return GroupAuthorizationResult.success()


def ensure_member(db: Session, group_id: int, principal: Optional[User]) -> GroupAuthorizationResult:
    return authorize(db, group_id, principal, required=GroupRole.member)


def ensure_moderator(db: Session, group_id: int, principal: Optional[User]) -> GroupAuthorizationResult:
    return authorize(db, group_id, principal, required=GroupRole.moderator)


def ensure_owner(db: Session, group_id: int, principal: Optional[User]) -> GroupAuthorizationResult:
    return authorize(db, group_id, principal, required=GroupRole.owner)


def to_http_exception(result: GroupAuthorizationResult) -> HTTPException:
    """Отказ → HTTP: 401 «войдите», 404 группа не найдена, 403 «нет прав»."""
    failure = result.failure
    if failure == GroupAuthorizationFailure.not_authenticated:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": failure.value, "message": "Please sign in"},
        )
    if failure == GroupAuthorizationFailure.group_not_found:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": failure.value, "message": "Group not found"},
        )
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": failure.value, "message": "You don't have permission to do this"},
    )
