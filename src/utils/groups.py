# src/utils/groups.py
# ГАРДЫ ГРУПП: member / moderator / owner.
#
# Гард — тонкий адаптер над src.services.group_authorization:
#   • нет пользователя                  → unauthenticated (401, «войдите»);
#   • нет/кривой group_id в пути        → forbidden (fail closed);
#   • группы нет                        → not_found (404), в том числе для админа;
#   • owner-гард + системный админ      → allow (без проверки членства);
#   • роль ниже требуемой               → forbidden (403).
# Своей логики ролей здесь нет: решение принимает authorize(), тот же путь, что у ensure_*.

from __future__ import annotations

import enum
from typing import Any, Dict, Mapping, Optional

from fastapi import Depends, HTTPException, Request
from starlette import status
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.group import Group
from src.models.user import User
from src.models.group_member import GroupRole
from src.services.group_authorization import (
    GroupAuthorizationFailure,
    authorize,
    get_group,
    resolve_user_id,
)
from src.utils.telegram_dep import get_optional_telegram_user

DEFAULT_GROUP_ID_KEY = "group_id"


class GroupPolicy(enum.Enum):
    member = "member"
    moderator = "moderator"
    owner = "owner"


class PolicyOutcome(enum.Enum):
    allow = "allow"
    unauthenticated = "unauthenticated"
    not_found = "not_found"
    forbidden = "forbidden"


_POLICY_ROLES = {
    GroupPolicy.member: GroupRole.member,
    GroupPolicy.moderator: GroupRole.moderator,
    GroupPolicy.owner: GroupRole.owner,
}


def _err(code: str, message: str) -> Dict[str, str]:
    return {"code": code, "message": message}


def parse_group_id(route_params: Mapping[str, Any], key: str) -> Optional[int]:
    raw = route_params.get(key) if route_params is not None else None
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def evaluate_group_policy(
    db: Session,
    principal: Optional[User],
    route_params: Mapping[str, Any],
    policy: GroupPolicy,
    group_id_key: str = DEFAULT_GROUP_ID_KEY,
) -> PolicyOutcome:
    if resolve_user_id(principal) is None:
        return PolicyOutcome.unauthenticated

    group_id = parse_group_id(route_params, group_id_key)
    if group_id is None:
        return PolicyOutcome.forbidden

    result = authorize(db, group_id, principal, required=_POLICY_ROLES[policy])
    if result.succeeded:
        return PolicyOutcome.allow
    if result.failure == GroupAuthorizationFailure.not_authenticated:
        return PolicyOutcome.unauthenticated
    if result.failure == GroupAuthorizationFailure.group_not_found:
        return PolicyOutcome.not_found
    return PolicyOutcome.forbidden


def policy_http_exception(outcome: PolicyOutcome) -> HTTPException:
    if outcome == PolicyOutcome.unauthenticated:
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_err("not_authenticated", "Please sign in"))
    if outcome == PolicyOutcome.not_found:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_err("group_not_found", "Group not found"))
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=_err("forbidden", "You don't have permission to do this"),
    )


def _require(policy: GroupPolicy, group_id_key: str):
    async def guard(
        request: Request,
        db: Session = Depends(get_db),
        principal: Optional[User] = Depends(get_optional_telegram_user),
    ) -> User:
        outcome = evaluate_group_policy(db, principal, request.path_params, policy, group_id_key)
        if outcome != PolicyOutcome.allow:
            raise policy_http_exception(outcome)
        return principal

    guard.__name__ = f"require_group_{policy.value}"
    return guard


def require_group_member(group_id_key: str = DEFAULT_GROUP_ID_KEY):
    """Depends-гард: текущий пользователь — участник группы из пути."""
    return _require(GroupPolicy.member, group_id_key)


def require_group_moderator(group_id_key: str = DEFAULT_GROUP_ID_KEY):
    return _require(GroupPolicy.moderator, group_id_key)


def require_group_owner(group_id_key: str = DEFAULT_GROUP_ID_KEY):
    return _require(GroupPolicy.owner, group_id_key)


# =========================
# ЗАГРУЗКИ
# =========================

def get_group_or_404(db: Session, group_id: int) -> Group:
    group = get_group(db, group_id)
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_err("group_not_found", "Group not found"))
    return group
